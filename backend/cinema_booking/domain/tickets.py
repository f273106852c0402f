"""
Reference numbers, verification codes and the QR ticket payload.
"""

import json
import secrets
import string
import time
from dataclasses import dataclass
from typing import Any, Optional

from cinema_booking.core.exceptions import InvalidFormatError

TICKET_TYPE = "CINEMA_TICKET"
_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_booking_reference() -> str:
    """BK + epoch milliseconds + 5 random alphanumerics, e.g. BK1718000000000Q7Z2M."""
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(5))
    return f"BK{int(time.time() * 1000)}{suffix}"


def generate_order_reference() -> str:
    return f"BUNDLE-{int(time.time() * 1000)}-{secrets.randbelow(1000)}"


def generate_verification_code() -> str:
    """Uniform 6-digit code; kept as text so leading zeros survive."""
    return f"{secrets.randbelow(1_000_000):06d}"


def codes_match(expected: Optional[str], supplied: Optional[str]) -> bool:
    if not expected or supplied is None:
        return False
    # compare_digest only accepts ASCII str, so compare the UTF-8 bytes
    return secrets.compare_digest(
        str(expected).strip().encode("utf-8"),
        str(supplied).strip().encode("utf-8"),
    )


@dataclass(frozen=True)
class TicketPayload:
    booking_reference: str
    verification_code: str


def build_ticket_payload(booking: Any, seats: list[str]) -> str:
    """JSON encoded into the ticket QR code once a booking is confirmed."""
    return json.dumps(
        {
            "type": TICKET_TYPE,
            "booking_reference": booking.booking_reference,
            "verification_code": booking.verification_code,
            "movie": booking.movie_title,
            "seats": seats,
            "showtime_id": booking.showtime_id,
            "total_paid": str(booking.total_amount),
        }
    )


def parse_ticket_payload(qr_data: Any) -> TicketPayload:
    """Extract reference and code from a scanned QR payload."""
    if isinstance(qr_data, dict):
        data = qr_data
    else:
        if not isinstance(qr_data, str) or not qr_data.strip():
            raise InvalidFormatError("QR data is required")
        try:
            data = json.loads(qr_data)
        except ValueError:
            raise InvalidFormatError("Invalid QR code format")

    if not isinstance(data, dict):
        raise InvalidFormatError("Invalid QR code format")

    reference = data.get("booking_reference")
    code = data.get("verification_code")
    if not isinstance(reference, str) or not reference.strip():
        raise InvalidFormatError("QR code does not contain a booking reference")
    if code is None or not str(code).strip():
        raise InvalidFormatError("QR code does not contain a verification code")
    return TicketPayload(booking_reference=reference.strip(), verification_code=str(code).strip())
