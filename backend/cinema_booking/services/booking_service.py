"""
Booking lifecycle service.

    create ──▶ pending ──upload proof──▶ pending_verification ──admin──▶ confirmed / payment_rejected
                                                                   └──door scan──▶ is_verified

CONCURRENCY STRATEGY: Optimistic version guard on every transition
=================================================================

Every status change is a single conditional UPDATE:

    UPDATE bookings SET status = :target, version = version + 1, ...
    WHERE id = :id AND version = :seen_version AND status = :seen_status

If rows_affected == 0 someone else moved the booking first (a second upload,
an admin rejecting while another approves, the expiry sweep). The loser gets
an error instead of overwriting the winner. Approvals additionally lock the
showtime row for the seat conflict check (see seat_service).

Bookings do not reserve seats when created. That is deliberate: creation is
cheap and never blocks, and the conflict is settled when a payment is
approved. Two customers can hold pending bookings for the same seat.
"""

import base64
import binascii
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.config import get_settings
from cinema_booking.core.exceptions import (
    InvalidCodeError,
    InvalidFormatError,
    InvalidTransitionError,
    MalformedDataError,
    NotFoundError,
    SeatConflictError,
    StorageError,
    ValidationError,
)
from cinema_booking.core.logging import get_logger
from cinema_booking.core.metrics import (
    booking_creations,
    record_scan,
    record_transition,
    record_upload,
    record_verification,
)
from cinema_booking.db.session import after_commit
from cinema_booking.domain.lifecycle import (
    BookingStatus,
    VerificationAction,
    ensure_transition,
    normalize_action,
    normalize_status,
)
from cinema_booking.domain.seats import coerce_seat_input, parse_seat_numbers, serialize_seat_numbers
from cinema_booking.domain.tickets import (
    build_ticket_payload,
    codes_match,
    generate_booking_reference,
    generate_verification_code,
    parse_ticket_payload,
)
from cinema_booking.models.booking import Booking
from cinema_booking.models.showtime import Showtime
from cinema_booking.schemas.booking import BookingCreate
from cinema_booking.services.cache_service import invalidate_seat_cache
from cinema_booking.services.interfaces.broadcast import SeatBroadcaster, SeatUpdate
from cinema_booking.services.interfaces.storage import ProofStorage
from cinema_booking.services.seat_service import find_seat_conflicts

logger = get_logger(__name__)
settings = get_settings()

MAX_REFERENCE_ATTEMPTS = 3
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def seats_of(booking: Booking) -> list[str]:
    """Decoded seat list; unreadable rows come back empty."""
    try:
        return parse_seat_numbers(booking.seat_numbers)
    except MalformedDataError as e:
        logger.warning("seat_list_malformed", booking_id=booking.id, error=str(e))
        return []


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

def validate_booking_request(data: BookingCreate) -> tuple[list[str], Decimal, str]:
    """
    Check a create request and return (seats, amount, email).
    All missing fields are reported together.
    """
    missing = []
    if data.showtime_id is None:
        missing.append("showtime_id")
    for name in ("customer_name", "customer_email", "movie_title"):
        if _is_blank(getattr(data, name)):
            missing.append(name)
    if data.total_amount is None:
        missing.append("total_amount")
    if data.seat_numbers is None:
        missing.append("seat_numbers")
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )

    seats = coerce_seat_input(data.seat_numbers)
    if not seats:
        raise ValidationError("At least one seat must be selected", missing_fields=["seat_numbers"])

    amount = data.total_amount
    if not amount.is_finite() or amount < 0:
        raise ValidationError("total_amount must be a non-negative amount")

    email = data.customer_email.strip().lower()
    if "@" not in email:
        raise ValidationError("customer_email is not a valid email address")

    return seats, amount, email


async def _unused_reference(db: AsyncSession) -> str:
    for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
        reference = generate_booking_reference()
        taken = await db.execute(
            select(Booking.id).where(Booking.booking_reference == reference)
        )
        if taken.scalar_one_or_none() is None:
            return reference
        logger.info("booking_reference_collision", attempt=attempt)
    raise InvalidTransitionError("Could not allocate a booking reference. Please try again.")


async def create_booking(
    db: AsyncSession,
    data: BookingCreate,
    user_id: Optional[int] = None,
) -> Booking:
    """
    Create a pending booking.

    Occupancy is not checked here; see the module docstring.
    """
    try:
        seats, amount, email = validate_booking_request(data)
    except ValidationError as e:
        booking_creations.labels(result="invalid").inc()
        logger.info("booking_rejected", reason=e.message, missing_fields=e.missing_fields)
        raise

    showtime = await db.get(Showtime, data.showtime_id)
    if not showtime:
        raise NotFoundError(f"Showtime {data.showtime_id} not found")

    booking = Booking(
        booking_reference=await _unused_reference(db),
        verification_code=generate_verification_code(),
        showtime_id=showtime.id,
        movie_title=data.movie_title.strip(),
        seat_numbers=serialize_seat_numbers(seats),
        customer_name=data.customer_name.strip(),
        customer_email=email,
        customer_phone=(data.customer_phone or "").strip() or None,
        user_id=user_id,
        total_amount=amount,
        status=BookingStatus.PENDING.value,
        booking_date=_utcnow(),
    )
    db.add(booking)
    await db.flush()
    await db.refresh(booking)

    booking_creations.labels(result="created").inc()
    logger.info(
        "booking_created",
        booking_id=booking.id,
        booking_reference=booking.booking_reference,
        showtime_id=booking.showtime_id,
        seats=seats,
    )
    return booking


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

async def get_booking_by_reference(db: AsyncSession, booking_reference: str) -> Booking:
    result = await db.execute(
        select(Booking).where(Booking.booking_reference == booking_reference)
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(f"Booking {booking_reference} not found")
    return booking


async def list_bookings(db: AsyncSession, status: Optional[str] = None) -> list[Booking]:
    """All bookings, newest first. Legacy status spellings are accepted in the filter."""
    query = select(Booking).order_by(Booking.booking_date.desc(), Booking.id.desc())
    if status:
        query = query.where(Booking.status == normalize_status(status).value)
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_pending_verifications(db: AsyncSession) -> list[Booking]:
    """Admin queue, oldest upload first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.status == BookingStatus.PENDING_VERIFICATION.value)
        .order_by(Booking.payment_date.asc(), Booking.id.asc())
    )
    return list(result.scalars().all())


async def list_uploaded_payments(db: AsyncSession) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(Booking.payment_proof.is_not(None))
        .order_by(Booking.booking_date.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


async def find_customer_bookings(db: AsyncSession, user_id: int, email: str, username: str) -> list[Booking]:
    """Bookings linked to the account, plus guest bookings made under its email or name."""
    result = await db.execute(
        select(Booking)
        .where(
            or_(
                Booking.user_id == user_id,
                func.lower(Booking.customer_email) == email.lower(),
                func.lower(Booking.customer_name) == username.lower(),
            )
        )
        .order_by(Booking.booking_date.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def _apply_transition(
    db: AsyncSession,
    booking: Booking,
    target: BookingStatus,
    **values,
) -> Booking:
    """Version-guarded status change. Raises InvalidTransitionError if the row moved underneath us."""
    current = booking.status
    ensure_transition(current, target)

    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.version == booking.version,
            Booking.status == current,
        )
        .values(status=target.value, version=Booking.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info(
            "booking_transition_conflict",
            booking_id=booking.id,
            from_status=current,
            to_status=target.value,
        )
        raise InvalidTransitionError(
            "Booking was modified by another request. Reload and try again.",
            current_status=current,
        )

    await db.refresh(booking)
    record_transition("booking", target.value)
    after_commit(db, partial(invalidate_seat_cache, booking.showtime_id))
    logger.info(
        "booking_status_changed",
        booking_reference=booking.booking_reference,
        from_status=current,
        to_status=target.value,
        version=booking.version,
    )
    return booking


def validate_artifact(data: bytes, filename: Optional[str], mimetype: Optional[str]) -> str:
    """Return a storage-safe filename for an uploaded proof."""
    if not data:
        raise ValidationError("Payment proof file is empty", missing_fields=["payment_proof"])
    if len(data) > settings.MAX_PAYMENT_PROOF_BYTES:
        raise ValidationError(
            f"Payment proof exceeds {settings.MAX_PAYMENT_PROOF_BYTES // (1024 * 1024)} MB limit"
        )
    prefix = settings.ALLOWED_PAYMENT_MIMETYPE_PREFIX
    if prefix and not (mimetype or "").startswith(prefix):
        raise ValidationError(f"Only {prefix}* files are accepted as payment proof")

    base = (filename or "payment-proof").replace("\\", "/").rsplit("/", 1)[-1]
    safe = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._") or "payment-proof"
    return safe[:120]


async def store_artifact(
    storage: ProofStorage,
    prefix: str,
    data: bytes,
    filename: Optional[str],
    mimetype: Optional[str],
):
    """Write the artifact and wait for it; nothing about the row changes here."""
    safe_name = validate_artifact(data, filename, mimetype)
    key = f"{prefix}-{int(time.time() * 1000)}-{safe_name}"
    try:
        stored = await storage.save(key, data, mimetype or "application/octet-stream")
    except StorageError as e:
        record_upload(storage.name, stored=False)
        logger.error("payment_proof_store_failed", key=key, backend=storage.name, error=e.message)
        raise
    except Exception as e:
        record_upload(storage.name, stored=False)
        logger.error("payment_proof_store_failed", key=key, backend=storage.name, error=str(e))
        raise StorageError(f"Storage backend failed for {key}") from e
    record_upload(storage.name, stored=True)
    return stored


@dataclass
class PaymentAttachResult:
    booking: Booking
    reference_generated: bool = False


async def attach_payment_proof(
    db: AsyncSession,
    storage: ProofStorage,
    data: bytes,
    filename: Optional[str],
    mimetype: Optional[str],
    booking_reference: Optional[str] = None,
    booking_id: Optional[int] = None,
) -> PaymentAttachResult:
    """
    Attach a payment proof to a pending booking and move it to pending_verification.

    The artifact is stored before the status write. If storing fails the
    booking is untouched; if the status write loses a race the artifact is
    removed again.
    """
    if _is_blank(booking_reference) and booking_id is None:
        raise ValidationError("Booking reference is required", missing_fields=["booking_reference"])

    # Only a pending booking may receive a proof; the status is part of the lookup
    query = select(Booking).where(Booking.status == BookingStatus.PENDING.value)
    if not _is_blank(booking_reference):
        query = query.where(Booking.booking_reference == booking_reference.strip())
    else:
        query = query.where(Booking.id == booking_id)
    result = await db.execute(query.with_for_update())
    booking = result.scalar_one_or_none()
    label = booking_reference or f"id={booking_id}"
    if not booking:
        raise NotFoundError(f"No pending booking found for {label}")

    extra = {}
    if not booking.booking_reference or not booking.verification_code:
        if not settings.LEGACY_DEFERRED_REFERENCE:
            raise ValidationError(
                f"Booking {label} has no reference and cannot accept payment"
            )
        extra["booking_reference"] = booking.booking_reference or await _unused_reference(db)
        extra["verification_code"] = booking.verification_code or generate_verification_code()

    stored = await store_artifact(storage, "payment", data, filename, mimetype)

    try:
        await _apply_transition(
            db,
            booking,
            BookingStatus.PENDING_VERIFICATION,
            payment_proof=stored.reference,
            payment_filename=filename or None,
            payment_mimetype=mimetype or None,
            payment_base64=stored.inline_payload,
            payment_date=_utcnow(),
            **extra,
        )
    except InvalidTransitionError:
        await storage.delete(stored.reference)
        raise NotFoundError(f"No pending booking found for {label}")

    logger.info(
        "payment_proof_attached",
        booking_reference=booking.booking_reference,
        payment_proof=stored.reference,
        size=len(data),
        reference_generated=bool(extra),
    )
    return PaymentAttachResult(booking=booking, reference_generated=bool(extra))


def decode_base64_artifact(payload: str) -> bytes:
    """Accepts bare base64 or a data: URL."""
    body = payload.split(",", 1)[1] if payload.startswith("data:") and "," in payload else payload
    try:
        return base64.b64decode(body.strip(), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("payment_base64 is not valid base64", missing_fields=["payment_base64"])


async def verify_payment(
    db: AsyncSession,
    booking_reference: str,
    verification_code: str,
    action: str,
    admin_identity: str,
    admin_notes: Optional[str] = None,
) -> Booking:
    """
    Admin decision on an uploaded payment.

    Approve re-checks seats against other confirmed bookings for the same
    showtime while holding the showtime lock; any overlap aborts with
    SeatConflictError and leaves the booking in pending_verification.
    """
    decision = normalize_action(action)

    result = await db.execute(
        select(Booking)
        .where(Booking.booking_reference == booking_reference)
        .with_for_update()
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(f"Booking {booking_reference} not found")

    if booking.status != BookingStatus.PENDING_VERIFICATION:
        raise NotFoundError(
            f"Booking {booking_reference} is not awaiting verification (status: {booking.status})"
        )
    if not booking.has_payment_proof:
        raise NotFoundError(f"Booking {booking_reference} has no payment proof attached")
    if not codes_match(booking.verification_code, verification_code):
        record_verification("invalid_code")
        logger.warning("verification_code_mismatch", booking_reference=booking_reference, admin=admin_identity)
        raise InvalidCodeError()

    if decision == VerificationAction.REJECT:
        await _apply_transition(
            db,
            booking,
            BookingStatus.PAYMENT_REJECTED,
            verified_by=admin_identity,
            admin_notes=admin_notes or "Payment rejected by admin",
        )
        record_verification("rejected")
        return booking

    conflicts = await find_seat_conflicts(db, booking)
    if conflicts:
        record_verification("seat_conflict")
        raise SeatConflictError(conflicts)

    await _apply_transition(
        db,
        booking,
        BookingStatus.CONFIRMED,
        verified_at=_utcnow(),
        verified_by=admin_identity,
        admin_notes=admin_notes,
        qr_code_data=build_ticket_payload(booking, seats_of(booking)),
    )
    record_verification("approved")
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_reference: str,
    verification_code: Optional[str] = None,
    require_code: bool = True,
    cancelled_by: Optional[str] = None,
) -> Booking:
    """
    Cancel a booking that is pending, awaiting verification or confirmed.
    Customers prove ownership with the verification code; admins skip that.
    """
    result = await db.execute(
        select(Booking)
        .where(Booking.booking_reference == booking_reference)
        .with_for_update()
    )
    booking = result.scalar_one_or_none()
    if not booking:
        raise NotFoundError(f"Booking {booking_reference} not found")

    if require_code and not codes_match(booking.verification_code, verification_code):
        raise InvalidCodeError()
    if booking.is_verified:
        raise InvalidTransitionError(
            "Ticket has already been used and cannot be cancelled",
            current_status=booking.status,
        )

    values = {}
    if cancelled_by:
        values["admin_notes"] = f"Cancelled by {cancelled_by}"
    await _apply_transition(db, booking, BookingStatus.CANCELLED, **values)
    return booking


# ---------------------------------------------------------------------------
# Door scan
# ---------------------------------------------------------------------------

@dataclass
class ScanResult:
    valid: bool
    message: str
    booking: Booking
    seats: list[str]
    already_used: bool = False
    used_at: Optional[datetime] = None


async def scan_ticket(db: AsyncSession, qr_data, broadcaster: SeatBroadcaster) -> ScanResult:
    """
    Validate a ticket at the door.

    First valid scan flips is_verified and, once committed, broadcasts the seats as occupied.
    Later scans of the same ticket report "already used" with the time of the
    first scan and change nothing.
    """
    try:
        payload = parse_ticket_payload(qr_data)
    except InvalidFormatError:
        record_scan("invalid_format")
        raise

    result = await db.execute(
        select(Booking).where(
            Booking.booking_reference == payload.booking_reference,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
    )
    booking = result.scalar_one_or_none()
    if not booking:
        record_scan("not_found")
        raise NotFoundError("Ticket is not valid or has not been confirmed")

    if not codes_match(booking.verification_code, payload.verification_code):
        record_scan("invalid_code")
        raise InvalidCodeError()

    seats = seats_of(booking)
    if booking.is_verified:
        record_scan("already_used")
        return ScanResult(
            valid=False,
            message="Ticket has already been used",
            booking=booking,
            seats=seats,
            already_used=True,
            used_at=booking.verified_at,
        )

    update_result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.is_verified.is_(False),
        )
        .values(is_verified=True, verified_at=_utcnow(), version=Booking.version + 1)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(booking)

    if update_result.rowcount == 0:
        # Another door scanned the same ticket a moment earlier
        record_scan("already_used")
        return ScanResult(
            valid=False,
            message="Ticket has already been used",
            booking=booking,
            seats=seats,
            already_used=True,
            used_at=booking.verified_at,
        )

    record_scan("valid")
    logger.info("ticket_scanned", booking_reference=booking.booking_reference, seats=seats)

    updates = [
        SeatUpdate(
            seat_number=seat,
            status="occupied",
            booking_reference=booking.booking_reference,
            action="ticket_validated",
        )
        for seat in seats
    ]
    after_commit(db, partial(broadcaster.broadcast, booking.showtime_id, updates))
    return ScanResult(valid=True, message="Ticket valid, enjoy the movie", booking=booking, seats=seats)


async def load_payment_image(
    db: AsyncSession, storage: ProofStorage, booking_reference: str
) -> tuple[bytes, str, str]:
    """Return (bytes, mimetype, filename) of a booking's payment proof."""
    booking = await get_booking_by_reference(db, booking_reference)
    if not booking.payment_proof:
        raise NotFoundError("Payment proof not found")
    data = await storage.load(booking.payment_proof, booking.payment_base64)
    filename = _UNSAFE_FILENAME_CHARS.sub("_", booking.payment_filename or "") or "payment-proof"
    return data, booking.payment_mimetype or "image/jpeg", filename
