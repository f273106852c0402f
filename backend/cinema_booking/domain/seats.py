"""
Seat list encoding.

Seat labels are persisted as JSON text (`["A1", "A2"]`). Rows written by older
clients may instead hold a comma separated string (`A1, A2`) or a half-encoded
mix (`["A1", A2`), so reading is tolerant: whatever can be recovered is
returned, and input that cannot be interpreted at all raises
MalformedDataError for the caller to log and skip.
"""

import json
from typing import Any, Iterable, Optional

from cinema_booking.core.exceptions import MalformedDataError

_STRIP_CHARS = " \t\r\n[]\"'"


def _clean_label(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    label = str(value).strip().strip(_STRIP_CHARS).strip()
    return label or None


def dedupe_seats(seats: Iterable[Any]) -> list[str]:
    """Drop blanks and repeats while keeping the customer's ordering."""
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in seats:
        label = _clean_label(raw)
        if label and label not in seen:
            seen.add(label)
            ordered.append(label)
    return ordered


def parse_seat_numbers(raw: Any) -> list[str]:
    """
    Decode a stored seat list.

    Accepts a list, JSON text, or a delimited legacy string. Empty input
    yields an empty list. Raises MalformedDataError for values that are
    neither (e.g. a JSON object, a number, binary junk).
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return dedupe_seats(raw)
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedDataError("seat list is not valid UTF-8") from exc
    if not isinstance(raw, str):
        raise MalformedDataError(f"unsupported seat list type: {type(raw).__name__}")

    text = raw.strip()
    if not text or text in ("[]", "null"):
        return []

    try:
        decoded = json.loads(text)
    except ValueError:
        decoded = None
    else:
        if isinstance(decoded, list):
            return dedupe_seats(decoded)
        if isinstance(decoded, str):
            return dedupe_seats([decoded])
        raise MalformedDataError(f"seat list decoded to {type(decoded).__name__}")

    if "{" in text or "}" in text:
        raise MalformedDataError("seat list looks like a truncated object")
    return dedupe_seats(text.split(","))


def coerce_seat_input(value: Any) -> list[str]:
    """
    Normalize seats supplied by a client at booking time.

    A list, a JSON encoded list, or a single seat label are accepted.
    Returns an empty list for anything without a usable label; the caller
    decides whether that is an error.
    """
    try:
        return parse_seat_numbers(value)
    except MalformedDataError:
        return []


def serialize_seat_numbers(seats: Iterable[str]) -> str:
    return json.dumps(dedupe_seats(seats))


def detect_conflict(candidate_seats: Iterable[str], occupied_seats: Iterable[str]) -> list[str]:
    """Seats of the candidate that are already taken, in the candidate's order."""
    occupied = set(occupied_seats)
    return [seat for seat in dedupe_seats(candidate_seats) if seat in occupied]
