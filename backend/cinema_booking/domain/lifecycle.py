"""
Booking status vocabulary and transition rules.

Older clients and data use several spellings for the same state
(`waiting_verification`, `rejected`, ...). They are folded into the canonical
enum here, at the boundary, so the rest of the code only ever sees
BookingStatus values.

    pending ──proof──▶ pending_verification ──approve──▶ confirmed
                                            └─reject───▶ payment_rejected
    pending / pending_verification / confirmed ──cancel──▶ cancelled
"""

import enum
from typing import Union

from cinema_booking.core.exceptions import InvalidTransitionError, ValidationError


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    PENDING_VERIFICATION = "pending_verification"
    CONFIRMED = "confirmed"
    PAYMENT_REJECTED = "payment_rejected"
    CANCELLED = "cancelled"

    def __str__(self) -> str:
        return self.value


class VerificationAction(str, enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"


STATUS_VALUES = tuple(s.value for s in BookingStatus)

LEGACY_STATUS_SYNONYMS = {
    "waiting_verification": BookingStatus.PENDING_VERIFICATION,
    "waiting-verification": BookingStatus.PENDING_VERIFICATION,
    "pending-verification": BookingStatus.PENDING_VERIFICATION,
    "rejected": BookingStatus.PAYMENT_REJECTED,
    "payment-rejected": BookingStatus.PAYMENT_REJECTED,
    "canceled": BookingStatus.CANCELLED,
}

ACTION_SYNONYMS = {
    "approve": VerificationAction.APPROVE,
    "approved": VerificationAction.APPROVE,
    "confirm": VerificationAction.APPROVE,
    "confirmed": VerificationAction.APPROVE,
    "reject": VerificationAction.REJECT,
    "rejected": VerificationAction.REJECT,
    "decline": VerificationAction.REJECT,
}

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.PENDING_VERIFICATION, BookingStatus.CANCELLED},
    BookingStatus.PENDING_VERIFICATION: {
        BookingStatus.CONFIRMED,
        BookingStatus.PAYMENT_REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {BookingStatus.CANCELLED},
    BookingStatus.PAYMENT_REJECTED: set(),
    BookingStatus.CANCELLED: set(),
}

# Label/css pairs shown in the customer's booking history
STATUS_DISPLAY = {
    BookingStatus.PENDING: ("Pending Payment", "pending"),
    BookingStatus.PENDING_VERIFICATION: ("Awaiting Verification", "pending-verification"),
    BookingStatus.CONFIRMED: ("Confirmed", "confirmed"),
    BookingStatus.PAYMENT_REJECTED: ("Payment Rejected", "rejected"),
    BookingStatus.CANCELLED: ("Cancelled", "cancelled"),
}


def normalize_status(value: Union[str, BookingStatus]) -> BookingStatus:
    """Map a canonical or legacy status string onto BookingStatus."""
    if isinstance(value, BookingStatus):
        return value
    if value is None:
        raise ValidationError("Status is required", missing_fields=["status"])
    key = str(value).strip().lower()
    if key in LEGACY_STATUS_SYNONYMS:
        return LEGACY_STATUS_SYNONYMS[key]
    try:
        return BookingStatus(key)
    except ValueError:
        raise ValidationError(
            f"Unknown status '{value}'. Expected one of: {', '.join(STATUS_VALUES)}"
        )


def normalize_action(value: Union[str, VerificationAction]) -> VerificationAction:
    if isinstance(value, VerificationAction):
        return value
    key = str(value or "").strip().lower()
    if key not in ACTION_SYNONYMS:
        raise ValidationError(f"Unknown action '{value}'. Expected 'approve' or 'reject'")
    return ACTION_SYNONYMS[key]


def can_transition(current: Union[str, BookingStatus], target: Union[str, BookingStatus]) -> bool:
    return normalize_status(target) in ALLOWED_TRANSITIONS[normalize_status(current)]


def ensure_transition(current: Union[str, BookingStatus], target: Union[str, BookingStatus]) -> None:
    current_status = normalize_status(current)
    target_status = normalize_status(target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransitionError(
            f"Cannot move from '{current_status}' to '{target_status}'",
            current_status=current_status.value,
        )


def status_display(value: Union[str, BookingStatus]) -> tuple[str, str]:
    try:
        return STATUS_DISPLAY[normalize_status(value)]
    except ValidationError:
        return str(value), "unknown"
