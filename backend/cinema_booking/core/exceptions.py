"""
Domain error taxonomy.

Services raise these instead of HTTPException so the lifecycle rules can be
exercised without a request. A single handler in main.py renders them as
{"detail": ..., "error": ..., **extra}.
"""

from typing import Any, Iterable, Optional

from fastapi import status


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "booking_error"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.error_code, **self.extra}


class ValidationError(BookingError):
    error_code = "validation_error"

    def __init__(self, message: str, missing_fields: Optional[Iterable[str]] = None):
        super().__init__(message, missing_fields=list(missing_fields or []))
        self.missing_fields = self.extra["missing_fields"]


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class InvalidCodeError(BookingError):
    error_code = "invalid_verification_code"

    def __init__(self, message: str = "Verification code does not match"):
        super().__init__(message)


class InvalidFormatError(BookingError):
    error_code = "invalid_format"


class InvalidTransitionError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_transition"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message, current_status=current_status)
        self.current_status = current_status


class SeatConflictError(BookingError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "seat_conflict"

    def __init__(self, conflicting_seats: Iterable[str]):
        seats = list(conflicting_seats)
        super().__init__(
            f"Seats already confirmed for another booking: {', '.join(seats)}",
            conflicting_seats=seats,
        )
        self.conflicting_seats = seats


class StorageError(BookingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "storage_error"

    def to_dict(self) -> dict:
        # Backend details stay in the logs
        return {"detail": "Payment proof could not be stored", "error": self.error_code}


class MalformedDataError(Exception):
    """Stored data could not be decoded. Recovered from internally, never sent to clients."""
