"""
Pydantic schemas for booking-related request/response validation.

Create requests keep every field optional on purpose: missing fields are
collected by the service and reported together as a 400 with the full list,
instead of FastAPI's one-error-per-field 422.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, field_validator

from cinema_booking.domain.seats import parse_seat_numbers
from cinema_booking.core.exceptions import MalformedDataError


def _decode_seats(value: Any) -> list[str]:
    try:
        return parse_seat_numbers(value)
    except MalformedDataError:
        return []


class BookingCreate(BaseModel):
    showtime_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    seat_numbers: Optional[Union[list[Union[str, int]], str]] = None
    total_amount: Optional[Decimal] = None
    movie_title: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    booking_reference: Optional[str]
    showtime_id: int
    movie_title: str
    seat_numbers: list[str]
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    total_amount: Decimal
    status: str
    has_payment_proof: bool
    payment_filename: Optional[str]
    payment_date: Optional[datetime]
    is_verified: bool
    verified_at: Optional[datetime]
    verified_by: Optional[str]
    admin_notes: Optional[str]
    booking_date: datetime

    model_config = {"from_attributes": True}

    @field_validator("seat_numbers", mode="before")
    @classmethod
    def decode_seats(cls, value: Any) -> list[str]:
        return _decode_seats(value)


class BookingDetailResponse(BookingResponse):
    """Returned to the customer who owns the booking; carries the ticket secrets."""

    verification_code: Optional[str]
    qr_code_data: Optional[str]


class Base64PaymentUpload(BaseModel):
    booking_reference: Optional[str] = None
    booking_id: Optional[int] = None
    payment_base64: str = Field(..., min_length=1)
    payment_filename: str = Field(default="payment-proof", max_length=255)
    payment_mimetype: str = Field(default="image/jpeg", max_length=100)


class PaymentUploadResponse(BaseModel):
    message: str
    booking_reference: str
    verification_code: Optional[str] = None
    payment_proof: str
    status: str
    payment_date: Optional[datetime]


class VerifyPaymentRequest(BaseModel):
    action: str = Field(..., description="approve or reject")
    verification_code: str = Field(..., min_length=1, max_length=10)
    admin_notes: Optional[str] = Field(None, max_length=1000)


class CancelBookingRequest(BaseModel):
    verification_code: Optional[str] = Field(None, max_length=10)


class OccupiedSeatsResponse(BaseModel):
    showtime_id: int
    movie_title: str
    include_pending_verification: bool
    occupied_seats: list[str]
    cached: bool = False


class ScanTicketRequest(BaseModel):
    qr_data: Optional[Union[str, dict]] = None


class TicketInfo(BaseModel):
    movie: str
    booking_reference: str
    showtime_id: int
    seats: list[str]
    customer: str
    total_paid: Decimal
    status: str = "VERIFIED"


class ScanTicketResponse(BaseModel):
    valid: bool
    message: str
    already_used: bool = False
    used_at: Optional[datetime] = None
    ticket_info: Optional[TicketInfo] = None


class UploadedPaymentResponse(BaseModel):
    booking_reference: Optional[str]
    customer_name: str
    movie_title: str
    total_amount: Decimal
    payment_filename: Optional[str]
    payment_mimetype: Optional[str]
    status: str
    booking_date: datetime
    payment_date: Optional[datetime]
    verified_at: Optional[datetime]
    verified_by: Optional[str]

    model_config = {"from_attributes": True}


class MyBookingItem(BaseModel):
    order_type: str  # regular, bundle
    booking_reference: Optional[str]
    verification_code: Optional[str]
    movie_title: str
    seat_numbers: list[str]
    showtime_id: Optional[int]
    total_amount: Decimal
    customer_name: str
    customer_email: str
    status: str
    status_text: str
    status_class: str
    booking_date: datetime
    is_verified: bool
    verified_at: Optional[datetime]
    qr_code_data: Optional[str]


class MyBookingsSummary(BaseModel):
    total: int
    regular: int
    bundle: int
    pending: int
    pending_verification: int
    confirmed: int
    payment_rejected: int
    cancelled: int


class MyBookingsResponse(BaseModel):
    data: list[MyBookingItem]
    summary: MyBookingsSummary
