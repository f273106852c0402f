"""
Customer booking endpoints: create, upload payment proof, seat map, cancel,
history, and the door scanner.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.db.session import get_db
from cinema_booking.models.user import User
from cinema_booking.schemas.booking import (
    Base64PaymentUpload,
    BookingCreate,
    BookingDetailResponse,
    CancelBookingRequest,
    MyBookingsResponse,
    OccupiedSeatsResponse,
    PaymentUploadResponse,
    ScanTicketRequest,
    ScanTicketResponse,
    TicketInfo,
)
from cinema_booking.services import booking_service, history_service
from cinema_booking.services.seat_service import get_seat_map
from cinema_booking.services.interfaces.broadcast import SeatBroadcaster
from cinema_booking.services.interfaces.storage import ProofStorage
from cinema_booking.services.strategy_factory import get_proof_storage, get_seat_broadcaster
from cinema_booking.core.config import get_settings
from cinema_booking.core.exceptions import InvalidCodeError, InvalidFormatError, NotFoundError, ValidationError
from cinema_booking.core.security import get_current_user, get_optional_user, require_admin
from cinema_booking.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _upload_response(result: booking_service.PaymentAttachResult) -> PaymentUploadResponse:
    booking = result.booking
    return PaymentUploadResponse(
        message="Payment proof uploaded. Waiting for admin verification.",
        booking_reference=booking.booking_reference,
        # Only sent when the reference was assigned just now
        verification_code=booking.verification_code if result.reference_generated else None,
        payment_proof=booking.payment_proof,
        status=booking.status,
        payment_date=booking.payment_date,
    )


@router.post("/", response_model=BookingDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Create a pending booking.

    Seats are not reserved here; overlapping pending bookings are allowed and
    resolved when an admin approves a payment.
    """
    return await booking_service.create_booking(db, booking_data, user.id if user else None)


@router.get("/occupied-seats", response_model=OccupiedSeatsResponse)
async def occupied_seats(
    showtime_id: Optional[int] = Query(None),
    movie_title: Optional[str] = Query(None),
    include_pending_verification: Optional[bool] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Seat map for one screening. Short-lived Redis cache, invalidated on every status change."""
    missing = [name for name, value in (("showtime_id", showtime_id), ("movie_title", movie_title)) if not value]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", missing_fields=missing)

    include_pending = (
        settings.OCCUPIED_SEATS_INCLUDE_PENDING
        if include_pending_verification is None
        else include_pending_verification
    )
    seats, cached = await get_seat_map(db, showtime_id, movie_title, include_pending)
    return OccupiedSeatsResponse(
        showtime_id=showtime_id,
        movie_title=movie_title,
        include_pending_verification=include_pending,
        occupied_seats=seats,
        cached=cached,
    )


@router.post("/upload-payment", response_model=PaymentUploadResponse)
async def upload_payment(
    booking_reference: Optional[str] = Form(None),
    booking_id: Optional[int] = Form(None),
    payment_proof: Optional[UploadFile] = File(None),
    storage: ProofStorage = Depends(get_proof_storage),
    db: AsyncSession = Depends(get_db),
):
    """Attach a payment proof image (multipart) and move the booking to pending_verification."""
    if payment_proof is None:
        raise ValidationError("Payment proof file is required", missing_fields=["payment_proof"])
    data = await payment_proof.read()
    result = await booking_service.attach_payment_proof(
        db,
        storage,
        data,
        payment_proof.filename,
        payment_proof.content_type,
        booking_reference=booking_reference,
        booking_id=booking_id,
    )
    return _upload_response(result)


@router.post("/upload-payment-base64", response_model=PaymentUploadResponse)
async def upload_payment_base64(
    payload: Base64PaymentUpload,
    storage: ProofStorage = Depends(get_proof_storage),
    db: AsyncSession = Depends(get_db),
):
    """Same as /upload-payment for clients that send the image as base64 JSON."""
    data = booking_service.decode_base64_artifact(payload.payment_base64)
    result = await booking_service.attach_payment_proof(
        db,
        storage,
        data,
        payload.payment_filename,
        payload.payment_mimetype,
        booking_reference=payload.booking_reference,
        booking_id=payload.booking_id,
    )
    return _upload_response(result)


@router.get("/my-bookings", response_model=MyBookingsResponse)
async def my_bookings(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Seat bookings and bundle orders of the signed-in customer, newest first."""
    return await history_service.get_my_bookings(db, user)


@router.post("/scan-ticket", response_model=ScanTicketResponse)
async def scan_ticket(
    request: ScanTicketRequest,
    admin: User = Depends(require_admin),
    broadcaster: SeatBroadcaster = Depends(get_seat_broadcaster),
    db: AsyncSession = Depends(get_db),
):
    """
    Validate a ticket QR code at the door.
    Invalid tickets are reported in the body with valid=false, not as HTTP errors.
    """
    try:
        result = await booking_service.scan_ticket(db, request.qr_data, broadcaster)
    except (InvalidFormatError, NotFoundError, InvalidCodeError) as e:
        logger.info("ticket_scan_rejected", reason=e.error_code, scanned_by=admin.username)
        return ScanTicketResponse(valid=False, message=e.message)

    booking = result.booking
    return ScanTicketResponse(
        valid=result.valid,
        message=result.message,
        already_used=result.already_used,
        used_at=result.used_at,
        ticket_info=TicketInfo(
            movie=booking.movie_title,
            booking_reference=booking.booking_reference,
            showtime_id=booking.showtime_id,
            seats=result.seats,
            customer=booking.customer_name,
            total_paid=booking.total_amount,
            status="ALREADY_USED" if result.already_used else "VERIFIED",
        ),
    )


@router.get("/{booking_reference}", response_model=BookingDetailResponse)
async def get_booking(
    booking_reference: str,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    """Booking status lookup. The ticket code is only included for its owner or an admin."""
    booking = await booking_service.get_booking_by_reference(db, booking_reference)
    detail = BookingDetailResponse.model_validate(booking)
    owner = user is not None and (user.is_admin or booking.user_id == user.id)
    if not owner:
        detail = detail.model_copy(update={"verification_code": None, "qr_code_data": None})
    return detail


@router.get("/{booking_reference}/payment-image")
async def payment_image(
    booking_reference: str,
    admin: User = Depends(require_admin),
    storage: ProofStorage = Depends(get_proof_storage),
    db: AsyncSession = Depends(get_db),
):
    data, mimetype, filename = await booking_service.load_payment_image(db, storage, booking_reference)
    return Response(
        content=data,
        media_type=mimetype,
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.post("/{booking_reference}/cancel", response_model=BookingDetailResponse)
async def cancel_booking(
    booking_reference: str,
    request: CancelBookingRequest,
    db: AsyncSession = Depends(get_db),
):
    """Customer cancellation; the booking's verification code proves ownership."""
    return await booking_service.cancel_booking(
        db,
        booking_reference,
        verification_code=request.verification_code,
        require_code=True,
    )
