"""
Admin console endpoints: review uploaded payments, approve or reject them,
cancel bookings and schedule showtimes. Every route requires the admin role.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.db.session import get_db
from cinema_booking.models.user import User
from cinema_booking.schemas.booking import (
    BookingDetailResponse,
    BookingResponse,
    UploadedPaymentResponse,
    VerifyPaymentRequest,
)
from cinema_booking.schemas.bundle import BundleOrderResponse, VerifyBundleRequest
from cinema_booking.schemas.showtime import ShowtimeCreate, ShowtimeResponse
from cinema_booking.services import booking_service, bundle_service
from cinema_booking.services.expiry_service import expire_stale_records
from cinema_booking.services.showtime_service import create_showtime
from cinema_booking.core.security import require_admin

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/bookings", response_model=list[BookingResponse])
async def list_bookings(
    status_filter: Optional[str] = Query(None, alias="status"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All bookings, optionally filtered by status (legacy spellings accepted)."""
    return await booking_service.list_bookings(db, status_filter)


@router.get("/bookings/pending", response_model=list[BookingResponse])
async def pending_verifications(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Verification queue, oldest upload first."""
    return await booking_service.list_pending_verifications(db)


@router.get("/payments", response_model=list[UploadedPaymentResponse])
async def uploaded_payments(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.list_uploaded_payments(db)


@router.post("/bookings/{booking_reference}/verify", response_model=BookingDetailResponse)
async def verify_payment(
    booking_reference: str,
    request: VerifyPaymentRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Approve or reject an uploaded payment.

    The admin must read the 6-digit code off the customer's booking. Approval
    fails with 409 and the overlapping seats if another confirmed booking
    already owns any of them; the booking then stays in pending_verification.
    """
    return await booking_service.verify_payment(
        db,
        booking_reference,
        request.verification_code,
        request.action,
        admin_identity=admin.username,
        admin_notes=request.admin_notes,
    )


@router.post("/bookings/{booking_reference}/cancel", response_model=BookingDetailResponse)
async def cancel_booking(
    booking_reference: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.cancel_booking(
        db,
        booking_reference,
        require_code=False,
        cancelled_by=admin.username,
    )


@router.post("/showtimes", response_model=ShowtimeResponse, status_code=status.HTTP_201_CREATED)
async def create_showtime_endpoint(
    showtime_data: ShowtimeCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await create_showtime(db, showtime_data)


@router.get("/bundle-orders", response_model=list[BundleOrderResponse])
async def list_bundle_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await bundle_service.list_bundle_orders(db, status_filter)


@router.post("/bundle-orders/{order_reference}/verify", response_model=BundleOrderResponse)
async def verify_bundle_order(
    order_reference: str,
    request: VerifyBundleRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await bundle_service.verify_bundle_payment(
        db,
        order_reference,
        request.action,
        admin_identity=admin.username,
        admin_notes=request.admin_notes,
    )


@router.post("/maintenance/expire")
async def run_expiry(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Run the expiry sweep now instead of waiting for the background task."""
    sweep = await expire_stale_records(db)
    return {
        "cancelled_bookings": sweep.cancelled_bookings,
        "rejected_bookings": sweep.rejected_bookings,
        "cancelled_bundles": sweep.cancelled_bundles,
        "rejected_bundles": sweep.rejected_bundles,
    }
