"""
Bundle order endpoints: order, upload transfer proof, look up status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.db.session import get_db
from cinema_booking.models.user import User
from cinema_booking.schemas.bundle import BundleOrderCreate, BundleOrderResponse, BundlePaymentUploadResponse
from cinema_booking.services import bundle_service
from cinema_booking.services.interfaces.storage import ProofStorage
from cinema_booking.services.strategy_factory import get_proof_storage
from cinema_booking.core.exceptions import ValidationError
from cinema_booking.core.security import get_optional_user

router = APIRouter(prefix="/bundles", tags=["Bundles"])


@router.post("/", response_model=BundleOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_bundle_order(
    order_data: BundleOrderCreate,
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await bundle_service.create_bundle_order(db, order_data, user.id if user else None)


@router.post("/upload-payment", response_model=BundlePaymentUploadResponse)
async def upload_bundle_payment(
    order_reference: Optional[str] = Form(None),
    payment_proof: Optional[UploadFile] = File(None),
    storage: ProofStorage = Depends(get_proof_storage),
    db: AsyncSession = Depends(get_db),
):
    if payment_proof is None:
        raise ValidationError("Payment proof file is required", missing_fields=["payment_proof"])
    data = await payment_proof.read()
    order = await bundle_service.attach_bundle_payment(
        db, storage, order_reference, data, payment_proof.filename, payment_proof.content_type
    )
    return BundlePaymentUploadResponse(
        message="Payment proof uploaded. Waiting for admin verification.",
        order_reference=order.order_reference,
        payment_proof=order.payment_proof,
        status=order.status,
    )


@router.get("/{order_reference}", response_model=BundleOrderResponse)
async def get_bundle_order(order_reference: str, db: AsyncSession = Depends(get_db)):
    return await bundle_service.get_bundle_order(db, order_reference)
