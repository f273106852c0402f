"""
Bundle order service.

Bundles follow the booking payment flow (pending -> pending_verification ->
confirmed / payment_rejected) but hold no seats and carry no door code, so
approval needs neither a seat check nor a verification code.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from cinema_booking.core.logging import get_logger
from cinema_booking.core.metrics import record_transition, record_verification
from cinema_booking.domain.lifecycle import BookingStatus, VerificationAction, ensure_transition, normalize_action, normalize_status
from cinema_booking.domain.tickets import generate_order_reference
from cinema_booking.models.bundle_order import BundleOrder
from cinema_booking.schemas.bundle import BundleOrderCreate
from cinema_booking.services.booking_service import store_artifact
from cinema_booking.services.interfaces.storage import ProofStorage

logger = get_logger(__name__)

REQUIRED_FIELDS = ("bundle_id", "bundle_name", "customer_name", "customer_email", "total_price")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_amount(name: str, value: Optional[Decimal]) -> None:
    if value is not None and (not value.is_finite() or value < 0):
        raise ValidationError(f"{name} must be a non-negative amount")


async def create_bundle_order(
    db: AsyncSession,
    data: BundleOrderCreate,
    user_id: Optional[int] = None,
) -> BundleOrder:
    missing = []
    for name in REQUIRED_FIELDS:
        value = getattr(data, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )

    for name in ("total_price", "bundle_price", "original_price", "savings"):
        _check_amount(name, getattr(data, name))
    quantity = data.quantity if data.quantity is not None else 1
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")

    email = data.customer_email.strip().lower()
    if "@" not in email:
        raise ValidationError("customer_email is not a valid email address")

    order = BundleOrder(
        order_reference=generate_order_reference(),
        bundle_id=data.bundle_id,
        bundle_name=data.bundle_name.strip(),
        bundle_description=data.bundle_description,
        bundle_price=data.bundle_price,
        original_price=data.original_price if data.original_price is not None else data.bundle_price,
        savings=data.savings if data.savings is not None else Decimal("0"),
        quantity=quantity,
        total_price=data.total_price,
        customer_name=data.customer_name.strip(),
        customer_email=email,
        customer_phone=(data.customer_phone or "").strip() or None,
        user_id=user_id,
        status=BookingStatus.PENDING.value,
        order_date=_utcnow(),
    )
    db.add(order)
    await db.flush()
    await db.refresh(order)

    logger.info(
        "bundle_order_created",
        order_reference=order.order_reference,
        bundle_id=order.bundle_id,
        quantity=order.quantity,
    )
    return order


async def get_bundle_order(db: AsyncSession, order_reference: str) -> BundleOrder:
    result = await db.execute(
        select(BundleOrder).where(BundleOrder.order_reference == order_reference)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError(f"Bundle order {order_reference} not found")
    return order


async def list_bundle_orders(db: AsyncSession, status: Optional[str] = None) -> list[BundleOrder]:
    query = select(BundleOrder).order_by(BundleOrder.order_date.desc(), BundleOrder.id.desc())
    if status:
        query = query.where(BundleOrder.status == normalize_status(status).value)
    result = await db.execute(query)
    return list(result.scalars().all())


async def find_customer_bundle_orders(db: AsyncSession, user_id: int, email: str, username: str) -> list[BundleOrder]:
    result = await db.execute(
        select(BundleOrder)
        .where(
            or_(
                BundleOrder.user_id == user_id,
                func.lower(BundleOrder.customer_email) == email.lower(),
                func.lower(BundleOrder.customer_name) == username.lower(),
            )
        )
        .order_by(BundleOrder.order_date.desc(), BundleOrder.id.desc())
    )
    return list(result.scalars().all())


async def _apply_transition(db: AsyncSession, order: BundleOrder, target: BookingStatus, **values) -> BundleOrder:
    current = order.status
    ensure_transition(current, target)

    result = await db.execute(
        update(BundleOrder)
        .where(
            BundleOrder.id == order.id,
            BundleOrder.version == order.version,
            BundleOrder.status == current,
        )
        .values(status=target.value, version=BundleOrder.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info("bundle_transition_conflict", order_reference=order.order_reference, to_status=target.value)
        raise InvalidTransitionError(
            "Bundle order was modified by another request. Reload and try again.",
            current_status=current,
        )

    await db.refresh(order)
    record_transition("bundle", target.value)
    logger.info(
        "bundle_status_changed",
        order_reference=order.order_reference,
        from_status=current,
        to_status=target.value,
    )
    return order


async def attach_bundle_payment(
    db: AsyncSession,
    storage: ProofStorage,
    order_reference: Optional[str],
    data: bytes,
    filename: Optional[str],
    mimetype: Optional[str],
) -> BundleOrder:
    if not order_reference or not order_reference.strip():
        raise ValidationError("Order reference is required", missing_fields=["order_reference"])

    result = await db.execute(
        select(BundleOrder)
        .where(
            BundleOrder.order_reference == order_reference.strip(),
            BundleOrder.status == BookingStatus.PENDING.value,
        )
        .with_for_update()
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError(f"No pending bundle order found for {order_reference}")

    stored = await store_artifact(storage, "bundle", data, filename, mimetype)
    try:
        await _apply_transition(
            db,
            order,
            BookingStatus.PENDING_VERIFICATION,
            payment_proof=stored.reference,
            payment_filename=filename or None,
            payment_mimetype=mimetype or None,
            payment_base64=stored.inline_payload,
            payment_date=_utcnow(),
        )
    except InvalidTransitionError:
        await storage.delete(stored.reference)
        raise NotFoundError(f"No pending bundle order found for {order_reference}")
    return order


async def verify_bundle_payment(
    db: AsyncSession,
    order_reference: str,
    action: str,
    admin_identity: str,
    admin_notes: Optional[str] = None,
) -> BundleOrder:
    decision = normalize_action(action)
    result = await db.execute(
        select(BundleOrder)
        .where(BundleOrder.order_reference == order_reference)
        .with_for_update()
    )
    order = result.scalar_one_or_none()
    if not order:
        raise NotFoundError(f"Bundle order {order_reference} not found")
    if order.status != BookingStatus.PENDING_VERIFICATION or not order.has_payment_proof:
        raise NotFoundError(
            f"Bundle order {order_reference} is not awaiting verification (status: {order.status})"
        )

    if decision == VerificationAction.APPROVE:
        await _apply_transition(
            db,
            order,
            BookingStatus.CONFIRMED,
            verified_at=_utcnow(),
            verified_by=admin_identity,
            admin_notes=admin_notes,
        )
        record_verification("approved")
    else:
        await _apply_transition(
            db,
            order,
            BookingStatus.PAYMENT_REJECTED,
            verified_by=admin_identity,
            admin_notes=admin_notes or "Payment rejected by admin",
        )
        record_verification("rejected")
    return order
