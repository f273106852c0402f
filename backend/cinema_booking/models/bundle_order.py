"""
Bundle order model: concession/merchandise bundles paid by transfer.

Same payment-proof-then-verify lifecycle as Booking, without seats and
without a door verification code.
"""

from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from cinema_booking.db.base import Base, TimestampMixin
from cinema_booking.domain.lifecycle import BookingStatus, STATUS_VALUES

_STATUS_CHECK = "status IN ({})".format(", ".join(f"'{s}'" for s in STATUS_VALUES))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BundleOrder(Base, TimestampMixin):
    __tablename__ = "bundle_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_reference = Column(String(50), unique=True, nullable=False, index=True)

    bundle_id = Column(Integer, nullable=False)
    bundle_name = Column(String(255), nullable=False)
    bundle_description = Column(Text, nullable=True)
    bundle_price = Column(Numeric(12, 2), nullable=True)
    original_price = Column(Numeric(12, 2), nullable=True)
    savings = Column(Numeric(12, 2), nullable=False, default=0)
    quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(12, 2), nullable=False)

    customer_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(20), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    status = Column(String(30), nullable=False, default=BookingStatus.PENDING.value)

    payment_proof = Column(String(255), nullable=True)
    payment_filename = Column(String(255), nullable=True)
    payment_mimetype = Column(String(100), nullable=True)
    payment_base64 = Column(Text, nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)

    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(100), nullable=True)
    admin_notes = Column(Text, nullable=True)

    order_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("total_price >= 0", name="check_bundle_total_non_negative"),
        CheckConstraint("quantity >= 1", name="check_bundle_quantity_positive"),
        CheckConstraint(_STATUS_CHECK, name="check_bundle_status"),
        Index("ix_bundle_orders_status_payment_date", "status", "payment_date"),
    )

    @property
    def has_payment_proof(self) -> bool:
        return bool(self.payment_proof)

    def __repr__(self) -> str:
        return f"<BundleOrder(id={self.id}, ref={self.order_reference}, status={self.status})>"
