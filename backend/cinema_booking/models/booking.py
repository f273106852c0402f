"""
Booking model: one reservation attempt for a set of seats at a showtime.

Key design decisions:
- booking_reference is the public identifier; the integer id stays internal
- seat_numbers is JSON text, decoded tolerantly on read (legacy rows vary)
- No unique constraint on seats: two pending bookings may hold the same seat,
  the conflict is resolved when an admin approves the payment
- `version` column enables optimistic locking on every status transition
- Rows are never deleted by the normal flow; cancellation is a status
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from cinema_booking.db.base import Base, TimestampMixin
from cinema_booking.domain.lifecycle import BookingStatus, STATUS_VALUES

_STATUS_CHECK = "status IN ({})".format(", ".join(f"'{s}'" for s in STATUS_VALUES))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(50), unique=True, nullable=True, index=True)
    verification_code = Column(String(10), nullable=True)

    showtime_id = Column(Integer, ForeignKey("showtimes.id"), nullable=False)
    movie_title = Column(String(255), nullable=False)
    seat_numbers = Column(Text, nullable=False, default="[]")

    customer_name = Column(String(100), nullable=False)
    customer_email = Column(String(255), nullable=False, index=True)
    customer_phone = Column(String(20), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(30), nullable=False, default=BookingStatus.PENDING.value)

    payment_proof = Column(String(255), nullable=True)
    payment_filename = Column(String(255), nullable=True)
    payment_mimetype = Column(String(100), nullable=True)
    payment_base64 = Column(Text, nullable=True)

    is_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(String(100), nullable=True)
    admin_notes = Column(Text, nullable=True)
    qr_code_data = Column(Text, nullable=True)

    booking_date = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    payment_date = Column(DateTime(timezone=True), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    showtime = relationship("Showtime", back_populates="bookings", lazy="raise")
    user = relationship("User", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_booking_amount_non_negative"),
        CheckConstraint(_STATUS_CHECK, name="check_booking_status"),
        # Seat map and conflict queries filter on this key plus status
        Index("ix_bookings_showtime_movie_status", "showtime_id", "movie_title", "status"),
        # Expiry sweep: pending_verification ordered by upload time
        Index("ix_bookings_status_payment_date", "status", "payment_date"),
    )

    @property
    def has_payment_proof(self) -> bool:
        return bool(self.payment_proof)

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, ref={self.booking_reference}, status={self.status})>"
