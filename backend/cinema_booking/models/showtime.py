"""
Showtime model: one screening of a movie in a studio.

Key design decisions:
- Bookings reference showtimes by foreign key; movie_title is still copied onto
  the booking because seat occupancy is keyed on (showtime_id, movie_title)
- The showtime row doubles as the lock target when a payment is approved, so
  two admins confirming overlapping seats are serialized per screening
- Index on `starts_at` for the upcoming-showtimes listing
"""

from sqlalchemy import Column, Integer, String, DateTime, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from cinema_booking.db.base import Base, TimestampMixin


class Showtime(Base, TimestampMixin):
    __tablename__ = "showtimes"

    id = Column(Integer, primary_key=True, index=True)
    movie_title = Column(String(255), nullable=False)
    studio = Column(String(100), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ticket_price = Column(Numeric(12, 2), nullable=False, default=0)
    seat_capacity = Column(Integer, nullable=False)

    bookings = relationship("Booking", back_populates="showtime", lazy="raise")

    __table_args__ = (
        CheckConstraint("seat_capacity > 0", name="check_showtime_capacity_positive"),
        CheckConstraint("ticket_price >= 0", name="check_showtime_price_non_negative"),
        Index("ix_showtimes_starts_at", "starts_at"),
        Index("ix_showtimes_movie_starts", "movie_title", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Showtime(id={self.id}, movie={self.movie_title}, starts_at={self.starts_at})>"
