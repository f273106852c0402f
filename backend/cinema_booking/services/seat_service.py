"""
Seat conflict resolver.

CONCURRENCY STRATEGY: Check at verification, lock per showtime
==============================================================

Creating a booking never reserves anything. Two customers may both hold a
`pending` booking for seat A1; whoever's payment an admin approves first
gets it, and approving the second one fails with SeatConflictError.

Problem:
  Approval is read-then-write. Two admins approving overlapping bookings at
  the same moment could both read "A1 is free" and both confirm.

Solution:
  Before computing the occupied set, the approval takes a row lock on the
  showtime (SELECT ... FOR UPDATE). Every approval for the same screening
  queues behind that lock, so the check and the `confirmed` write happen
  atomically with respect to other approvals. Approvals for different
  screenings do not contend.

  The booking row itself is also locked and its status transition is
  version-guarded (see booking_service), so a concurrent reject/cancel of
  the same booking cannot interleave either.

Seat map reads for customers go through the same occupied-set computation
without locks, optionally counting `pending_verification` bookings as held.
"""

import time
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.exceptions import MalformedDataError, NotFoundError
from cinema_booking.core.logging import get_logger
from cinema_booking.core.metrics import malformed_seat_rows, seat_conflict_check_latency
from cinema_booking.domain.lifecycle import BookingStatus
from cinema_booking.domain.seats import detect_conflict, parse_seat_numbers
from cinema_booking.models.booking import Booking
from cinema_booking.models.showtime import Showtime
from cinema_booking.services.cache_service import get_cached_occupied_seats, set_cached_occupied_seats

logger = get_logger(__name__)


def _occupying_statuses(include_pending_verification: bool) -> list[str]:
    statuses = [BookingStatus.CONFIRMED.value]
    if include_pending_verification:
        statuses.append(BookingStatus.PENDING_VERIFICATION.value)
    return statuses


def union_seat_rows(rows: Iterable[tuple]) -> set[str]:
    """
    Union (booking_id, seat_numbers) rows into one set.
    Rows that cannot be decoded are logged and skipped.
    """
    occupied: set[str] = set()
    for booking_id, raw in rows:
        try:
            occupied.update(parse_seat_numbers(raw))
        except MalformedDataError as e:
            malformed_seat_rows.inc()
            logger.warning("seat_list_malformed", booking_id=booking_id, error=str(e))
    return occupied


async def compute_occupied_seats(
    db: AsyncSession,
    showtime_id: int,
    movie_title: str,
    include_pending_verification: bool,
    exclude_booking_id: Optional[int] = None,
) -> set[str]:
    """Seats held by confirmed (and optionally pending_verification) bookings for the key."""
    query = select(Booking.id, Booking.seat_numbers).where(
        Booking.showtime_id == showtime_id,
        Booking.movie_title == movie_title,
        Booking.status.in_(_occupying_statuses(include_pending_verification)),
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)

    result = await db.execute(query)
    return union_seat_rows(result.all())


async def lock_showtime(db: AsyncSession, showtime_id: int) -> Showtime:
    result = await db.execute(
        select(Showtime).where(Showtime.id == showtime_id).with_for_update()
    )
    showtime = result.scalar_one_or_none()
    if not showtime:
        raise NotFoundError(f"Showtime {showtime_id} not found")
    return showtime


async def find_seat_conflicts(db: AsyncSession, booking: Booking) -> list[str]:
    """
    Lock the booking's showtime and return the booking's seats that another
    confirmed booking for the same (showtime, movie) already owns.

    Must run inside the transaction that writes the confirmation.
    """
    start = time.perf_counter()
    await lock_showtime(db, booking.showtime_id)

    occupied = await compute_occupied_seats(
        db,
        booking.showtime_id,
        booking.movie_title,
        include_pending_verification=False,
        exclude_booking_id=booking.id,
    )
    try:
        candidate = parse_seat_numbers(booking.seat_numbers)
    except MalformedDataError as e:
        # Seats were validated on creation; an unreadable list here means
        # the row was edited by hand. Treat it as holding nothing.
        malformed_seat_rows.inc()
        logger.warning("seat_list_malformed", booking_id=booking.id, error=str(e))
        candidate = []

    conflicts = detect_conflict(candidate, occupied)
    seat_conflict_check_latency.observe(time.perf_counter() - start)

    if conflicts:
        logger.warning(
            "seat_conflict_detected",
            booking_reference=booking.booking_reference,
            showtime_id=booking.showtime_id,
            conflicting_seats=conflicts,
        )
    return conflicts


async def get_seat_map(
    db: AsyncSession,
    showtime_id: int,
    movie_title: str,
    include_pending_verification: bool,
) -> tuple[list[str], bool]:
    """Public seat map: sorted occupied labels, plus whether it came from cache."""
    cached = await get_cached_occupied_seats(showtime_id, movie_title, include_pending_verification)
    if cached is not None:
        return cached, True

    seats = sorted(
        await compute_occupied_seats(db, showtime_id, movie_title, include_pending_verification)
    )
    await set_cached_occupied_seats(showtime_id, movie_title, include_pending_verification, seats)
    return seats, False
