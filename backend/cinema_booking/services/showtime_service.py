"""
Showtime service handling schedule CRUD operations.
"""

from datetime import datetime, timezone
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.models.showtime import Showtime
from cinema_booking.schemas.showtime import ShowtimeCreate
from cinema_booking.core.exceptions import NotFoundError, ValidationError
from cinema_booking.core.logging import get_logger
from cinema_booking.db.session import after_commit
from cinema_booking.services.cache_service import invalidate_showtime_cache

logger = get_logger(__name__)


async def create_showtime(db: AsyncSession, showtime_data: ShowtimeCreate) -> Showtime:
    """Schedule a new screening."""
    starts_at = showtime_data.starts_at
    if starts_at.tzinfo is None:
        starts_at = starts_at.replace(tzinfo=timezone.utc)
    if starts_at <= datetime.now(timezone.utc):
        raise ValidationError("Showtime must start in the future")

    showtime = Showtime(
        movie_title=showtime_data.movie_title.strip(),
        studio=showtime_data.studio,
        starts_at=starts_at,
        ticket_price=showtime_data.ticket_price,
        seat_capacity=showtime_data.seat_capacity,
    )
    db.add(showtime)
    await db.flush()
    await db.refresh(showtime)
    after_commit(db, invalidate_showtime_cache)

    logger.info("showtime_created", showtime_id=showtime.id, movie_title=showtime.movie_title)
    return showtime


async def get_showtime(db: AsyncSession, showtime_id: int) -> Showtime:
    result = await db.execute(select(Showtime).where(Showtime.id == showtime_id))
    showtime = result.scalar_one_or_none()

    if not showtime:
        raise NotFoundError(f"Showtime {showtime_id} not found")
    return showtime


async def list_showtimes(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Showtime], int]:
    """
    List showtimes with pagination.
    Uses the ix_showtimes_starts_at index for the upcoming filter and ordering.
    """
    query = select(Showtime)

    if upcoming_only:
        query = query.where(Showtime.starts_at >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query
        .order_by(Showtime.starts_at.asc(), Showtime.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    showtimes = list(result.scalars().all())

    return showtimes, total
