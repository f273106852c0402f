"""
Showtime endpoints with Redis caching on list operations.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.db.session import get_db
from cinema_booking.schemas.showtime import ShowtimeResponse, ShowtimeListResponse
from cinema_booking.services.showtime_service import get_showtime, list_showtimes
from cinema_booking.services.cache_service import get_cached_showtimes, set_cached_showtimes
from cinema_booking.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/showtimes", tags=["Showtimes"])


@router.get("/", response_model=ShowtimeListResponse)
async def list_showtimes_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List showtimes with pagination.
    Results are cached in Redis; the cache is dropped when a showtime is added.
    """
    cached = await get_cached_showtimes(page, page_size, upcoming_only)
    if cached:
        logger.info("showtimes_list_cache_hit", page=page)
        cached["cached"] = True
        return ShowtimeListResponse(**cached)

    showtimes, total = await list_showtimes(db, page, page_size, upcoming_only)

    response_data = {
        "showtimes": [ShowtimeResponse.model_validate(s).model_dump(mode="json") for s in showtimes],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_showtimes(page, page_size, upcoming_only, response_data)

    return ShowtimeListResponse(**response_data)


@router.get("/{showtime_id}", response_model=ShowtimeResponse)
async def get_showtime_endpoint(
    showtime_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_showtime(db, showtime_id)
