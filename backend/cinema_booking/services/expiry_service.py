"""
Expiry sweep for stale bookings and bundle orders.

Two rules, each disabled by a TTL of 0:
  - pending with no upload after PENDING_PAYMENT_TTL_MINUTES -> cancelled
  - pending_verification not reviewed within VERIFICATION_TTL_MINUTES -> payment_rejected

Each rule is one set-based UPDATE guarded on the current status, so a row an
admin is approving at the same moment either loses the sweep (status already
moved) or is swept before the admin's guarded write, which then fails cleanly.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.config import get_settings
from cinema_booking.core.logging import get_logger
from cinema_booking.core.metrics import expired_records
from cinema_booking.db.session import AsyncSessionLocal, after_commit, commit_session, rollback_session
from cinema_booking.domain.lifecycle import BookingStatus
from cinema_booking.models.booking import Booking
from cinema_booking.models.bundle_order import BundleOrder
from cinema_booking.services.cache_service import invalidate_seat_cache

logger = get_logger(__name__)
settings = get_settings()

SYSTEM_ACTOR = "system"


@dataclass
class SweepResult:
    cancelled_bookings: int = 0
    rejected_bookings: int = 0
    cancelled_bundles: int = 0
    rejected_bundles: int = 0
    showtimes_touched: set = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.cancelled_bookings + self.rejected_bookings + self.cancelled_bundles + self.rejected_bundles


async def _expire(db: AsyncSession, model, date_column, from_status, to_status, cutoff, **values) -> tuple[int, set]:
    """Move rows older than cutoff; returns (rows updated, showtime ids the rows belong to)."""
    columns = [model.id]
    if model is Booking:
        columns.append(Booking.showtime_id)
    rows = (
        await db.execute(
            select(*columns).where(model.status == from_status.value, date_column < cutoff)
        )
    ).all()
    if not rows:
        return 0, set()

    ids = [row[0] for row in rows]
    result = await db.execute(
        update(model)
        .where(model.id.in_(ids), model.status == from_status.value)
        .values(status=to_status.value, version=model.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    # Rows moved by someone else between the select and the update are skipped
    if result.rowcount != len(ids):
        logger.info("expiry_partial", model=model.__tablename__, selected=len(ids), updated=result.rowcount)
    kind = "booking" if model is Booking else "bundle"
    expired_records.labels(kind=kind, to_status=to_status.value).inc(result.rowcount)
    showtime_ids = {row[1] for row in rows} if model is Booking else set()
    return result.rowcount, showtime_ids


async def expire_stale_records(db: AsyncSession, now: Optional[datetime] = None) -> SweepResult:
    """Run both expiry rules once inside the caller's transaction."""
    now = now or datetime.now(timezone.utc)
    sweep = SweepResult()

    if settings.VERIFICATION_TTL_MINUTES > 0:
        cutoff = now - timedelta(minutes=settings.VERIFICATION_TTL_MINUTES)
        note = f"Expired: payment not verified within {settings.VERIFICATION_TTL_MINUTES} minutes"
        count, touched = await _expire(
            db, Booking, Booking.payment_date,
            BookingStatus.PENDING_VERIFICATION, BookingStatus.PAYMENT_REJECTED, cutoff,
            admin_notes=note, verified_by=SYSTEM_ACTOR,
        )
        sweep.rejected_bookings = count
        sweep.showtimes_touched.update(touched)
        count, _ = await _expire(
            db, BundleOrder, BundleOrder.payment_date,
            BookingStatus.PENDING_VERIFICATION, BookingStatus.PAYMENT_REJECTED, cutoff,
            admin_notes=note, verified_by=SYSTEM_ACTOR,
        )
        sweep.rejected_bundles = count

    if settings.PENDING_PAYMENT_TTL_MINUTES > 0:
        cutoff = now - timedelta(minutes=settings.PENDING_PAYMENT_TTL_MINUTES)
        note = f"Expired: no payment proof within {settings.PENDING_PAYMENT_TTL_MINUTES} minutes"
        count, touched = await _expire(
            db, Booking, Booking.booking_date,
            BookingStatus.PENDING, BookingStatus.CANCELLED, cutoff,
            admin_notes=note,
        )
        sweep.cancelled_bookings = count
        sweep.showtimes_touched.update(touched)
        count, _ = await _expire(
            db, BundleOrder, BundleOrder.order_date,
            BookingStatus.PENDING, BookingStatus.CANCELLED, cutoff,
            admin_notes=note,
        )
        sweep.cancelled_bundles = count

    for showtime_id in sweep.showtimes_touched:
        after_commit(db, partial(invalidate_seat_cache, showtime_id))

    if sweep.total:
        logger.info(
            "expiry_sweep_completed",
            cancelled_bookings=sweep.cancelled_bookings,
            rejected_bookings=sweep.rejected_bookings,
            cancelled_bundles=sweep.cancelled_bundles,
            rejected_bundles=sweep.rejected_bundles,
        )
    return sweep


async def run_expiry_sweeper(interval_seconds: int) -> None:
    """Background loop started from the application lifespan."""
    logger.info("expiry_sweeper_started", interval_seconds=interval_seconds)
    while True:
        try:
            async with AsyncSessionLocal() as session:
                try:
                    await expire_stale_records(session)
                    await commit_session(session)
                except Exception:
                    await rollback_session(session)
                    raise
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("expiry_sweep_failed", error=str(e))
        await asyncio.sleep(interval_seconds)
