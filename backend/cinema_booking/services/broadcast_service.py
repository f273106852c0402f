"""
Redis pub/sub seat broadcaster.

Publishes a JSON message on `<prefix>:<showtime_id>` after a door scan so seat
map frontends (or a websocket relay in front of them) can mark the seats
occupied.

Failure mode:
  Redis being down or disabled never fails the scan. The ticket state lives
  in the database; the broadcast is advisory only and is logged and dropped.
"""

import json

from cinema_booking.core.config import get_settings
from cinema_booking.core.logging import get_logger
from cinema_booking.services.cache_service import get_redis
from cinema_booking.services.interfaces.broadcast import SeatBroadcaster, SeatUpdate

logger = get_logger(__name__)
settings = get_settings()


class RedisSeatBroadcaster(SeatBroadcaster):
    """
    Redis-backed broadcaster.

    Use when:
    - Several API workers serve the same venue
    - Seat maps are pushed by a separate realtime service
    """

    def __init__(self, channel_prefix: str = None):
        self.channel_prefix = channel_prefix or settings.SEAT_BROADCAST_CHANNEL_PREFIX

    def channel_for(self, showtime_id: int) -> str:
        return f"{self.channel_prefix}:{showtime_id}"

    async def broadcast(self, showtime_id: int, updates: list[SeatUpdate]) -> None:
        client = await get_redis()
        if not client:
            logger.info("seat_broadcast_skipped", showtime_id=showtime_id, reason="redis_unavailable")
            return

        message = json.dumps({
            "showtime_id": showtime_id,
            "updates": [u.to_dict() for u in updates],
        })
        channel = self.channel_for(showtime_id)
        try:
            receivers = await client.publish(channel, message)
            logger.info("seat_broadcast_published", channel=channel, receivers=receivers, seats=len(updates))
        except Exception as e:
            logger.error("seat_broadcast_failed", channel=channel, error=str(e))
