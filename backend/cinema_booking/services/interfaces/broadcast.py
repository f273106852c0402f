"""
Seat broadcast interface.
Lets live seat-map clients learn about door scans without the lifecycle code
knowing how the message travels.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone


@dataclass(frozen=True)
class SeatUpdate:
    seat_number: str
    status: str
    booking_reference: str
    action: str
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)


class SeatBroadcaster(ABC):
    """
    Interface for seat status broadcast channels.

    Implementations:
    - InMemorySeatBroadcaster: in-process handler registry
    - RedisSeatBroadcaster: Redis pub/sub, one channel per showtime

    Delivery is best effort. Implementations must not raise on delivery
    failure; a scanned ticket stays scanned whether or not anyone heard.
    """

    @abstractmethod
    async def broadcast(self, showtime_id: int, updates: list[SeatUpdate]) -> None:
        """
        Publish seat updates for a showtime.

        Args:
            showtime_id: Screening the seats belong to
            updates: One entry per seat
        """
        pass
