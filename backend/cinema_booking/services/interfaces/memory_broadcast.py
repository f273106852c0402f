"""
In-process seat broadcaster.
Handlers register explicitly; nothing is published through module globals.
"""

import inspect
from typing import Awaitable, Callable, Union

from cinema_booking.core.logging import get_logger
from cinema_booking.services.interfaces.broadcast import SeatBroadcaster, SeatUpdate

logger = get_logger(__name__)

SeatHandler = Callable[[int, list[SeatUpdate]], Union[None, Awaitable[None]]]


class InMemorySeatBroadcaster(SeatBroadcaster):
    """
    Fan out to handlers registered in this process.

    Use when:
    - Single worker deployment
    - Tests that need to assert on emitted updates
    """

    def __init__(self):
        self._handlers: list[SeatHandler] = []

    def subscribe(self, handler: SeatHandler) -> Callable[[], None]:
        """Register a handler. Returns a callable that removes it again."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def broadcast(self, showtime_id: int, updates: list[SeatUpdate]) -> None:
        for handler in list(self._handlers):
            try:
                result = handler(showtime_id, updates)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "seat_broadcast_handler_failed",
                    showtime_id=showtime_id,
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )
        logger.debug("seat_broadcast_sent", showtime_id=showtime_id, seats=len(updates))
