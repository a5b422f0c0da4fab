"""Booking change notifications: "something changed for this streamer, re-query"."""
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List

logger = logging.getLogger(__name__)

ChangeListener = Callable[[int], Awaitable[None]]


class BookingChangeNotifier:
    """
    In-process fan-out of booking change signals per streamer.

    A push subscription or a polling loop can feed ``publish``; listeners only
    learn which streamer changed and must fetch fresh data themselves.
    """

    def __init__(self) -> None:
        self._listeners: Dict[int, List[ChangeListener]] = defaultdict(list)

    def subscribe(self, streamer_id: int, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it"""
        self._listeners[streamer_id].append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(streamer_id, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def listener_count(self, streamer_id: int) -> int:
        return len(self._listeners.get(streamer_id, []))

    async def publish(self, streamer_id: int) -> None:
        for listener in list(self._listeners.get(streamer_id, [])):
            try:
                await listener(streamer_id)
            except Exception:
                # One broken subscriber must not stop the others
                logger.exception("Booking change listener failed for streamer %s", streamer_id)
