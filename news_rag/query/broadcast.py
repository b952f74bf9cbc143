"""
Live-update channel for pushing generated answers to listeners.

Delivery is best-effort and at-most-once: a failing subscriber is
logged and does not affect the caller or other subscribers.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, Dict[str, Any]], None]


@runtime_checkable
class BroadcastChannel(Protocol):
    """Fire-and-forget event broadcast."""

    def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None: ...


class NullBroadcaster:
    """Channel with no listeners."""

    def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None:
        logger.debug(f"No listeners for '{event_name}'")


class InMemoryBroadcaster:
    """Delivers events synchronously to registered callbacks."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback(event_name, payload).

        Returns:
            A function that unsubscribes the callback
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)

        logger.debug(f"Emitting '{event_name}' to {len(subscribers)} subscriber(s)")
        for callback in subscribers:
            try:
                callback(event_name, payload)
            except Exception as e:
                logger.warning(f"Subscriber failed handling '{event_name}': {e}")
