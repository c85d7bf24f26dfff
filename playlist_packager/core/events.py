"""
In-process event bus used for catalog change notification.

The catalog reconciler publishes; playlist stores and the CLI subscribe.
Subscriptions are explicit objects, so a consumer that goes away calls
``unsubscribe()`` (or leaves a ``with`` block) and is never called again.

Events:
    catalog.refreshed  payload: list of Video after a successful refresh
    catalog.changed    payload: dict with 'reason' and 'video_id' after a local mutation
    video.removed      payload: id of a video removed from the live catalog
"""

from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

from ..utils.logger import get_logger


CATALOG_REFRESHED = "catalog.refreshed"
CATALOG_CHANGED = "catalog.changed"
VIDEO_REMOVED = "video.removed"

Callback = Callable[[Any], None]


class Subscription:
    """Handle returned by EventBus.subscribe"""

    def __init__(self, bus: "EventBus", event: str, callback: Callback):
        self._bus = bus
        self.event = event
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving events; safe to call more than once"""
        if self.active:
            self._bus._remove(self)
            self.active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.unsubscribe()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"Subscription({self.event!r}, {state})"


class EventBus:
    """
    Synchronous publish/subscribe channel

    Callbacks run in subscription order on the publisher's task. A callback
    that raises is logged and does not prevent the remaining subscribers
    from being notified.
    """

    def __init__(self):
        self._subscribers: DefaultDict[str, List[Subscription]] = defaultdict(list)
        self.logger = get_logger(__name__)

    def subscribe(self, event: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, event, callback)
        self._subscribers[event].append(subscription)
        self.logger.debug(f"Subscribed {getattr(callback, '__qualname__', callback)} to {event}")
        return subscription

    def publish(self, event: str, payload: Any = None) -> int:
        """
        Deliver ``payload`` to every subscriber of ``event``

        Returns:
            Number of callbacks that completed without raising
        """
        delivered = 0
        # Copy so callbacks may unsubscribe while being notified
        for subscription in list(self._subscribers.get(event, ())):
            try:
                subscription.callback(payload)
                delivered += 1
            except Exception as e:
                self.logger.error(f"Subscriber for {event} failed: {e}", exc_info=True)
        return delivered

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, ()))

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.event)
        if subscribers and subscription in subscribers:
            subscribers.remove(subscription)
