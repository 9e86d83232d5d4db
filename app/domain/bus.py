"""Synchronous in-process bus for booking domain events."""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

from app.utils.logger import get_logger


logger = get_logger(__name__)

Handler = Callable[[Any], None]


class EventBus:
    """Publish/subscribe bus for domain events.

    Handlers run synchronously on the publishing thread, in registration
    order. A failing handler propagates to the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Handler]] = defaultdict(list)

    def subscribe(self, message_type: type, handler: Handler) -> None:
        self._subscribers[message_type].append(handler)

    def publish(self, message: Any) -> None:
        handlers = self._subscribers.get(type(message), [])
        logger.debug("Publishing %s to %d handler(s)", type(message).__name__, len(handlers))
        for handler in handlers:
            handler(message)
