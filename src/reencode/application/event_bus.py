"""EventBus — in-process publish/subscribe for run telemetry events."""

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from reencode.domain.models import PipelineEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[PipelineEvent], Coroutine[Any, Any, None]]


@dataclass(frozen=True)
class _Subscription:
    listener: EventListener
    prefix: str

    def matches(self, event: PipelineEvent) -> bool:
        return event.event_name.startswith(self.prefix)


class EventBus:
    """Fan run events out to async listeners.

    A listener may restrict itself to event names starting with a prefix
    (``"pipeline.run_"``). Listener failures are logged and never reach the
    publisher, so a broken journal cannot fail a run.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def subscribe(self, listener: EventListener, event_prefix: str = "") -> None:
        """Register ``listener`` for every event whose name starts with ``event_prefix``."""
        self._subscriptions.append(_Subscription(listener=listener, prefix=event_prefix))

    def unsubscribe(self, listener: EventListener) -> bool:
        """Remove every subscription of ``listener``. Returns True if any existed."""
        before = len(self._subscriptions)
        self._subscriptions = [s for s in self._subscriptions if s.listener is not listener]
        return len(self._subscriptions) != before

    async def publish(self, event: PipelineEvent) -> int:
        """Deliver ``event`` to matching listeners in subscription order.

        Returns the number of listeners that handled it without raising.
        """
        delivered = 0
        for subscription in self._subscriptions:
            if not subscription.matches(event):
                continue
            try:
                await subscription.listener(event)
            except Exception:
                logger.exception(
                    "Listener %s failed for event %s",
                    getattr(subscription.listener, "__name__", repr(subscription.listener)),
                    event.event_name,
                )
            else:
                delivered += 1
        return delivered

    @property
    def listener_count(self) -> int:
        """Number of registered subscriptions."""
        return len(self._subscriptions)
