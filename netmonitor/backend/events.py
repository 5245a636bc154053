"""
backend/events.py

In-process publish/subscribe between producers (aggregation engine,
ingestion sources) and delivery (realtime gateway).

Event kinds:
    LogCreated       "log.created"       — a TrafficLog was stored
    AlertCreated     "alert.created"     — an Alert was stored
    MetricsSnapshot  "metrics.snapshot"  — a TrafficMetric was appended

publish() fans out to the subscribers registered at publish time, one after
another, in registration order. Nothing is persisted: a subscriber that is
not registered when an event is published never sees it.

Thread safety: designed to be called exclusively from asyncio coroutines.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, ClassVar, Union

from .models import Alert, TrafficLog, TrafficMetric

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LogCreated:
    record: TrafficLog
    kind: ClassVar[str] = "log.created"


@dataclass(frozen=True, slots=True)
class AlertCreated:
    record: Alert
    kind: ClassVar[str] = "alert.created"


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    record: TrafficMetric
    kind: ClassVar[str] = "metrics.snapshot"


Event = Union[LogCreated, AlertCreated, MetricsSnapshot]
Subscriber = Callable[[Event], Awaitable[None]]


class EventBus:
    """Ordered list of async subscribers with synchronous fan-out."""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self.stats: dict[str, int] = {
            "published": 0,
            "subscriber_errors": 0,
        }

    def subscribe(self, handler: Subscriber) -> None:
        """Register *handler*; registering the same handler twice is a no-op."""
        if handler not in self._subscribers:
            self._subscribers.append(handler)
            logger.debug("Subscriber registered — total=%d", len(self._subscribers))

    def unsubscribe(self, handler: Subscriber) -> None:
        """Remove *handler* (no-op if not registered)."""
        try:
            self._subscribers.remove(handler)
        except ValueError:
            return
        logger.debug("Subscriber removed — remaining=%d", len(self._subscribers))

    async def publish(self, event: Event) -> None:
        """
        Deliver *event* to every subscriber registered right now.

        A failing subscriber is logged and skipped; the publisher never sees it.
        """
        self.stats["published"] += 1
        for handler in list(self._subscribers):
            try:
                await handler(event)
            except Exception:
                self.stats["subscriber_errors"] += 1
                logger.exception("Subscriber %r failed on %s", handler, event.kind)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
