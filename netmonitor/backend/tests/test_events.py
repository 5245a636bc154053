"""
tests/test_events.py

Tests for events.py — tagged events and the in-process EventBus.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from netmonitor.backend.events import AlertCreated, EventBus, LogCreated, MetricsSnapshot
from netmonitor.backend.models import Action, Alert, Severity, TrafficLog, TrafficMetric


def a_log() -> TrafficLog:
    return TrafficLog(source_ip="10.0.0.1", protocol="TCP", action=Action.ALLOW, id=1)


class TestEventKinds:

    def test_kinds(self):
        alert = Alert(severity=Severity.LOW, type="X", title="t", description="d")
        assert LogCreated(a_log()).kind == "log.created"
        assert AlertCreated(alert).kind == "alert.created"
        assert MetricsSnapshot(TrafficMetric()).kind == "metrics.snapshot"

    def test_events_are_frozen(self):
        event = LogCreated(a_log())
        with pytest.raises(AttributeError):
            event.record = a_log()


class TestEventBus:

    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        bus = EventBus()
        h1, h2 = AsyncMock(), AsyncMock()
        bus.subscribe(h1)
        bus.subscribe(h2)

        event = LogCreated(a_log())
        await bus.publish(event)

        h1.assert_awaited_once_with(event)
        h2.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_subscribers_called_in_registration_order(self):
        bus = EventBus()
        calls: list[str] = []

        async def first(_event):
            calls.append("first")

        async def second(_event):
            calls.append("second")

        bus.subscribe(first)
        bus.subscribe(second)
        await bus.publish(LogCreated(a_log()))
        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_duplicate_subscribe_is_noop(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(handler)
        bus.subscribe(handler)
        await bus.publish(LogCreated(a_log()))
        assert handler.await_count == 1
        assert bus.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_affect_others(self):
        bus = EventBus()
        bad = AsyncMock(side_effect=RuntimeError("boom"))
        good = AsyncMock()
        bus.subscribe(bad)
        bus.subscribe(good)

        await bus.publish(LogCreated(a_log()))  # must not raise

        good.assert_awaited_once()
        assert bus.stats["subscriber_errors"] == 1

    @pytest.mark.asyncio
    async def test_unsubscribed_handler_sees_nothing(self):
        bus = EventBus()
        handler = AsyncMock()
        bus.subscribe(handler)
        bus.unsubscribe(handler)
        await bus.publish(LogCreated(a_log()))
        handler.assert_not_awaited()

    def test_unsubscribe_unknown_is_noop(self):
        bus = EventBus()
        bus.unsubscribe(AsyncMock())
        assert bus.subscriber_count == 0
