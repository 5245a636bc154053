"""
tests/test_context.py

Tests for context.py — wiring and lifecycle of the AppContext.
"""

from __future__ import annotations

import asyncio

import pytest

from netmonitor.backend.config import Settings
from netmonitor.backend.context import build_context
from netmonitor.backend.events import LogCreated
from netmonitor.backend.models import Action, TrafficLog


def make_settings(**overrides) -> Settings:
    values = {
        "DB_PATH": ":memory:",
        "SYNTHESIS_ENABLED": False,
        "ANOMALY_INTERVAL_SECONDS": 3600,
        "METRICS_INTERVAL_SECONDS": 3600,
    }
    values.update(overrides)
    return Settings(**values)


class TestBuildContext:

    def test_components_share_one_repository_and_bus(self):
        ctx = build_context(make_settings())
        try:
            assert ctx.engine._repo is ctx.repository
            assert ctx.bridge._repo is ctx.repository
            assert ctx.collector._repo is ctx.repository
            assert ctx.engine._bus is ctx.bus
            assert ctx.engine.counters is ctx.counters
            assert ctx.gateway.counters is ctx.counters
        finally:
            ctx.db.close()

    def test_synthesis_disabled_drops_task(self):
        ctx = build_context(make_settings())
        try:
            assert "traffic_synthesis" not in ctx.engine.tasks
        finally:
            ctx.db.close()

    def test_settings_flow_into_components(self):
        ctx = build_context(make_settings(
            SYNTHESIS_ENABLED=True,
            RAPID_CONNECTION_THRESHOLD=7,
            RECENT_LOGS_ON_CONNECT=3,
            ELASTICSEARCH_INDEX_PATTERN="fw-*",
            HOST_PROC_PATH="/host/proc",
        ))
        try:
            rules = {r.name: r for r in ctx.engine.rules}
            assert rules["rapid_connections"].threshold == 7
            assert "traffic_synthesis" in ctx.engine.tasks
            assert ctx.gateway.recent_logs_on_connect == 3
            assert ctx.bridge.config.index_pattern == "fw-*"
            assert str(ctx.collector.proc) == "/host/proc"
        finally:
            ctx.db.close()


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_wires_gateway_and_starts_engine(self):
        ctx = build_context(make_settings())
        ctx.start()
        try:
            assert ctx.started
            assert ctx.engine.running
            assert ctx.bus.subscriber_count == 1
            assert not ctx.bridge.task.running
            assert not ctx.collector.task.running
        finally:
            await ctx.stop()

    @pytest.mark.asyncio
    async def test_optional_sources_start_when_enabled(self):
        ctx = build_context(make_settings(
            ELASTICSEARCH_ENABLED=True,
            ELASTICSEARCH_API_KEY="k",
            ELASTICSEARCH_SYNC_INTERVAL_SECONDS=3600,
            HOST_COLLECTOR_ENABLED=True,
            HOST_COLLECTOR_INTERVAL_SECONDS=3600,
        ))
        ctx.start()
        try:
            assert ctx.bridge.task.running
            assert ctx.collector.task.running
        finally:
            await ctx.stop()
        assert not ctx.bridge.task.running
        assert not ctx.collector.task.running

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        ctx = build_context(make_settings())
        ctx.start()
        ctx.start()
        assert ctx.bus.subscriber_count == 1
        await ctx.stop()
        await ctx.stop()
        assert not ctx.started
        assert ctx.bus.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_published_event_reaches_gateway(self):
        ctx = build_context(make_settings())
        ctx.start()
        try:
            log = ctx.repository.create_log(TrafficLog(
                source_ip="10.0.0.1", protocol="TCP", action=Action.ALLOW,
            ))
            # no sockets: the broadcast still runs and delivers nothing
            await ctx.bus.publish(LogCreated(log))
            assert ctx.counters.messages_sent.value == 0
            assert ctx.bus.stats["subscriber_errors"] == 0
        finally:
            await ctx.stop()

    def test_health_shape(self):
        ctx = build_context(make_settings())
        try:
            health = ctx.health()
            assert health["status"] == "ok"
            assert health["ws_connections"] == 0
            assert set(health["tasks"]) == {"anomaly_detection", "metrics_rollup"}
            assert health["counters"]["cycles_failed"] == 0
        finally:
            ctx.db.close()

    @pytest.mark.asyncio
    async def test_skipped_trigger_reported_in_health(self):
        ctx = build_context(make_settings())
        release = asyncio.Event()

        async def blocked_rollup():
            await release.wait()

        rollup = ctx.engine.tasks["metrics_rollup"]
        rollup._job = blocked_rollup
        try:
            assert rollup.trigger() is True
            await asyncio.sleep(0)
            assert rollup.trigger() is False
            assert ctx.health()["counters"]["cycles_skipped"] == 1
        finally:
            release.set()
            await rollup.wait_idle()
            ctx.db.close()
