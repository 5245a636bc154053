"""
tests/test_gateway.py

Tests for api/gateway.py — realtime WebSocket fan-out and initial snapshot.
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi.websockets import WebSocketState

from netmonitor.backend.api.gateway import RealtimeGateway
from netmonitor.backend.counters import PipelineCounters
from netmonitor.backend.events import AlertCreated, EventBus, LogCreated, MetricsSnapshot
from netmonitor.backend.models import Action, Alert, Severity, TrafficLog, TrafficMetric
from netmonitor.backend.storage.database import Database
from netmonitor.backend.storage.repository import TrafficRepository


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def repo():
    db = Database(":memory:")
    db.init_schema()
    yield TrafficRepository(db)
    db.close()


@pytest.fixture
def gateway(repo):
    return RealtimeGateway(repo, counters=PipelineCounters())


def mock_ws():
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.send_text = AsyncMock()
    ws.client_state = WebSocketState.CONNECTED
    ws.application_state = WebSocketState.CONNECTED
    return ws


def frames(ws) -> list[dict]:
    return [json.loads(call.args[0]) for call in ws.send_text.call_args_list]


def a_log(repo, ip: str = "10.0.0.1") -> TrafficLog:
    return repo.create_log(TrafficLog(
        source_ip=ip, protocol="HTTPS", action=Action.ALLOW,
        destination_host="github.com", data_size=1234,
    ))


def an_alert(repo) -> Alert:
    return repo.create_alert(Alert(
        severity=Severity.MEDIUM, type="RAPID_CONNECTIONS",
        title="Rapid Connection Pattern Detected", description="x", source_ip="10.0.0.5",
    ))


async def connected(gateway, ws):
    """Connect *ws* and wait for its snapshot so later frames are ordered."""
    task = await gateway.connect(ws)
    await task
    return ws


# ---------------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------------

class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self, gateway):
        ws = await connected(gateway, mock_ws())
        ws.accept.assert_awaited_once()
        assert gateway.connection_count == 1

    @pytest.mark.asyncio
    async def test_disconnect_removes_connection(self, gateway):
        ws = await connected(gateway, mock_ws())
        gateway.disconnect(ws)
        assert gateway.connection_count == 0

    def test_disconnect_unknown_is_noop(self, gateway):
        gateway.disconnect(mock_ws())
        assert gateway.connection_count == 0

    @pytest.mark.asyncio
    async def test_close_cancels_and_awaits_pending_snapshots(self, gateway):
        never = asyncio.Event()

        async def stuck_send(_payload):
            await never.wait()

        ws = mock_ws()
        ws.send_text = AsyncMock(side_effect=stuck_send)
        task = await gateway.connect(ws)
        await asyncio.sleep(0)
        assert not task.done()

        await gateway.close()

        assert task.cancelled()
        assert gateway.connection_count == 0


# ---------------------------------------------------------------------------
# Initial snapshot
# ---------------------------------------------------------------------------

class TestInitialData:

    @pytest.mark.asyncio
    async def test_snapshot_shape(self, gateway, repo):
        a_log(repo)
        ws = await connected(gateway, mock_ws())

        [msg] = frames(ws)
        assert msg["type"] == "initialData"
        assert set(msg["data"]) == {"stats", "alerts", "logs"}
        assert msg["data"]["stats"] == {
            "totalTraffic": "0",
            "activeConnections": 0,
            "blockedRequests": 0,
            "activeAlerts": 0,
        }
        [log] = msg["data"]["logs"]
        assert log["sourceIp"] == "10.0.0.1"
        assert log["dataSize"] == 1234

    @pytest.mark.asyncio
    async def test_snapshot_alerts_only_unresolved(self, gateway, repo):
        resolved = an_alert(repo)
        open_alert = an_alert(repo)
        repo.resolve_alert(resolved.id)

        ws = await connected(gateway, mock_ws())
        alerts = frames(ws)[0]["data"]["alerts"]
        assert [a["id"] for a in alerts] == [open_alert.id]
        assert all(a["isResolved"] is False for a in alerts)

    @pytest.mark.asyncio
    async def test_snapshot_logs_capped_and_newest_first(self, gateway, repo):
        ids = [a_log(repo, ip=f"10.0.0.{i}").id for i in range(15)]
        ws = await connected(gateway, mock_ws())

        logs = frames(ws)[0]["data"]["logs"]
        assert len(logs) == 10
        assert [log["id"] for log in logs] == sorted(ids, reverse=True)[:10]

    @pytest.mark.asyncio
    async def test_snapshot_failure_keeps_connection_open(self, gateway, repo):
        ws = mock_ws()
        ws.send_text = AsyncMock(side_effect=RuntimeError("send failed"))
        await connected(gateway, ws)
        assert gateway.connection_count == 1
        ws.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_snapshot_skipped_when_socket_already_closed(self, gateway):
        ws = mock_ws()
        ws.client_state = WebSocketState.DISCONNECTED
        await connected(gateway, ws)
        ws.send_text.assert_not_called()


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------

class TestBroadcast:

    @pytest.mark.asyncio
    async def test_each_open_connection_gets_exactly_one_copy(self, gateway, repo):
        sockets = [await connected(gateway, mock_ws()) for _ in range(3)]
        log = a_log(repo)

        await gateway.handle_event(LogCreated(log))

        for ws in sockets:
            network_frames = [f for f in frames(ws) if f["type"] == "networkLog"]
            assert len(network_frames) == 1
            assert network_frames[0]["data"]["id"] == log.id

    @pytest.mark.asyncio
    async def test_closed_before_publish_gets_nothing(self, gateway, repo):
        open_ws = await connected(gateway, mock_ws())
        gone_ws = await connected(gateway, mock_ws())
        gateway.disconnect(gone_ws)
        closing_ws = await connected(gateway, mock_ws())
        closing_ws.application_state = WebSocketState.DISCONNECTED

        await gateway.handle_event(LogCreated(a_log(repo)))

        assert [f["type"] for f in frames(open_ws)] == ["initialData", "networkLog"]
        assert [f["type"] for f in frames(gone_ws)] == ["initialData"]
        assert [f["type"] for f in frames(closing_ws)] == ["initialData"]

    @pytest.mark.asyncio
    async def test_dead_connection_dropped_others_still_served(self, gateway, repo):
        good = await connected(gateway, mock_ws())
        bad = await connected(gateway, mock_ws())
        bad.send_text = AsyncMock(side_effect=RuntimeError("connection reset"))

        delivered = await gateway.broadcast({"type": "ping"})

        assert delivered == 1
        assert gateway.connection_count == 1
        assert frames(good)[-1] == {"type": "ping"}
        assert gateway.counters.connections_dropped.value == 1

    @pytest.mark.asyncio
    async def test_frame_types_per_event(self, gateway, repo):
        ws = await connected(gateway, mock_ws())
        metric = repo.create_metric(TrafficMetric(total_traffic="99"))

        await gateway.handle_event(LogCreated(a_log(repo)))
        await gateway.handle_event(AlertCreated(an_alert(repo)))
        await gateway.handle_event(MetricsSnapshot(metric))

        assert [f["type"] for f in frames(ws)] == [
            "initialData", "networkLog", "alert", "metricsUpdate",
        ]
        assert frames(ws)[-1]["data"]["totalTraffic"] == "99"

    @pytest.mark.asyncio
    async def test_publish_order_preserved_via_bus(self, gateway, repo):
        bus = EventBus()
        bus.subscribe(gateway.handle_event)
        ws = await connected(gateway, mock_ws())

        log = a_log(repo)
        alert = an_alert(repo)
        await bus.publish(LogCreated(log))
        await bus.publish(AlertCreated(alert))

        types = [f["type"] for f in frames(ws)]
        assert types == ["initialData", "networkLog", "alert"]
        assert frames(ws)[1]["data"]["id"] == log.id

    @pytest.mark.asyncio
    async def test_concurrent_broadcasts_do_not_interleave(self, gateway):
        ws = await connected(gateway, mock_ws())

        async def slow_send(_payload):
            await asyncio.sleep(0)

        ws.send_text = AsyncMock(side_effect=slow_send)
        await asyncio.gather(*(gateway.broadcast({"n": i}) for i in range(5)))

        sent = [json.loads(c.args[0])["n"] for c in ws.send_text.call_args_list]
        assert sent == [0, 1, 2, 3, 4]


# ---------------------------------------------------------------------------
# Inbound messages
# ---------------------------------------------------------------------------

class TestInbound:

    def test_subscribe_is_logged(self, gateway, caplog):
        with caplog.at_level("INFO"):
            gateway.handle_message(json.dumps({"type": "subscribe", "channel": "alerts"}))
        assert "Client subscribed to: alerts" in caplog.text

    def test_malformed_json_is_ignored(self, gateway, caplog):
        gateway.handle_message("{not json")  # must not raise
        assert "Invalid WebSocket message" in caplog.text
