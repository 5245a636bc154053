"""
tests/test_ingest.py

Tests for sources/ingest.py — best-effort bulk ingestion.
"""

from __future__ import annotations

import pytest

from netmonitor.backend.counters import PipelineCounters
from netmonitor.backend.events import AlertCreated, EventBus, LogCreated
from netmonitor.backend.models import Action, Severity
from netmonitor.backend.sources.ingest import ingest_batch
from netmonitor.backend.storage.database import Database
from netmonitor.backend.storage.repository import TrafficRepository

GOOD_LOG = {
    "sourceIp": "10.0.0.7",
    "destinationHost": "example.com",
    "destinationPort": 443,
    "protocol": "HTTPS",
    "action": "ALLOW",
    "dataSize": 512,
}

GOOD_CONNECTION = {
    "sourceIp": "10.0.0.7",
    "destinationHost": "db.internal",
    "protocol": "TCP",
    "totalDataSize": 4096,
}

GOOD_ALERT = {
    "severity": "LOW",
    "type": "EXTERNAL",
    "title": "Scanner finding",
    "description": "Port 23 open",
}


@pytest.fixture
def repo():
    db = Database(":memory:")
    db.init_schema()
    yield TrafficRepository(db)
    db.close()


@pytest.fixture
def bus():
    return EventBus()


class TestIngestBatch:

    @pytest.mark.asyncio
    async def test_all_kinds_stored(self, repo, bus):
        result = await ingest_batch(repo, bus, {
            "logs": [GOOD_LOG],
            "connections": [GOOD_CONNECTION],
            "alerts": [GOOD_ALERT],
        })

        assert result.accepted == {"logs": 1, "connections": 1, "alerts": 1}
        assert result.errors == []
        [log] = repo.get_logs()
        assert log.action is Action.ALLOW
        assert log.data_size == 512
        [conn] = repo.get_active_connections()
        assert conn.total_data_size == 4096
        [alert] = repo.get_alerts()
        assert alert.severity is Severity.LOW

    @pytest.mark.asyncio
    async def test_invalid_item_rejected_rest_kept(self, repo, bus):
        bad_action = dict(GOOD_LOG, action="MAYBE")
        negative = dict(GOOD_LOG, dataSize=-1)

        result = await ingest_batch(repo, bus, {"logs": [GOOD_LOG, bad_action, negative, GOOD_LOG]})

        assert result.accepted["logs"] == 2
        assert [(e["kind"], e["index"]) for e in result.errors] == [("logs", 1), ("logs", 2)]
        assert "action" in result.errors[0]["error"]
        assert len(repo.get_logs()) == 2

    @pytest.mark.asyncio
    async def test_non_list_kind_reported(self, repo, bus):
        result = await ingest_batch(repo, bus, {"logs": {"not": "a list"}, "alerts": [GOOD_ALERT]})
        assert result.errors == [{"kind": "logs", "index": None, "error": "expected a list"}]
        assert result.accepted["alerts"] == 1

    @pytest.mark.asyncio
    async def test_missing_kinds_are_empty(self, repo, bus):
        result = await ingest_batch(repo, bus, {})
        assert result.total_accepted == 0
        assert result.to_dict() == {
            "accepted": {"logs": 0, "connections": 0, "alerts": 0},
            "errors": [],
        }

    @pytest.mark.asyncio
    async def test_logs_and_alerts_published_connections_not(self, repo, bus):
        seen: list = []

        async def record(event):
            seen.append(event)

        bus.subscribe(record)
        counters = PipelineCounters()
        await ingest_batch(repo, bus, {
            "logs": [GOOD_LOG],
            "connections": [GOOD_CONNECTION],
            "alerts": [GOOD_ALERT],
        }, counters=counters)

        assert [type(e) for e in seen] == [LogCreated, AlertCreated]
        assert counters.logs_created.value == 1
        assert counters.alerts_raised.value == 1

    @pytest.mark.asyncio
    async def test_resolved_alert_gets_resolved_at(self, repo, bus):
        await ingest_batch(repo, bus, {"alerts": [dict(GOOD_ALERT, isResolved=True)]})
        [alert] = repo.get_alerts()
        assert alert.is_resolved is True
        assert alert.resolved_at is not None

    @pytest.mark.asyncio
    async def test_snake_case_keys_accepted(self, repo, bus):
        item = {"source_ip": "10.0.0.1", "protocol": "DNS", "action": "DENY", "data_size": 10}
        result = await ingest_batch(repo, bus, {"logs": [item]})
        assert result.accepted["logs"] == 1
