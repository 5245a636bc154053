"""
tests/test_rollup.py

Tests for engine/rollup.py — metrics snapshot computation.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from netmonitor.backend.engine.models import LogWindow
from netmonitor.backend.engine.rollup import compute_rollup
from netmonitor.backend.models import Action, Connection, TrafficLog

END = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def window(logs):
    return LogWindow(start=END - timedelta(hours=1), end=END, logs=logs)


def log(protocol="HTTPS", action=Action.ALLOW, host="github.com", size=100):
    return TrafficLog(
        source_ip="10.0.0.1", protocol=protocol, action=action,
        destination_host=host, data_size=size,
    )


def test_empty_window_gives_zero_snapshot():
    m = compute_rollup(window([]), [])
    assert m.total_traffic == "0"
    assert m.active_connections == 0
    assert m.blocked_requests == 0
    assert m.protocol_distribution == {}
    assert m.top_destinations == {}


def test_totals_and_distributions():
    logs = [
        log(size=100),
        log(size=200, host="google.com"),
        log(protocol="DNS", size=50, host=None),
        log(protocol="HTTP", action=Action.BLOCK, size=10, host="phishing-attempt.com"),
        log(protocol="HTTP", action=Action.DENY, size=5, host=""),
    ]
    m = compute_rollup(window(logs), [])
    assert m.total_traffic == "365"
    assert m.blocked_requests == 1  # DENY is not BLOCK
    assert m.protocol_distribution == {"HTTPS": 2, "DNS": 1, "HTTP": 2}
    assert m.top_destinations == {"github.com": 1, "google.com": 1, "phishing-attempt.com": 1}


def test_active_connections_counted():
    conns = [
        Connection(source_ip="10.0.0.1", destination_host="a", protocol="TCP"),
        Connection(source_ip="10.0.0.2", destination_host="b", protocol="TCP"),
    ]
    assert compute_rollup(window([]), conns).active_connections == 2


def test_total_traffic_exceeding_int64_kept_exact():
    big = 2 ** 62
    m = compute_rollup(window([log(size=big), log(size=big), log(size=big)]), [])
    assert m.total_traffic == str(3 * big)
