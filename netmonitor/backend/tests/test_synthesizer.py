"""
tests/test_synthesizer.py

Tests for engine/synthesizer.py — synthetic batch shape.
"""

from __future__ import annotations

import random
from datetime import datetime

from netmonitor.backend.engine.synthesizer import (
    COMMON_HOSTS,
    CORPORATE_HOSTS,
    SUSPICIOUS_HOSTS,
    TrafficSynthesizer,
)
from netmonitor.backend.models import Action, Severity, TrafficLog


def synth(hour: int, seed: int = 1, **kwargs) -> TrafficSynthesizer:
    return TrafficSynthesizer(
        rng=random.Random(seed),
        clock=lambda: datetime(2025, 1, 6, hour, 30),
        **kwargs,
    )


class TestBusinessHours:

    def test_inside_window(self):
        assert synth(9).is_business_hours()
        assert synth(17).is_business_hours()

    def test_outside_window(self):
        assert not synth(8).is_business_hours()
        assert not synth(18).is_business_hours()


class TestBatchShape:

    def test_off_hours_batch_size_bounds(self):
        s = synth(3, suspicious_probability=0.0)
        for _ in range(50):
            assert 1 <= len(s.generate_batch().normal) <= 5

    def test_business_hours_batch_size_bounds(self):
        s = synth(11, suspicious_probability=0.0)
        sizes = [len(s.generate_batch().normal) for _ in range(200)]
        assert min(sizes) >= 1
        assert max(sizes) <= 15
        assert max(sizes) > 5

    def test_off_hours_never_uses_corporate_hosts(self):
        s = synth(3, suspicious_probability=0.0)
        hosts = {log.destination_host for _ in range(100) for log in s.generate_batch().normal}
        assert hosts <= set(COMMON_HOSTS)

    def test_business_hours_may_use_corporate_hosts(self):
        s = synth(11, suspicious_probability=0.0)
        hosts = {log.destination_host for _ in range(100) for log in s.generate_batch().normal}
        assert hosts <= set(COMMON_HOSTS) | set(CORPORATE_HOSTS)

    def test_normal_logs_are_valid_allow_records(self):
        s = synth(11, suspicious_probability=0.0)
        for log in s.generate_batch().normal:
            assert log.action is Action.ALLOW
            assert 100 <= log.data_size <= 1_099_999
            assert 50 <= log.duration < 3050
            assert "userAgent" in log.metadata

    def test_https_logs_use_port_443(self):
        s = synth(11, suspicious_probability=0.0)
        logs = [log for _ in range(50) for log in s.generate_batch().normal]
        assert all(log.destination_port == 443 for log in logs if log.protocol == "HTTPS" and "method" in log.metadata)


class TestSuspicious:

    def test_probability_one_always_adds_block(self):
        s = synth(3, suspicious_probability=1.0)
        batch = s.generate_batch()
        assert batch.suspicious is not None
        assert batch.suspicious.action is Action.BLOCK
        assert batch.suspicious.destination_host in SUSPICIOUS_HOSTS

    def test_probability_zero_never_adds_block(self):
        s = synth(3, suspicious_probability=0.0)
        assert all(s.generate_batch().suspicious is None for _ in range(50))

    def test_suspicious_alert_shape(self):
        log = TrafficLog(
            source_ip="192.168.1.1", protocol="HTTP", action=Action.BLOCK,
            destination_host="crypto-miner.xyz", id=42,
        )
        alert = TrafficSynthesizer.suspicious_alert(log)
        assert alert.severity is Severity.HIGH
        assert alert.type == "SUSPICIOUS_TRAFFIC"
        assert alert.source_ip == "192.168.1.1"
        assert "crypto-miner.xyz" in alert.description
        assert alert.metadata == {"blockedHost": "crypto-miner.xyz", "logId": 42}


def test_seeded_generators_are_deterministic():
    a = synth(11, seed=7).generate_batch()
    b = synth(11, seed=7).generate_batch()
    assert [log.destination_host for log in a.normal] == [log.destination_host for log in b.normal]
