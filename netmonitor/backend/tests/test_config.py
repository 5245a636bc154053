"""
tests/test_config.py

Tests for config.py — Pydantic Settings validation and defaults.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from netmonitor.backend.config import Settings


class TestSettingsDefaults:

    def test_default_db_path(self):
        s = Settings()
        assert s.DB_PATH == "data/netmonitor.db"

    def test_default_api_port(self):
        s = Settings()
        assert s.API_PORT == 5000

    def test_default_engine_cadence(self):
        s = Settings()
        assert s.SYNTHESIS_INTERVAL_SECONDS == 5.0
        assert s.ANOMALY_INTERVAL_SECONDS == 30.0
        assert s.METRICS_INTERVAL_SECONDS == 60.0

    def test_default_windows(self):
        s = Settings()
        assert s.ANOMALY_WINDOW_SECONDS == 300
        assert s.METRICS_WINDOW_SECONDS == 3600

    def test_default_thresholds(self):
        s = Settings()
        assert s.RAPID_CONNECTION_THRESHOLD == 20
        assert s.HIGH_BANDWIDTH_BYTES == 104_857_600

    def test_optional_sources_disabled_by_default(self):
        s = Settings()
        assert s.ELASTICSEARCH_ENABLED is False
        assert s.HOST_COLLECTOR_ENABLED is False
        assert s.ELASTICSEARCH_SYNC_INTERVAL_SECONDS == 120.0
        assert s.HOST_COLLECTOR_INTERVAL_SECONDS == 300.0

    def test_default_recent_logs_on_connect(self):
        s = Settings()
        assert s.RECENT_LOGS_ON_CONNECT == 10


class TestSettingsOverrides:

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("API_PORT", "9000")
        monkeypatch.setenv("SYNTHESIS_ENABLED", "false")
        s = Settings()
        assert s.API_PORT == 9000
        assert s.SYNTHESIS_ENABLED is False

    def test_cors_origins_comma_separated(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
        s = Settings()
        assert s.CORS_ORIGINS == ["http://a.test", "http://b.test"]

    def test_cors_origins_json_list(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", '["http://a.test"]')
        s = Settings()
        assert s.CORS_ORIGINS == ["http://a.test"]

    def test_invalid_business_hour_rejected(self):
        with pytest.raises(ValidationError):
            Settings(BUSINESS_HOURS_END=24)

    def test_export_rows_bounded_by_page_cap(self):
        assert Settings(EXPORT_MAX_ROWS=1_000).EXPORT_MAX_ROWS == 1_000
        with pytest.raises(ValidationError):
            Settings(EXPORT_MAX_ROWS=1_001)
        with pytest.raises(ValidationError):
            Settings(EXPORT_MAX_ROWS=0)

    def test_invalid_port_type_rejected(self, monkeypatch):
        monkeypatch.setenv("API_PORT", "not-a-port")
        with pytest.raises(ValidationError):
            Settings()
