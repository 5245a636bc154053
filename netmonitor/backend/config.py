"""
backend/config.py

Application configuration via Pydantic Settings.
All values can be overridden with environment variables or a .env file.

Quick start — create a .env file in your project root:
    DB_PATH=data/netmonitor.db
    SYNTHESIS_ENABLED=false
    ELASTICSEARCH_ENABLED=true
    ELASTICSEARCH_URL=http://localhost:9200
    ELASTICSEARCH_API_KEY=...
"""

from __future__ import annotations

import json
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Storage
    DB_PATH: str = "data/netmonitor.db"

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 5000
    CORS_ORIGINS: Annotated[list[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # Aggregation engine cadence
    SYNTHESIS_ENABLED: bool = True
    SYNTHESIS_INTERVAL_SECONDS: float = 5.0
    ANOMALY_INTERVAL_SECONDS: float = 30.0
    METRICS_INTERVAL_SECONDS: float = 60.0

    # Windows + thresholds
    ANOMALY_WINDOW_SECONDS: int = 300
    METRICS_WINDOW_SECONDS: int = 3600
    RAPID_CONNECTION_THRESHOLD: int = 20
    HIGH_BANDWIDTH_BYTES: int = 100 * 1024 * 1024

    # Synthetic traffic shape
    BUSINESS_HOURS_START: int = 9
    BUSINESS_HOURS_END: int = 17
    BUSINESS_HOURS_MULTIPLIER: int = 3
    SUSPICIOUS_TRAFFIC_PROBABILITY: float = 0.1

    # Realtime gateway / query API
    RECENT_LOGS_ON_CONNECT: int = 10
    EXPORT_MAX_ROWS: int = 1_000

    # Elasticsearch bridge
    ELASTICSEARCH_ENABLED: bool = False
    ELASTICSEARCH_URL: str = "http://localhost:9200"
    ELASTICSEARCH_API_KEY: str = ""
    ELASTICSEARCH_USERNAME: str = "elastic"
    ELASTICSEARCH_PASSWORD: str = ""
    ELASTICSEARCH_INDEX_PATTERN: str = "logs-network"
    ELASTICSEARCH_SYNC_INTERVAL_SECONDS: float = 120.0
    ELASTICSEARCH_SYNC_SIZE: int = 50

    # Host collector (/proc + ss)
    HOST_COLLECTOR_ENABLED: bool = False
    HOST_COLLECTOR_INTERVAL_SECONDS: float = 300.0
    HOST_PROC_PATH: str = "/proc"

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                try:
                    return json.loads(v)
                except ValueError:
                    pass
            return [o.strip() for o in v.split(",") if o.strip()]
        return v

    @field_validator("BUSINESS_HOURS_START", "BUSINESS_HOURS_END")
    @classmethod
    def check_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"hour must be in 0..23, got {v}")
        return v

    @field_validator("EXPORT_MAX_ROWS")
    @classmethod
    def check_export_rows(cls, v: int) -> int:
        # repository pages are capped at 1000 rows
        if not 1 <= v <= 1_000:
            raise ValueError(f"EXPORT_MAX_ROWS must be in 1..1000, got {v}")
        return v


settings = Settings()
