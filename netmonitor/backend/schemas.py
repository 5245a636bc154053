"""
backend/schemas.py

Pydantic wire models for the four record kinds.

Browser clients expect camelCase keys (sourceIp, dataSize, isResolved, ...),
so every model uses an alias generator; Python code keeps snake_case.

    *Out    — record → JSON (REST responses and WebSocket frames)
    *In     — JSON → record (POST bodies and bulk ingestion items)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import (
    Action,
    Alert,
    Connection,
    Severity,
    TrafficLog,
    TrafficMetric,
    utcnow,
)


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class NetworkLogOut(WireModel):
    id: int
    timestamp: datetime
    source_ip: str
    destination_host: str | None = None
    destination_ip: str | None = None
    destination_port: int | None = None
    protocol: str
    action: Action
    data_size: int = 0
    duration: int | None = None
    metadata: dict[str, Any] = {}


class AlertOut(WireModel):
    id: int
    timestamp: datetime
    severity: Severity
    type: str
    title: str
    description: str
    source_ip: str | None = None
    is_resolved: bool = False
    resolved_at: datetime | None = None
    metadata: dict[str, Any] = {}


class ConnectionOut(WireModel):
    id: int
    start_time: datetime
    end_time: datetime | None = None
    source_ip: str
    destination_host: str
    destination_ip: str | None = None
    destination_port: int | None = None
    protocol: str
    total_data_size: int = 0
    connection_count: int = 1
    is_active: bool = True
    last_activity: datetime | None = None


class TrafficMetricOut(WireModel):
    id: int
    timestamp: datetime
    total_traffic: str = "0"
    active_connections: int = 0
    blocked_requests: int = 0
    protocol_distribution: dict[str, int] = {}
    top_destinations: dict[str, int] = {}


class DashboardStatsOut(WireModel):
    total_traffic: str = "0"
    active_connections: int = 0
    blocked_requests: int = 0
    active_alerts: int = 0


def log_to_wire(log: TrafficLog) -> dict:
    return NetworkLogOut.model_validate(log).to_wire()


def alert_to_wire(alert: Alert) -> dict:
    return AlertOut.model_validate(alert).to_wire()


def connection_to_wire(connection: Connection) -> dict:
    return ConnectionOut.model_validate(connection).to_wire()


def metric_to_wire(metric: TrafficMetric) -> dict:
    return TrafficMetricOut.model_validate(metric).to_wire()


def stats_to_wire(stats: dict) -> dict:
    return DashboardStatsOut(**stats).to_wire()


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class NetworkLogIn(WireModel):
    source_ip: str = Field(min_length=1, max_length=45)
    destination_host: str | None = None
    destination_ip: str | None = Field(default=None, max_length=45)
    destination_port: int | None = Field(default=None, ge=0, le=65535)
    protocol: str = Field(min_length=1, max_length=10)
    action: Action
    data_size: int = Field(default=0, ge=0)
    duration: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] = {}

    def to_record(self) -> TrafficLog:
        return TrafficLog(
            source_ip=self.source_ip,
            destination_host=self.destination_host,
            destination_ip=self.destination_ip,
            destination_port=self.destination_port,
            protocol=self.protocol,
            action=self.action,
            data_size=self.data_size,
            duration=self.duration,
            metadata=dict(self.metadata),
        )


class AlertIn(WireModel):
    severity: Severity
    type: str = Field(min_length=1, max_length=50)
    title: str = Field(min_length=1)
    description: str
    source_ip: str | None = Field(default=None, max_length=45)
    is_resolved: bool = False
    metadata: dict[str, Any] = {}

    def to_record(self) -> Alert:
        return Alert(
            severity=self.severity,
            type=self.type,
            title=self.title,
            description=self.description,
            source_ip=self.source_ip,
            is_resolved=self.is_resolved,
            resolved_at=utcnow() if self.is_resolved else None,
            metadata=dict(self.metadata),
        )


class ConnectionIn(WireModel):
    source_ip: str = Field(min_length=1, max_length=45)
    destination_host: str = Field(min_length=1)
    destination_ip: str | None = Field(default=None, max_length=45)
    destination_port: int | None = Field(default=None, ge=0, le=65535)
    protocol: str = Field(min_length=1, max_length=10)
    total_data_size: int = Field(default=0, ge=0)
    connection_count: int = Field(default=1, ge=1)
    is_active: bool = True

    def to_record(self) -> Connection:
        return Connection(
            source_ip=self.source_ip,
            destination_host=self.destination_host,
            destination_ip=self.destination_ip,
            destination_port=self.destination_port,
            protocol=self.protocol,
            total_data_size=self.total_data_size,
            connection_count=self.connection_count,
            is_active=self.is_active,
        )
