"""
backend/models.py

Record types shared by every stage of the pipeline.

TrafficLog    — one observed network event (immutable once stored)
Alert         — derived security / operational signal (mutated only by resolve)
Connection    — tracked logical connection or listener
TrafficMetric — one aggregation snapshot

All four are created without an id/timestamp; the store assigns both.
Invariants are checked in __post_init__ so invalid input is rejected
with RecordValidationError instead of being silently coerced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class RecordValidationError(ValueError):
    """Raised when a record violates its invariants."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Action(str, Enum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    DENY  = "DENY"


class Severity(str, Enum):
    LOW      = "LOW"
    MEDIUM   = "MEDIUM"
    HIGH     = "HIGH"
    CRITICAL = "CRITICAL"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum(enum_cls: type[Enum], value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise RecordValidationError(
            f"{field_name} must be one of {{{allowed}}}, got {value!r}"
        ) from None


def _non_negative(value: Any, field_name: str, optional: bool = False) -> None:
    if value is None and optional:
        return
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordValidationError(f"{field_name} must be an integer, got {value!r}")
    if value < 0:
        raise RecordValidationError(f"{field_name} must be >= 0, got {value}")


def _required(value: Any, field_name: str) -> None:
    if not isinstance(value, str) or not value:
        raise RecordValidationError(f"{field_name} is required")


# ---------------------------------------------------------------------------
# TrafficLog
# ---------------------------------------------------------------------------

@dataclass
class TrafficLog:
    """One observed network event."""

    source_ip: str
    protocol: str
    action: Action
    destination_host: str | None = None
    destination_ip: str | None = None
    destination_port: int | None = None
    data_size: int = 0
    """Payload size in bytes."""

    duration: int | None = None
    """Milliseconds."""

    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        _required(self.source_ip, "source_ip")
        _required(self.protocol, "protocol")
        self.action = _enum(Action, self.action, "action")
        _non_negative(self.data_size, "data_size")
        _non_negative(self.duration, "duration", optional=True)
        _non_negative(self.destination_port, "destination_port", optional=True)
        if self.metadata is None:
            self.metadata = {}

    def __repr__(self) -> str:
        return (
            f"TrafficLog(id={self.id} {self.action.value} {self.protocol} "
            f"{self.source_ip!r}->{self.destination_host or self.destination_ip!r} "
            f"bytes={self.data_size})"
        )


# ---------------------------------------------------------------------------
# Alert
# ---------------------------------------------------------------------------

@dataclass
class Alert:
    """
    Derived security / operational signal.

    resolved_at is set if and only if is_resolved is True.
    """

    severity: Severity
    type: str
    """Free-form classification, e.g. 'RAPID_CONNECTIONS' | 'HIGH_BANDWIDTH'."""

    title: str
    description: str
    source_ip: str | None = None
    is_resolved: bool = False
    resolved_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        self.severity = _enum(Severity, self.severity, "severity")
        _required(self.type, "type")
        _required(self.title, "title")
        if not isinstance(self.description, str):
            raise RecordValidationError("description is required")
        if self.is_resolved != (self.resolved_at is not None):
            raise RecordValidationError(
                "resolved_at must be set if and only if is_resolved is true"
            )
        if self.metadata is None:
            self.metadata = {}

    def __repr__(self) -> str:
        return (
            f"Alert(id={self.id} {self.type!r} {self.severity.value} "
            f"src={self.source_ip!r} resolved={self.is_resolved})"
        )


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------

CONNECTION_UPDATABLE_FIELDS = frozenset({
    "end_time",
    "destination_ip",
    "destination_port",
    "total_data_size",
    "connection_count",
    "is_active",
    "last_activity",
})


@dataclass
class Connection:
    """A tracked logical connection or listener."""

    source_ip: str
    destination_host: str
    protocol: str
    destination_ip: str | None = None
    destination_port: int | None = None
    total_data_size: int = 0
    connection_count: int = 1
    is_active: bool = True
    end_time: datetime | None = None
    id: int | None = None
    start_time: datetime | None = None
    last_activity: datetime | None = None

    def __post_init__(self) -> None:
        _required(self.source_ip, "source_ip")
        _required(self.destination_host, "destination_host")
        _required(self.protocol, "protocol")
        _non_negative(self.total_data_size, "total_data_size")
        _non_negative(self.destination_port, "destination_port", optional=True)
        _non_negative(self.connection_count, "connection_count")
        if self.connection_count < 1:
            raise RecordValidationError("connection_count must be >= 1")


# ---------------------------------------------------------------------------
# TrafficMetric
# ---------------------------------------------------------------------------

@dataclass
class TrafficMetric:
    """One aggregation snapshot. The most recent one is the dashboard figure."""

    total_traffic: str = "0"
    """Decimal byte count kept as a string to avoid precision loss."""

    active_connections: int = 0
    blocked_requests: int = 0
    protocol_distribution: dict[str, int] = field(default_factory=dict)
    top_destinations: dict[str, int] = field(default_factory=dict)
    id: int | None = None
    timestamp: datetime | None = None

    def __post_init__(self) -> None:
        if not str(self.total_traffic).isdigit():
            raise RecordValidationError(
                f"total_traffic must be a non-negative decimal string, got {self.total_traffic!r}"
            )
        self.total_traffic = str(self.total_traffic)
        _non_negative(self.active_connections, "active_connections")
        _non_negative(self.blocked_requests, "blocked_requests")
