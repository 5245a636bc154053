"""
engine/models.py

Data models for the aggregation engine.

LogWindow — the trailing slice of TrafficLogs a rule looks at
Finding   — returned by every rule's analyze() method, one per anomaly
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..models import Severity, TrafficLog


@dataclass(slots=True)
class LogWindow:
    """Logs whose timestamp falls in [start, end], newest first."""

    start: datetime
    end: datetime
    logs: list[TrafficLog] = field(default_factory=list)

    @property
    def seconds(self) -> int:
        return int((self.end - self.start).total_seconds())

    @property
    def label(self) -> str:
        """Human-readable window length, e.g. '5 minutes'."""
        minutes, rem = divmod(self.seconds, 60)
        if rem or minutes == 0:
            return f"{self.seconds} seconds"
        if minutes % 60 == 0:
            hours = minutes // 60
            return f"{hours} hour" if hours == 1 else f"{hours} hours"
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


@dataclass(slots=True)
class Finding:
    """
    One anomaly reported by a rule.

    Evidence must contain only JSON-serializable types; it becomes the
    alert's metadata.
    """

    alert_type: str
    severity: Severity
    title: str
    description: str
    source_ip: str | None = None
    evidence: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"Finding({self.alert_type} {self.severity.value} src={self.source_ip!r})"
