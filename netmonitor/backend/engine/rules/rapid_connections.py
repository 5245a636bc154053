"""
engine/rules/rapid_connections.py

Flags any source IP with more than `threshold` logs in the window.
Fires on every cycle while the condition holds (no cooldown).
"""

from __future__ import annotations

import logging
from collections import Counter

from ...models import Severity
from ..models import Finding, LogWindow
from .base import BaseRule

logger = logging.getLogger(__name__)


class RapidConnectionsRule(BaseRule):
    name = "rapid_connections"
    severity = Severity.MEDIUM
    enabled = True

    threshold: int = 20   # strictly more than this many logs per source

    def analyze(self, window: LogWindow) -> list[Finding]:
        try:
            return self._analyze(window)
        except Exception as exc:
            logger.exception("RapidConnectionsRule.analyze() raised: %s", exc)
            return []

    def _analyze(self, window: LogWindow) -> list[Finding]:
        counts = Counter(log.source_ip for log in window.logs)
        findings: list[Finding] = []
        for ip, count in counts.items():
            if count <= self.threshold:
                continue
            findings.append(Finding(
                alert_type="RAPID_CONNECTIONS",
                severity=self.severity,
                title="Rapid Connection Pattern Detected",
                description=f"IP {ip} made {count} connections in the last {window.label}",
                source_ip=ip,
                evidence={
                    "connectionCount": count,
                    "timeWindow": window.label,
                },
            ))
        return findings
