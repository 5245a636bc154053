"""
engine/rules/high_bandwidth.py

Flags a window whose summed data size is strictly above the byte threshold
(100 MiB by default). The description reports megabytes with two decimals.
"""

from __future__ import annotations

import logging

from ...models import Severity
from ..models import Finding, LogWindow
from .base import BaseRule

logger = logging.getLogger(__name__)

_MIB = 1024 * 1024


class HighBandwidthRule(BaseRule):
    name = "high_bandwidth"
    severity = Severity.MEDIUM
    enabled = True

    threshold: int = 100 * _MIB

    def analyze(self, window: LogWindow) -> list[Finding]:
        try:
            return self._analyze(window)
        except Exception as exc:
            logger.exception("HighBandwidthRule.analyze() raised: %s", exc)
            return []

    def _analyze(self, window: LogWindow) -> list[Finding]:
        total = sum(log.data_size or 0 for log in window.logs)
        if total <= self.threshold:
            return []
        return [Finding(
            alert_type="HIGH_BANDWIDTH",
            severity=self.severity,
            title="High Bandwidth Usage Detected",
            description=f"{total / _MIB:.2f} MB transferred in the last {window.label}",
            evidence={
                "dataVolume": total,
                "timeWindow": window.label,
            },
        )]
