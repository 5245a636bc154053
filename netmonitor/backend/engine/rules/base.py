"""
engine/rules/base.py

Abstract base class that all anomaly rules must implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ...models import Severity
from ..models import Finding, LogWindow


class BaseRule(ABC):
    """
    Contract that every anomaly rule must satisfy.

    Class-level attributes:
        name     — unique snake_case identifier, used in log lines
        severity — Severity of the alerts this rule raises
        enabled  — False to keep a rule on disk without loading it

    The analyze() method MUST:
        - Never raise an exception (catch internally, return [])
        - Return only JSON-serializable types in evidence
    """

    name: str = ""
    severity: Severity = Severity.LOW
    enabled: bool = True

    @abstractmethod
    def analyze(self, window: LogWindow) -> list[Finding]:
        """Return one Finding per anomaly in *window* (empty list if none)."""
        ...

    def configure(self, **thresholds) -> None:
        """Override class-level thresholds on this instance (unknown keys ignored)."""
        for key, value in thresholds.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def __repr__(self) -> str:
        return f"<Rule:{self.name} enabled={self.enabled}>"
