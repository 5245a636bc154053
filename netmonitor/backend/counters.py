"""
backend/counters.py

Lightweight thread-safe counters for the ingestion / aggregation / broadcast
path. No external dependencies — uses Python's threading.Lock.

One PipelineCounters instance is owned by the AppContext and shared by the
engine, the gateway and the ingestion sources; /health reports it.
"""

import threading


class Counter:
    """A thread-safe integer counter."""

    __slots__ = ("_value", "_lock")

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __repr__(self) -> str:  # pragma: no cover
        return f"Counter({self._value})"


class PipelineCounters:
    """Counters for every stage of the realtime pipeline."""

    def __init__(self) -> None:
        self.logs_created: Counter = Counter()
        """TrafficLog records written by any producer."""

        self.alerts_raised: Counter = Counter()
        """Alert records written by any producer."""

        self.metrics_computed: Counter = Counter()
        """TrafficMetric snapshots appended by the rollup task."""

        self.cycles_failed: Counter = Counter()
        """Background cycles (or cycle steps) that hit a store/bridge error."""

        self.cycles_skipped: Counter = Counter()
        """Triggers skipped because the previous run was still in flight."""

        self.messages_sent: Counter = Counter()
        """WebSocket frames delivered."""

        self.connections_dropped: Counter = Counter()
        """WebSocket connections removed after a failed send."""

    def as_dict(self) -> dict:
        """Return all counters as a plain dict (safe for JSON serialisation)."""
        return {
            name: attr.value
            for name, attr in vars(self).items()
            if isinstance(attr, Counter)
        }
