"""
engine/engine.py

AggregationEngine — the background half of the realtime pipeline.

Three independent periodic tasks, each on its own PeriodicTask:
  1. synthesize_traffic  — store synthetic logs (+ occasional suspicious
                           BLOCK log and HIGH alert), publish each one
  2. detect_anomalies    — run every rule over the trailing anomaly window,
                           store and publish one alert per finding
  3. rollup_metrics      — aggregate the trailing metrics window into one
                           TrafficMetric, store and publish it

Every store failure is caught, logged and counted inside the cycle; nothing
escapes to the scheduler. There is no alert cooldown: a rule
re-fires on every cycle for as long as its condition holds.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
from datetime import datetime, timedelta
from typing import Callable

from ..counters import PipelineCounters
from ..events import AlertCreated, EventBus, LogCreated, MetricsSnapshot
from ..models import Alert, TrafficLog, TrafficMetric, utcnow
from ..storage.repository import TrafficRepository
from . import rules as rules_pkg
from .models import Finding, LogWindow
from .rollup import compute_rollup
from .rules.base import BaseRule
from .scheduler import PeriodicTask
from .synthesizer import TrafficSynthesizer

logger = logging.getLogger(__name__)


class AggregationEngine:
    """
    Args:
        repository:   Record store shared with the ingestion sources and API.
        bus:          Event bus every created record is published to.
        synthesizer:  Synthetic traffic source; None disables the synthesis task.
        counters:     Shared pipeline counters.
        rules:        Anomaly rules; discovered from engine/rules/ when None.
        clock:        Returns the current UTC datetime (window end).
    """

    def __init__(
        self,
        repository: TrafficRepository,
        bus: EventBus,
        synthesizer: TrafficSynthesizer | None = None,
        counters: PipelineCounters | None = None,
        *,
        synthesis_interval: float = 5.0,
        anomaly_interval: float = 30.0,
        metrics_interval: float = 60.0,
        anomaly_window_seconds: int = 300,
        metrics_window_seconds: int = 3600,
        rapid_connection_threshold: int = 20,
        high_bandwidth_bytes: int = 100 * 1024 * 1024,
        rules: list[BaseRule] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repository
        self._bus = bus
        self._synthesizer = synthesizer
        self.counters = counters or PipelineCounters()
        self._clock = clock
        self.anomaly_window = timedelta(seconds=anomaly_window_seconds)
        self.metrics_window = timedelta(seconds=metrics_window_seconds)

        self.rules: list[BaseRule] = rules if rules is not None else self._load_rules()
        thresholds = {
            "rapid_connections": rapid_connection_threshold,
            "high_bandwidth": high_bandwidth_bytes,
        }
        for rule in self.rules:
            if rule.name in thresholds:
                rule.configure(threshold=thresholds[rule.name])

        self.tasks: dict[str, PeriodicTask] = {
            "anomaly_detection": PeriodicTask(
                "anomaly_detection", self.detect_anomalies, anomaly_interval,
                counters=self.counters,
            ),
            "metrics_rollup": PeriodicTask(
                "metrics_rollup", self.rollup_metrics, metrics_interval,
                counters=self.counters,
            ),
        }
        if synthesizer is not None:
            self.tasks["traffic_synthesis"] = PeriodicTask(
                "traffic_synthesis", self.synthesize_traffic, synthesis_interval,
                counters=self.counters,
            )

        self.stats: dict[str, int] = {
            "synthesis_cycles": 0,
            "detection_cycles": 0,
            "rollup_cycles": 0,
            "alerts_fired": 0,
        }
        self._running = False
        logger.info(
            "AggregationEngine loaded %d rule(s): %s | tasks=%s",
            len(self.rules),
            [r.name for r in self.rules],
            sorted(self.tasks),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        for task in self.tasks.values():
            task.start()
        logger.info("Aggregation engine started")

    def stop(self) -> None:
        """Stop scheduling new cycles; in-flight cycles run to completion."""
        if not self._running:
            return
        self._running = False
        for task in self.tasks.values():
            task.stop()
        logger.info("Aggregation engine stopped — stats=%s", self.stats)

    async def wait_idle(self) -> None:
        for task in self.tasks.values():
            await task.wait_idle()

    # ------------------------------------------------------------------
    # Task 1: traffic synthesis
    # ------------------------------------------------------------------

    async def synthesize_traffic(self) -> list[TrafficLog]:
        """Store and publish one synthetic batch. Returns the stored logs."""
        self.stats["synthesis_cycles"] += 1
        if self._synthesizer is None:
            return []

        batch = self._synthesizer.generate_batch()
        created: list[TrafficLog] = []

        for candidate in batch.normal:
            try:
                saved = self._repo.create_log(candidate)
            except Exception as exc:
                self.counters.cycles_failed.inc()
                logger.error("Failed to save network log: %s", exc)
                continue
            created.append(saved)
            self.counters.logs_created.inc()
            await self._bus.publish(LogCreated(saved))

        if batch.suspicious is not None:
            try:
                saved = self._repo.create_log(batch.suspicious)
                self.counters.logs_created.inc()
                created.append(saved)
                await self._bus.publish(LogCreated(saved))

                alert = self._repo.create_alert(TrafficSynthesizer.suspicious_alert(saved))
                self._record_alert(alert)
                await self._bus.publish(AlertCreated(alert))
            except Exception as exc:
                self.counters.cycles_failed.inc()
                logger.error("Failed to save suspicious log/alert: %s", exc)

        logger.debug("Synthesis cycle stored %d log(s)", len(created))
        return created

    # ------------------------------------------------------------------
    # Task 2: anomaly detection
    # ------------------------------------------------------------------

    async def detect_anomalies(self) -> list[Alert]:
        """Evaluate every rule over the anomaly window. Returns the stored alerts."""
        self.stats["detection_cycles"] += 1
        raised: list[Alert] = []
        try:
            window = self._read_window(self.anomaly_window)
            for rule in self.rules:
                for finding in self._safe_analyze(rule, window):
                    alert = self._repo.create_alert(self._make_alert(finding))
                    self._record_alert(alert)
                    raised.append(alert)
                    await self._bus.publish(AlertCreated(alert))
        except Exception as exc:
            self.counters.cycles_failed.inc()
            logger.error("Failed to detect anomalies: %s", exc)
        return raised

    # ------------------------------------------------------------------
    # Task 3: metrics rollup
    # ------------------------------------------------------------------

    async def rollup_metrics(self) -> TrafficMetric | None:
        """Append one TrafficMetric for the metrics window. Returns it, or None on failure."""
        self.stats["rollup_cycles"] += 1
        try:
            window = self._read_window(self.metrics_window)
            active = self._repo.get_active_connections()
            metric = self._repo.create_metric(compute_rollup(window, active))
        except Exception as exc:
            self.counters.cycles_failed.inc()
            logger.error("Failed to aggregate metrics: %s", exc)
            return None

        self.counters.metrics_computed.inc()
        logger.info(
            "Metrics rollup — traffic=%sB active=%d blocked=%d protocols=%d",
            metric.total_traffic,
            metric.active_connections,
            metric.blocked_requests,
            len(metric.protocol_distribution),
        )
        await self._bus.publish(MetricsSnapshot(metric))
        return metric

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read_window(self, length: timedelta) -> LogWindow:
        end = self._clock()
        start = end - length
        return LogWindow(start=start, end=end, logs=self._repo.get_logs_by_time_range(start, end))

    def _safe_analyze(self, rule: BaseRule, window: LogWindow) -> list[Finding]:
        try:
            return rule.analyze(window)
        except Exception as exc:
            logger.exception("Rule %r raised an unhandled exception: %s", rule.name, exc)
            return []

    def _record_alert(self, alert: Alert) -> None:
        self.stats["alerts_fired"] += 1
        self.counters.alerts_raised.inc()
        logger.warning(
            "ALERT [%s] type=%r src=%r — %s",
            alert.severity.value,
            alert.type,
            alert.source_ip,
            alert.description,
        )

    @staticmethod
    def _make_alert(finding: Finding) -> Alert:
        return Alert(
            severity=finding.severity,
            type=finding.alert_type,
            title=finding.title,
            description=finding.description,
            source_ip=finding.source_ip,
            metadata=dict(finding.evidence),
        )

    def _load_rules(self) -> list[BaseRule]:
        rules: list[BaseRule] = []
        for _, module_name, _ in pkgutil.iter_modules(rules_pkg.__path__):
            if module_name == "base":
                continue
            try:
                module = importlib.import_module(f"{rules_pkg.__name__}.{module_name}")
            except Exception as exc:
                logger.error("Failed to import rule module %r: %s", module_name, exc)
                continue
            for _, obj in inspect.getmembers(module, inspect.isclass):
                if (
                    issubclass(obj, BaseRule)
                    and obj is not BaseRule
                    and obj.__module__ == module.__name__
                ):
                    try:
                        instance: BaseRule = obj()
                        if instance.enabled:
                            rules.append(instance)
                    except Exception as exc:
                        logger.error("Failed to instantiate rule %r: %s", obj, exc)
        return sorted(rules, key=lambda r: r.name)
