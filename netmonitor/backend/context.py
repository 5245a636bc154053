"""
backend/context.py

AppContext — every long-lived object of one running backend, built
explicitly from Settings and handed to create_app().

    db → repository ─┬→ engine (+ synthesizer)  ─┐
                     ├→ elasticsearch bridge    ─┼→ bus → gateway → WebSockets
                     ├→ host collector          ─┘
                     └→ query API

start() wires the gateway to the bus and starts the periodic tasks;
stop() stops them and closes the database. Both are idempotent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .api.gateway import RealtimeGateway
from .config import Settings
from .counters import PipelineCounters
from .engine import AggregationEngine, TrafficSynthesizer
from .events import EventBus
from .sources import ElasticsearchBridge, ElasticsearchConfig, HostCollector
from .storage import Database, TrafficRepository

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    db: Database
    repository: TrafficRepository
    bus: EventBus
    gateway: RealtimeGateway
    engine: AggregationEngine
    bridge: ElasticsearchBridge
    collector: HostCollector
    counters: PipelineCounters
    started: bool = field(default=False, init=False)

    def start(self) -> None:
        """Must be called from within a running event loop."""
        if self.started:
            return
        self.bus.subscribe(self.gateway.handle_event)
        self.engine.start()
        if self.settings.ELASTICSEARCH_ENABLED:
            self.bridge.start()
        if self.settings.HOST_COLLECTOR_ENABLED:
            self.collector.start()
        self.started = True
        logger.info(
            "Pipeline started — tasks=%s elasticsearch=%s host_collector=%s",
            sorted(self.engine.tasks),
            self.settings.ELASTICSEARCH_ENABLED,
            self.settings.HOST_COLLECTOR_ENABLED,
        )

    async def stop(self) -> None:
        if not self.started:
            return
        self.engine.stop()
        self.bridge.stop()
        self.collector.stop()
        await self.engine.wait_idle()
        await self.bridge.wait_idle()
        await self.collector.wait_idle()
        self.bus.unsubscribe(self.gateway.handle_event)
        await self.gateway.close()
        self.db.close()
        self.started = False
        logger.info("Pipeline stopped — counters=%s", self.counters.as_dict())

    def health(self) -> dict:
        return {
            "status": "ok",
            "ws_connections": self.gateway.connection_count,
            "counters": self.counters.as_dict(),
            "engine": dict(self.engine.stats),
            "tasks": {
                name: dict(task.stats) for name, task in self.engine.tasks.items()
            },
        }


def build_context(settings: Settings) -> AppContext:
    """Create and wire every component for *settings* (nothing is started)."""
    db = Database(settings.DB_PATH)
    db.init_schema()
    repository = TrafficRepository(db)
    bus = EventBus()
    counters = PipelineCounters()

    gateway = RealtimeGateway(
        repository,
        counters=counters,
        recent_logs_on_connect=settings.RECENT_LOGS_ON_CONNECT,
    )

    synthesizer = None
    if settings.SYNTHESIS_ENABLED:
        synthesizer = TrafficSynthesizer(
            business_hours=(settings.BUSINESS_HOURS_START, settings.BUSINESS_HOURS_END),
            multiplier=settings.BUSINESS_HOURS_MULTIPLIER,
            suspicious_probability=settings.SUSPICIOUS_TRAFFIC_PROBABILITY,
        )

    engine = AggregationEngine(
        repository,
        bus,
        synthesizer=synthesizer,
        counters=counters,
        synthesis_interval=settings.SYNTHESIS_INTERVAL_SECONDS,
        anomaly_interval=settings.ANOMALY_INTERVAL_SECONDS,
        metrics_interval=settings.METRICS_INTERVAL_SECONDS,
        anomaly_window_seconds=settings.ANOMALY_WINDOW_SECONDS,
        metrics_window_seconds=settings.METRICS_WINDOW_SECONDS,
        rapid_connection_threshold=settings.RAPID_CONNECTION_THRESHOLD,
        high_bandwidth_bytes=settings.HIGH_BANDWIDTH_BYTES,
    )

    bridge = ElasticsearchBridge(
        repository,
        bus,
        ElasticsearchConfig(
            url=settings.ELASTICSEARCH_URL,
            api_key=settings.ELASTICSEARCH_API_KEY,
            username=settings.ELASTICSEARCH_USERNAME,
            password=settings.ELASTICSEARCH_PASSWORD,
            index_pattern=settings.ELASTICSEARCH_INDEX_PATTERN,
            enabled=settings.ELASTICSEARCH_ENABLED,
        ),
        counters=counters,
        sync_interval=settings.ELASTICSEARCH_SYNC_INTERVAL_SECONDS,
        sync_size=settings.ELASTICSEARCH_SYNC_SIZE,
    )

    collector = HostCollector(
        repository,
        bus,
        proc_path=settings.HOST_PROC_PATH,
        counters=counters,
        interval=settings.HOST_COLLECTOR_INTERVAL_SECONDS,
    )

    return AppContext(
        settings=settings,
        db=db,
        repository=repository,
        bus=bus,
        gateway=gateway,
        engine=engine,
        bridge=bridge,
        collector=collector,
        counters=counters,
    )
