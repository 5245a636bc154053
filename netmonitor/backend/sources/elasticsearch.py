"""
sources/elasticsearch.py

ElasticsearchBridge — pulls recent documents from an external Elasticsearch
cluster and stores them as TrafficLog records (plus a "security" Alert for
documents that look suspicious).

Responsibilities:
  - hold the mutable connection config (URL, API key or basic auth, index)
  - test a connection without touching the store
  - proxy searches for the dashboard
  - periodic sync (every ELASTICSEARCH_SYNC_INTERVAL_SECONDS when enabled)

Document mapping follows ECS field names (source.ip, destination.*,
network.protocol, event.action, http.response.status_code, ...). A document
that cannot be mapped is logged and skipped; the rest of the batch is kept.

Usage:
    bridge = ElasticsearchBridge(repo, bus, ElasticsearchConfig(url=..., api_key=...))
    stored = await bridge.sync_recent_logs()
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

import httpx

from ..counters import PipelineCounters
from ..engine.scheduler import PeriodicTask
from ..events import AlertCreated, EventBus, LogCreated
from ..models import Action, Alert, Severity, TrafficLog
from ..storage.repository import TrafficRepository

logger = logging.getLogger(__name__)

_REQUEST_TIMEOUT_SECONDS = 10.0
_TEST_INDEX = "logs-*"


class BridgeError(Exception):
    """The external log store could not be queried."""


class BridgeNotConfigured(BridgeError):
    """The bridge is disabled or is missing a URL / credentials."""


@dataclass
class ElasticsearchConfig:
    url: str = "http://localhost:9200"
    api_key: str = ""
    username: str = "elastic"
    password: str = ""
    index_pattern: str = "logs-network"
    enabled: bool = False

    @property
    def auth_type(self) -> str:
        return "apikey" if self.api_key else "basic"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key or (self.username and self.password))

    def redacted(self) -> dict:
        """Config as a dict with secrets masked (safe to log / return)."""
        d = asdict(self)
        for key in ("api_key", "password"):
            if d[key]:
                d[key] = "***"
        d["auth_type"] = self.auth_type
        return d


class ElasticsearchBridge:
    """
    Args:
        repository:     Record store the mapped documents are written to.
        bus:            Event bus stored records are published to.
        config:         Initial connection config.
        counters:       Shared pipeline counters.
        sync_interval:  Seconds between periodic syncs.
        sync_size:      Documents requested per sync.
        transport:      Optional httpx transport (tests pass httpx.MockTransport).
    """

    def __init__(
        self,
        repository: TrafficRepository,
        bus: EventBus,
        config: ElasticsearchConfig | None = None,
        counters: PipelineCounters | None = None,
        sync_interval: float = 120.0,
        sync_size: int = 50,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._repo = repository
        self._bus = bus
        self.config = config or ElasticsearchConfig()
        self.counters = counters or PipelineCounters()
        self.sync_size = sync_size
        self._transport = transport
        self.task = PeriodicTask(
            "elasticsearch_sync", self._periodic_sync, sync_interval, counters=self.counters
        )
        self.stats: dict[str, int] = {
            "syncs": 0,
            "sync_failures": 0,
            "documents_stored": 0,
            "documents_skipped": 0,
            "alerts_created": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self.task.start()

    def stop(self) -> None:
        self.task.stop()

    async def wait_idle(self) -> None:
        await self.task.wait_idle()

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def update_config(self, **changes: Any) -> ElasticsearchConfig:
        """Merge non-None *changes* into the current config and return it."""
        known = {f.name for f in fields(ElasticsearchConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown Elasticsearch config field(s): {sorted(unknown)}")
        self.config = replace(
            self.config, **{k: v for k, v in changes.items() if v is not None}
        )
        logger.info("Elasticsearch config updated: %s", self.config.redacted())
        return self.config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def test_connection(self, url: str | None = None, api_key: str | None = None) -> dict:
        """
        Run a zero-size search against `<url>/logs-*`.

        Never raises — returns {"success", "message", "details"}.
        """
        test_url = (url or self.config.url).rstrip("/")
        test_key = api_key or self.config.api_key
        if not test_url:
            return {"success": False, "message": "URL is required", "details": None}
        if not test_key and not (self.config.username and self.config.password):
            return {
                "success": False,
                "message": "Either API key or username/password is required",
                "details": None,
            }

        try:
            async with self._client(test_key) as client:
                resp = await client.post(
                    f"{test_url}/{_TEST_INDEX}/_search",
                    json={"size": 0, "query": {"match_all": {}}},
                )
        except httpx.HTTPError as exc:
            return {"success": False, "message": f"Connection error: {exc}", "details": None}

        if resp.is_success:
            total = resp.json().get("hits", {}).get("total", {})
            return {
                "success": True,
                "message": "Connection successful",
                "details": {
                    "totalHits": total.get("value", 0) if isinstance(total, dict) else total,
                    "indexPattern": _TEST_INDEX,
                },
            }

        if resp.status_code == 401:
            message = "Authentication failed. Check the API key or username/password."
        elif resp.status_code == 403:
            message = "Access denied. Check that the user may search the log indices."
        else:
            message = f"Connection failed: {resp.status_code} {resp.reason_phrase}"
        return {"success": False, "message": message, "details": resp.text}

    async def search_logs(self, query: dict | None = None, size: int = 100) -> list[dict]:
        """
        Search the configured index pattern and return the raw hits.

        Without an explicit query the last 24 hours are returned, newest first.
        Raises BridgeNotConfigured / BridgeError.
        """
        cfg = self.config
        if not cfg.enabled or not cfg.url or not cfg.has_credentials:
            raise BridgeNotConfigured("Elasticsearch not configured or disabled")

        query = dict(query or {})
        body = {
            "size": size,
            "query": query.pop("query", None)
            or {"bool": {"must": [{"range": {"@timestamp": {"gte": "now-24h"}}}]}},
            "sort": [{"@timestamp": {"order": "desc"}}],
            **query,
        }

        try:
            async with self._client(cfg.api_key) as client:
                resp = await client.post(
                    f"{cfg.url.rstrip('/')}/{cfg.index_pattern}/_search", json=body
                )
        except httpx.HTTPError as exc:
            raise BridgeError(f"Elasticsearch unreachable: {exc}") from exc

        if not resp.is_success:
            raise BridgeError(
                f"Elasticsearch search failed: {resp.status_code} {resp.reason_phrase}"
            )
        return resp.json().get("hits", {}).get("hits", [])

    async def sync_recent_logs(self) -> int:
        """
        Pull the latest documents and store them. Returns the number stored.

        A disabled bridge is a no-op. Search failures raise BridgeError.
        """
        if not self.config.enabled:
            return 0

        self.stats["syncs"] += 1
        hits = await self.search_logs({"query": {"match_all": {}}}, size=self.sync_size)
        logger.info("Found %d recent document(s) in Elasticsearch", len(hits))

        stored = 0
        for hit in hits:
            try:
                await self._store_hit(hit)
            except Exception as exc:
                self.stats["documents_skipped"] += 1
                logger.error("Error processing Elasticsearch document: %s", exc)
                continue
            stored += 1

        self.stats["documents_stored"] += stored
        return stored

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _periodic_sync(self) -> None:
        try:
            await self.sync_recent_logs()
        except BridgeError as exc:
            self.stats["sync_failures"] += 1
            self.counters.cycles_failed.inc()
            logger.warning("Periodic Elasticsearch sync failed: %s", exc)

    async def _store_hit(self, hit: dict) -> None:
        source = hit.get("_source") or {}
        log = self._repo.create_log(hit_to_log(source))
        self.counters.logs_created.inc()
        await self._bus.publish(LogCreated(log))

        if is_suspicious(source):
            alert = self._repo.create_alert(hit_to_alert(source))
            self.stats["alerts_created"] += 1
            self.counters.alerts_raised.inc()
            logger.warning("ALERT [%s] %s", alert.severity.value, alert.title)
            await self._bus.publish(AlertCreated(alert))

    def _client(self, api_key: str) -> httpx.AsyncClient:
        headers = {"Content-Type": "application/json"}
        auth = None
        if api_key:
            headers["Authorization"] = f"ApiKey {api_key}"
        elif self.config.username and self.config.password:
            auth = httpx.BasicAuth(self.config.username, self.config.password)
        return httpx.AsyncClient(
            headers=headers,
            auth=auth,
            timeout=_REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        )


# ---------------------------------------------------------------------------
# Document mapping (pure)
# ---------------------------------------------------------------------------

def _get(source: dict, path: str) -> Any:
    """Dotted-path lookup: _get(src, "http.response.status_code")."""
    node: Any = source
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _status_code(source: dict) -> int:
    code = _get(source, "http.response.status_code")
    return code if isinstance(code, int) else 0


def determine_action(source: dict) -> Action:
    action = str(_get(source, "event.action") or "").lower()
    outcome = str(_get(source, "event.outcome") or "").lower()

    if "drop" in action or "deny" in action:
        return Action.DENY
    if "block" in action or outcome == "failure":
        return Action.BLOCK
    if "allow" in action or "accept" in action or outcome == "success":
        return Action.ALLOW
    if _status_code(source) >= 400:
        return Action.BLOCK
    return Action.ALLOW


def is_suspicious(source: dict) -> bool:
    tags = source.get("tags") or []
    return any((
        _status_code(source) >= 400,
        _get(source, "event.outcome") == "failure",
        source.get("level") in ("error", "warning"),
        "block" in str(_get(source, "event.action") or ""),
        isinstance(tags, list) and "suspicious" in tags,
        bool(_get(source, "threat.indicator.type")),
    ))


def alert_title(source: dict) -> str:
    src_ip = _get(source, "source.ip")
    status = _status_code(source)
    if status >= 400:
        return f"HTTP {status} Error from {src_ip}"
    if "block" in str(_get(source, "event.action") or ""):
        return f"Traffic blocked from {src_ip}"
    threat = _get(source, "threat.indicator.type")
    if threat:
        return f"Threat detected: {threat}"
    return f"Suspicious activity from {src_ip or 'unknown source'}"


def determine_severity(source: dict) -> Severity:
    status = _status_code(source)
    level = source.get("level")
    if _get(source, "threat.indicator.type") or _get(source, "event.severity") == "critical":
        return Severity.CRITICAL
    if status >= 500 or level == "error":
        return Severity.HIGH
    if status >= 400 or level == "warning":
        return Severity.MEDIUM
    return Severity.LOW


def hit_to_log(source: dict) -> TrafficLog:
    """Map one ECS document to a TrafficLog draft."""
    size = source.get("bytes")
    if not isinstance(size, int):
        size = _get(source, "http.request.bytes")
    duration = source.get("duration")
    port = _get(source, "destination.port") or _get(source, "server.port")
    protocol = _get(source, "network.protocol") or _get(source, "event.action") or "unknown"

    return TrafficLog(
        source_ip=_get(source, "source.ip") or _get(source, "client.ip") or "0.0.0.0",
        destination_host=_get(source, "destination.host") or _get(source, "server.domain") or "unknown",
        destination_ip=_get(source, "destination.ip") or _get(source, "server.ip") or "0.0.0.0",
        destination_port=port if isinstance(port, int) else None,
        protocol=str(protocol).upper()[:10],
        action=determine_action(source),
        data_size=size if isinstance(size, int) and size >= 0 else 0,
        duration=duration if isinstance(duration, int) and duration >= 0 else None,
        metadata={
            "elasticsearchTimestamp": source.get("@timestamp") or source.get("timestamp"),
            "userAgent": _get(source, "user_agent.original"),
            "httpMethod": _get(source, "http.request.method"),
            "httpStatusCode": _get(source, "http.response.status_code"),
            "eventCategory": _get(source, "event.category"),
            "message": source.get("message"),
            "level": source.get("level"),
            "originalSource": "elasticsearch",
        },
    )


def hit_to_alert(source: dict) -> Alert:
    return Alert(
        severity=determine_severity(source),
        type="security",
        title=alert_title(source),
        description=source.get("message")
        or "Suspicious network activity detected from Elasticsearch logs",
        source_ip=_get(source, "source.ip") or "unknown",
        metadata={"elasticsearchSource": True, "originalEvent": source},
    )
