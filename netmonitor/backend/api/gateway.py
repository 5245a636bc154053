"""
api/gateway.py

RealtimeGateway — owns the open dashboard WebSockets and fans out pipeline
events to them.

Server → client frames:
    initialData    — snapshot sent once per connection right after accept
    networkLog     — a TrafficLog was stored
    alert          — an Alert was stored
    metricsUpdate  — a TrafficMetric was appended

Client → server frames:
    {"type": "subscribe", "channel": ...}  — accepted and logged only

Ordering: broadcasts are serialised under one asyncio.Lock, so every open
connection receives events in publish order. The initial snapshot runs in
its own task and may interleave with broadcasts issued meanwhile.

Thread safety: designed to be called exclusively from asyncio coroutines.
"""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from ..counters import PipelineCounters
from ..events import AlertCreated, Event, LogCreated, MetricsSnapshot
from ..schemas import alert_to_wire, log_to_wire, metric_to_wire, stats_to_wire
from ..storage.repository import TrafficRepository

logger = logging.getLogger(__name__)

# event kind → outbound frame type
_FRAME_TYPES: dict[str, str] = {
    LogCreated.kind: "networkLog",
    AlertCreated.kind: "alert",
    MetricsSnapshot.kind: "metricsUpdate",
}


class RealtimeGateway:
    """Broadcasts pipeline events to every open dashboard connection."""

    def __init__(
        self,
        repository: TrafficRepository,
        counters: PipelineCounters | None = None,
        recent_logs_on_connect: int = 10,
    ) -> None:
        self._repo = repository
        self.counters = counters or PipelineCounters()
        self.recent_logs_on_connect = recent_logs_on_connect
        self._connections: list[WebSocket] = []
        self._send_lock = asyncio.Lock()
        self._snapshot_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> asyncio.Task:
        """
        Accept *websocket*, register it and schedule its initial snapshot.

        Returns the snapshot task; the caller does not need to await it.
        """
        await websocket.accept()
        self._connections.append(websocket)
        logger.info("Dashboard client connected — total=%d", len(self._connections))

        task = asyncio.create_task(self.send_initial_data(websocket))
        self._snapshot_tasks.add(task)
        task.add_done_callback(self._snapshot_tasks.discard)
        return task

    def disconnect(self, websocket: WebSocket) -> None:
        """Remove *websocket* (no-op if not present)."""
        try:
            self._connections.remove(websocket)
        except ValueError:
            return
        logger.info("Dashboard client disconnected — remaining=%d", len(self._connections))

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_initial_data(self, websocket: WebSocket) -> None:
        """Send stats, unresolved alerts and the most recent logs to one client."""
        try:
            stats = self._repo.get_dashboard_stats()
            alerts = self._repo.get_active_alerts()
            logs = self._repo.get_logs(limit=self.recent_logs_on_connect)
            message = {
                "type": "initialData",
                "data": {
                    "stats": stats_to_wire(stats),
                    "alerts": [alert_to_wire(a) for a in alerts],
                    "logs": [log_to_wire(log) for log in logs],
                },
            }
            if not _is_open(websocket):
                return
            await websocket.send_text(json.dumps(message, default=str))
            self.counters.messages_sent.inc()
        except Exception as exc:
            logger.error("Error sending initial data: %s", exc)

    async def broadcast(self, message: dict) -> int:
        """
        Send JSON-encoded *message* to every open connection.

        Connections whose send fails are removed. Returns the number of
        connections that received the frame.
        """
        payload = json.dumps(message, default=str)
        delivered = 0

        async with self._send_lock:
            for ws in list(self._connections):
                if not _is_open(ws):
                    continue
                try:
                    await ws.send_text(payload)
                except Exception as exc:
                    logger.debug("WS send failed: %s — removing", exc)
                    self.counters.connections_dropped.inc()
                    self.disconnect(ws)
                    continue
                delivered += 1

        self.counters.messages_sent.inc(delivered)
        return delivered

    async def handle_event(self, event: Event) -> None:
        """EventBus subscriber: translate *event* into its wire frame."""
        frame_type = _FRAME_TYPES.get(event.kind)
        if frame_type is None:
            logger.warning("No frame type for event kind %r", event.kind)
            return

        if isinstance(event, LogCreated):
            data = log_to_wire(event.record)
        elif isinstance(event, AlertCreated):
            data = alert_to_wire(event.record)
        else:
            data = metric_to_wire(event.record)

        await self.broadcast({"type": frame_type, "data": data})

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Invalid WebSocket message: %s", exc)
            return

        if isinstance(data, dict) and data.get("type") == "subscribe":
            logger.info("Client subscribed to: %s", data.get("channel"))
        else:
            logger.debug("Ignoring WebSocket message: %r", data)

    async def close(self) -> None:
        """Cancel pending snapshots and forget every connection."""
        tasks = list(self._snapshot_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._connections.clear()


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )
