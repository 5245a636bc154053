"""
sources/host_collector.py

HostCollector — samples the machine the backend runs on.

Each collection cycle runs three independent steps:
  1. interface counters  <proc>/net/dev   → one SYSTEM log per busy interface
  2. listening sockets   `ss -tuln`       → Connection per LISTEN/ESTAB line
  3. resources           <proc>/meminfo + <proc>/loadavg → one SYSTEM log

A step that fails (missing file, no `ss` binary, store error) is logged and
the remaining steps still run. Parsing lives in plain functions so it can be
tested without a host.

Set HOST_PROC_PATH=/host/proc when the host's /proc is bind-mounted into a
container.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ..counters import PipelineCounters
from ..engine.scheduler import PeriodicTask
from ..events import EventBus, LogCreated
from ..models import Action, Connection, TrafficLog, utcnow
from ..storage.repository import TrafficRepository

logger = logging.getLogger(__name__)

_LOCALHOST = "127.0.0.1"
_SOCKET_HOST = "localhost"
_BUSY_INTERFACE_BYTES = 1000
_SS_TIMEOUT_SECONDS = 5.0
_MEMINFO_RE = re.compile(r"^(\w+):\s+(\d+)\s*kB", re.MULTILINE)


@dataclass(slots=True)
class InterfaceStats:
    name: str
    bytes_received: int
    bytes_sent: int


@dataclass(slots=True)
class SocketEntry:
    protocol: str
    state: str
    address: str
    port: int


# ---------------------------------------------------------------------------
# Parsers (pure)
# ---------------------------------------------------------------------------

def parse_net_dev(text: str) -> list[InterfaceStats]:
    """
    Parse /proc/net/dev.

    Layout after two header lines:
      iface: rx_bytes rx_packets ... (8 rx columns) tx_bytes tx_packets ...
    """
    result: list[InterfaceStats] = []
    for line in text.splitlines()[2:]:
        if ":" not in line:
            continue
        name, _, counters = line.partition(":")
        cols = counters.split()
        if len(cols) < 9:
            continue
        try:
            result.append(InterfaceStats(name.strip(), int(cols[0]), int(cols[8])))
        except ValueError:
            continue
    return result


def parse_ss(text: str) -> list[SocketEntry]:
    """
    Parse `ss -tuln` output.

    Columns: Netid State Recv-Q Send-Q Local-Address:Port Peer-Address:Port
    Only LISTEN and ESTAB(LISHED) lines are kept.
    """
    result: list[SocketEntry] = []
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 5 or parts[1] not in ("LISTEN", "ESTAB", "ESTABLISHED"):
            continue
        address, sep, port = parts[4].rpartition(":")
        if not sep or not port.isdigit():
            continue
        result.append(SocketEntry(
            protocol=parts[0].upper(),
            state=parts[1],
            address=address.strip("[]") or "*",
            port=int(port),
        ))
    return result


def parse_meminfo(text: str) -> tuple[int, int]:
    """Return (total_kb, free_kb) from /proc/meminfo (0 when absent)."""
    values = {key: int(val) for key, val in _MEMINFO_RE.findall(text)}
    return values.get("MemTotal", 0), values.get("MemFree", 0)


def parse_loadavg(text: str) -> float:
    try:
        return float(text.split()[0])
    except (IndexError, ValueError):
        return 0.0


# ---------------------------------------------------------------------------
# Collector
# ---------------------------------------------------------------------------

class HostCollector:
    """
    Args:
        repository:  Record store.
        bus:         Event bus created logs are published to.
        proc_path:   Root of the proc filesystem to read.
        counters:    Shared pipeline counters.
        interval:    Seconds between collection cycles.
        ss_command:  Socket listing command (argv).
    """

    def __init__(
        self,
        repository: TrafficRepository,
        bus: EventBus,
        proc_path: str | Path = "/proc",
        counters: PipelineCounters | None = None,
        interval: float = 300.0,
        ss_command: tuple[str, ...] = ("ss", "-tuln"),
    ) -> None:
        self._repo = repository
        self._bus = bus
        self.proc = Path(proc_path)
        self.counters = counters or PipelineCounters()
        self.ss_command = ss_command
        self.task = PeriodicTask(
            "host_collector", self.collect, interval, counters=self.counters
        )
        self.stats: dict[str, int] = {
            "cycles": 0,
            "step_failures": 0,
            "interface_logs": 0,
            "connections_created": 0,
            "connections_refreshed": 0,
            "connections_closed": 0,
        }

    def start(self) -> None:
        self.task.start()

    def stop(self) -> None:
        self.task.stop()

    async def wait_idle(self) -> None:
        await self.task.wait_idle()

    async def collect(self) -> None:
        """Run every step once; each step fails independently."""
        self.stats["cycles"] += 1
        for step in (self.collect_interfaces, self.collect_sockets, self.collect_resources):
            try:
                await step()
            except Exception as exc:
                self.stats["step_failures"] += 1
                self.counters.cycles_failed.inc()
                logger.warning("Host collector step %s failed: %s", step.__name__, exc)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def collect_interfaces(self) -> list[TrafficLog]:
        text = (self.proc / "net" / "dev").read_text()
        created: list[TrafficLog] = []
        for iface in parse_net_dev(text):
            if iface.bytes_received <= _BUSY_INTERFACE_BYTES and iface.bytes_sent <= _BUSY_INTERFACE_BYTES:
                continue
            log = await self._store_log(TrafficLog(
                source_ip=_LOCALHOST,
                destination_host=f"interface-{iface.name}",
                destination_ip="0.0.0.0",
                destination_port=0,
                protocol="SYSTEM",
                action=Action.ALLOW,
                data_size=iface.bytes_received + iface.bytes_sent,
                duration=0,
                metadata={
                    "type": "interface_stats",
                    "interface": iface.name,
                    "bytesReceived": iface.bytes_received,
                    "bytesSent": iface.bytes_sent,
                },
            ))
            created.append(log)
        self.stats["interface_logs"] += len(created)
        return created

    async def collect_sockets(self) -> list[Connection]:
        """
        Record listening / established sockets as active connections.

        A socket that is already tracked is refreshed instead of duplicated;
        a tracked socket that has disappeared is deactivated.
        """
        entries = parse_ss(await self._run_ss())
        tracked = {
            (c.protocol, c.destination_ip, c.destination_port): c
            for c in self._repo.get_active_connections()
            if c.source_ip == _LOCALHOST and c.destination_host == _SOCKET_HOST
        }

        result: list[Connection] = []
        for entry in entries:
            existing = tracked.pop((entry.protocol, entry.address, entry.port), None)
            if existing is not None:
                updated = self._repo.update_connection(
                    existing.id, connection_count=existing.connection_count + 1
                )
                if updated is not None:
                    self.stats["connections_refreshed"] += 1
                    result.append(updated)
                continue

            conn = self._repo.create_connection(Connection(
                source_ip=_LOCALHOST,
                destination_host=_SOCKET_HOST,
                destination_ip=entry.address,
                destination_port=entry.port,
                protocol=entry.protocol,
            ))
            self.stats["connections_created"] += 1
            result.append(conn)

        for gone in tracked.values():
            self._repo.update_connection(gone.id, is_active=False)
            self.stats["connections_closed"] += 1
        return result

    async def collect_resources(self) -> TrafficLog:
        total_kb, free_kb = parse_meminfo((self.proc / "meminfo").read_text())
        load = parse_loadavg((self.proc / "loadavg").read_text())
        used_kb = max(0, total_kb - free_kb)

        return await self._store_log(TrafficLog(
            source_ip=_LOCALHOST,
            destination_host="system-monitor",
            destination_ip=_LOCALHOST,
            destination_port=0,
            protocol="SYSTEM",
            action=Action.ALLOW,
            data_size=used_kb // 1024,
            duration=int(load * 100),
            metadata={
                "type": "system_resources",
                "memoryUsedMB": used_kb // 1024,
                "memoryTotalMB": total_kb // 1024,
                "cpuLoad": load,
                "timestamp": utcnow().isoformat(),
            },
        ))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_ss(self) -> str:
        proc = await asyncio.create_subprocess_exec(
            *self.ss_command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), _SS_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
        if proc.returncode != 0:
            raise RuntimeError(f"{' '.join(self.ss_command)} exited with {proc.returncode}")
        return stdout.decode(errors="replace")

    async def _store_log(self, log: TrafficLog) -> TrafficLog:
        saved = self._repo.create_log(log)
        self.counters.logs_created.inc()
        await self._bus.publish(LogCreated(saved))
        return saved
