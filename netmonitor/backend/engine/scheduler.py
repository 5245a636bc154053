"""
engine/scheduler.py

PeriodicTask — runs an async job on a fixed interval.

Rules:
  - The trigger loop never awaits the job; a slow run does not delay the
    next trigger.
  - Single flight: a trigger that fires while the previous run is still in
    progress is skipped (and counted), so runs of one task never overlap.
  - stop() stops scheduling new runs; an in-flight run is left to finish.
  - The job must not raise, but if it does the exception is logged here and
    the task keeps its schedule.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..counters import PipelineCounters

logger = logging.getLogger(__name__)


class PeriodicTask:
    """
    Args:
        name:       Used for the asyncio task names and in log lines.
        job:        Zero-argument coroutine function run once per trigger.
        interval:   Seconds between triggers.
        run_first:  Trigger immediately on start() instead of after one interval.
        counters:   Shared pipeline counters; skipped triggers are added to
                    cycles_skipped.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[None]],
        interval: float,
        run_first: bool = False,
        counters: PipelineCounters | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.name = name
        self._job = job
        self.interval = interval
        self._run_first = run_first
        self.counters = counters or PipelineCounters()
        self._loop_task: asyncio.Task | None = None
        self._inflight: asyncio.Task | None = None
        self.stats: dict[str, int] = {"runs": 0, "skipped": 0, "errors": 0}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin scheduling. Must be called from within a running event loop."""
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._loop(), name=f"{self.name}-timer")
        logger.info("Periodic task %r started (every %.1fs)", self.name, self.interval)

    def stop(self) -> None:
        """Stop scheduling new runs. Does not cancel an in-flight run."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
            logger.info("Periodic task %r stopped", self.name)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def wait_idle(self) -> None:
        """Wait for the in-flight run (if any) to complete."""
        if self._inflight is not None:
            await asyncio.gather(self._inflight, return_exceptions=True)

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def trigger(self) -> bool:
        """
        Launch one run now unless one is already in flight.

        Returns True if a run was launched, False if it was skipped.
        """
        if self.in_flight:
            self.stats["skipped"] += 1
            self.counters.cycles_skipped.inc()
            logger.debug("Periodic task %r still running — trigger skipped", self.name)
            return False
        self._inflight = asyncio.create_task(self._run_once(), name=f"{self.name}-run")
        return True

    async def _loop(self) -> None:
        try:
            if self._run_first:
                self.trigger()
            while True:
                await asyncio.sleep(self.interval)
                self.trigger()
        except asyncio.CancelledError:
            pass

    async def _run_once(self) -> None:
        self.stats["runs"] += 1
        try:
            await self._job()
        except asyncio.CancelledError:
            raise
        except Exception:
            self.stats["errors"] += 1
            logger.exception("Periodic task %r raised", self.name)
