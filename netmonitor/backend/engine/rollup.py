"""
engine/rollup.py

compute_rollup() — turns one metrics window into a TrafficMetric draft.

    total_traffic          sum of data_size, as a decimal string
    active_connections     number of active Connection records
    blocked_requests       logs with action BLOCK
    protocol_distribution  log count per protocol
    top_destinations       log count per non-empty destination host

Pure function: no store access, no clock.
"""

from __future__ import annotations

from collections import Counter

from ..models import Action, Connection, TrafficMetric
from .models import LogWindow


def compute_rollup(window: LogWindow, active_connections: list[Connection]) -> TrafficMetric:
    total = 0
    blocked = 0
    protocols: Counter[str] = Counter()
    destinations: Counter[str] = Counter()

    for log in window.logs:
        total += log.data_size or 0
        if log.action is Action.BLOCK:
            blocked += 1
        protocols[log.protocol] += 1
        if log.destination_host:
            destinations[log.destination_host] += 1

    return TrafficMetric(
        total_traffic=str(total),
        active_connections=len(active_connections),
        blocked_requests=blocked,
        protocol_distribution=dict(protocols),
        top_destinations=dict(destinations),
    )
