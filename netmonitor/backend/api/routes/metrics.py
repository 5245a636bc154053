"""
api/routes/metrics.py

GET /api/traffic-metrics   — snapshots in [startTime, endTime], else the latest one
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ...schemas import TrafficMetricOut
from ...storage.repository import TrafficRepository
from ..dependencies import get_repository

router = APIRouter(prefix="/traffic-metrics", tags=["metrics"])


@router.get("", response_model=list[TrafficMetricOut])
async def list_metrics(
    start_time: Annotated[datetime | None, Query(alias="startTime")] = None,
    end_time:   Annotated[datetime | None, Query(alias="endTime")]   = None,
    repo: TrafficRepository = Depends(get_repository),
) -> list[TrafficMetricOut]:
    if start_time is not None and end_time is not None:
        start, end = _aware(start_time), _aware(end_time)
        if start > end:
            raise HTTPException(status_code=400, detail="startTime must not be after endTime")
        metrics = repo.get_metrics_by_time_range(start, end)
    else:
        latest = repo.get_latest_metric()
        metrics = [latest] if latest is not None else []
    return [TrafficMetricOut.model_validate(m) for m in metrics]


def _aware(value: datetime) -> datetime:
    """Naive query timestamps are taken as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
