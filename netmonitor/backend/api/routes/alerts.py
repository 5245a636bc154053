"""
api/routes/alerts.py

GET   /api/alerts                — newest first; ?active=true for unresolved only
POST  /api/alerts                — store one alert and publish it
PATCH /api/alerts/{id}/resolve   — idempotent resolve
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from ...events import AlertCreated, EventBus
from ...schemas import AlertIn, AlertOut
from ...storage.repository import TrafficRepository
from ..dependencies import get_bus, get_repository

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertOut])
async def list_alerts(
    active: Annotated[bool, Query()]               = False,
    limit:  Annotated[int,  Query(ge=1, le=1000)]  = 50,
    repo: TrafficRepository = Depends(get_repository),
) -> list[AlertOut]:
    alerts = repo.get_active_alerts() if active else repo.get_alerts(limit=limit)
    return [AlertOut.model_validate(a) for a in alerts]


@router.post("", response_model=AlertOut)
async def create_alert(
    body: AlertIn,
    repo: TrafficRepository = Depends(get_repository),
    bus: EventBus = Depends(get_bus),
) -> AlertOut:
    alert = repo.create_alert(body.to_record())
    await bus.publish(AlertCreated(alert))
    return AlertOut.model_validate(alert)


@router.patch("/{alert_id}/resolve", response_model=AlertOut)
async def resolve_alert(
    alert_id: int,
    repo: TrafficRepository = Depends(get_repository),
) -> AlertOut:
    """Resolving an already-resolved alert keeps its original resolvedAt."""
    alert = repo.resolve_alert(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    return AlertOut.model_validate(alert)
