"""
api/routes/logs.py

GET  /api/network-logs   — newest-first page, or substring search
POST /api/network-logs   — store one log and publish it to dashboards
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...events import EventBus, LogCreated
from ...schemas import NetworkLogIn, NetworkLogOut
from ...storage.repository import TrafficRepository
from ..dependencies import get_bus, get_repository

router = APIRouter(prefix="/network-logs", tags=["logs"])


@router.get("", response_model=list[NetworkLogOut])
async def list_logs(
    limit:  Annotated[int,        Query(ge=1, le=500)] = 50,
    offset: Annotated[int,        Query(ge=0)]         = 0,
    search: Annotated[str | None, Query()]             = None,
    repo: TrafficRepository = Depends(get_repository),
) -> list[NetworkLogOut]:
    """Search matches source IP, destination host or destination IP (case-insensitive)."""
    if search:
        logs = repo.search_logs(search, limit=limit)
    else:
        logs = repo.get_logs(limit=limit, offset=offset)
    return [NetworkLogOut.model_validate(log) for log in logs]


@router.post("", response_model=NetworkLogOut)
async def create_log(
    body: NetworkLogIn,
    repo: TrafficRepository = Depends(get_repository),
    bus: EventBus = Depends(get_bus),
) -> NetworkLogOut:
    log = repo.create_log(body.to_record())
    await bus.publish(LogCreated(log))
    return NetworkLogOut.model_validate(log)
