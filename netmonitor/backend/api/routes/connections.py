"""
api/routes/connections.py

GET /api/connections   — active connections; ?top=true for the largest by data size
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ...schemas import ConnectionOut
from ...storage.repository import TrafficRepository
from ..dependencies import get_repository

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("", response_model=list[ConnectionOut])
async def list_connections(
    top:   Annotated[bool, Query()]            = False,
    limit: Annotated[int,  Query(ge=1, le=100)] = 10,
    repo: TrafficRepository = Depends(get_repository),
) -> list[ConnectionOut]:
    rows = repo.get_top_connections(limit=limit) if top else repo.get_active_connections()
    return [ConnectionOut.model_validate(c) for c in rows]
