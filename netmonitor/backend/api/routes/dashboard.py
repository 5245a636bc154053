"""
api/routes/dashboard.py

GET /api/dashboard/stats   — headline figures for the dashboard cards
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...schemas import DashboardStatsOut
from ...storage.repository import TrafficRepository
from ..dependencies import get_repository

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsOut)
async def get_dashboard_stats(
    repo: TrafficRepository = Depends(get_repository),
) -> DashboardStatsOut:
    """
    Traffic, connection and blocked figures come from the latest metrics
    snapshot; the alert count is live.
    """
    return DashboardStatsOut(**repo.get_dashboard_stats())
