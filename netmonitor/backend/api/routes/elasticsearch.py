"""
api/routes/elasticsearch.py

POST /api/elasticsearch/config  — update bridge config; enabling starts periodic sync
POST /api/elasticsearch/test    — try a zero-size search with the given URL / key
GET  /api/elasticsearch/logs    — proxy a search (q = JSON query body, size)
POST /api/elasticsearch/sync    — run one sync now

BridgeNotConfigured → 400, any other BridgeError → 502.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ...context import AppContext
from ...sources.elasticsearch import BridgeError, BridgeNotConfigured, ElasticsearchBridge
from ..dependencies import get_context
from ..serializers import (
    ActionResponse,
    ElasticsearchConfigRequest,
    ElasticsearchSyncResponse,
    ElasticsearchTestRequest,
    ElasticsearchTestResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/elasticsearch", tags=["elasticsearch"])


def _get_bridge(ctx: AppContext = Depends(get_context)) -> ElasticsearchBridge:
    return ctx.bridge


def _bridge_error(exc: BridgeError) -> HTTPException:
    status = 400 if isinstance(exc, BridgeNotConfigured) else 502
    return HTTPException(status_code=status, detail=str(exc))


@router.post("/config", response_model=ActionResponse)
async def update_config(
    body: ElasticsearchConfigRequest,
    bridge: ElasticsearchBridge = Depends(_get_bridge),
) -> ActionResponse:
    changes = body.model_dump(exclude_none=True)
    candidate = replace(bridge.config, **changes)
    if candidate.enabled and (not candidate.url or not candidate.has_credentials):
        raise HTTPException(
            status_code=400,
            detail="URL and API key (or username/password) are required when enabled",
        )

    config = bridge.update_config(**changes)
    if config.enabled:
        bridge.start()
        bridge.task.trigger()
        return ActionResponse(success=True, message="Elasticsearch configuration saved and sync started")

    bridge.stop()
    return ActionResponse(success=True, message="Elasticsearch configuration saved")


@router.post(
    "/test",
    response_model=ElasticsearchTestResponse,
    responses={400: {"model": ElasticsearchTestResponse}},
)
async def test_connection(
    body: ElasticsearchTestRequest,
    bridge: ElasticsearchBridge = Depends(_get_bridge),
):
    result = await bridge.test_connection(body.url, body.api_key)
    if not result["success"]:
        return JSONResponse(status_code=400, content=result)
    return ElasticsearchTestResponse(**result)


@router.get("/logs")
async def search_logs(
    q:    Annotated[str | None, Query()]              = None,
    size: Annotated[int,        Query(ge=1, le=1000)] = 50,
    bridge: ElasticsearchBridge = Depends(_get_bridge),
) -> list[dict[str, Any]]:
    """Raw Elasticsearch hits, newest first."""
    try:
        query = json.loads(q) if q else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"q is not valid JSON: {exc}") from exc
    if not isinstance(query, dict):
        raise HTTPException(status_code=400, detail="q must be a JSON object")

    try:
        return await bridge.search_logs(query, size=size)
    except BridgeError as exc:
        raise _bridge_error(exc) from exc


@router.post("/sync", response_model=ElasticsearchSyncResponse)
async def sync_now(
    bridge: ElasticsearchBridge = Depends(_get_bridge),
) -> ElasticsearchSyncResponse:
    if not bridge.config.enabled:
        raise HTTPException(status_code=400, detail="Elasticsearch bridge is disabled")
    try:
        stored = await bridge.sync_recent_logs()
    except BridgeError as exc:
        logger.warning("Manual Elasticsearch sync failed: %s", exc)
        raise _bridge_error(exc) from exc
    return ElasticsearchSyncResponse(success=True, message="Manual sync completed", stored=stored)
