"""
api/routes/export.py

GET /api/export?type=logs|alerts|connections&format=json|csv

logs / alerts  — newest EXPORT_MAX_ROWS records
connections    — every active connection

CSV columns are the camelCase wire keys of the first row; nested values
(metadata, distributions) are written as JSON.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response

from ...context import AppContext
from ...schemas import alert_to_wire, connection_to_wire, log_to_wire
from ..dependencies import get_context

router = APIRouter(tags=["export"])


@router.get("/export")
async def export_data(
    type:   Annotated[Literal["logs", "alerts", "connections"], Query()],
    format: Annotated[Literal["json", "csv"],                   Query()] = "json",
    ctx: AppContext = Depends(get_context),
) -> Response:
    repo = ctx.repository
    max_rows = ctx.settings.EXPORT_MAX_ROWS

    if type == "logs":
        rows = [log_to_wire(r) for r in repo.get_logs(limit=max_rows)]
    elif type == "alerts":
        rows = [alert_to_wire(r) for r in repo.get_alerts(limit=max_rows)]
    else:
        rows = [connection_to_wire(r) for r in repo.get_active_connections()]

    if format == "csv":
        return Response(
            content=to_csv(rows),
            media_type="text/csv",
            headers={"Content-Disposition": f"attachment; filename={type}.csv"},
        )
    return JSONResponse(rows)


def to_csv(rows: list[dict]) -> str:
    if not rows:
        return ""
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(rows[0]), extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({
            key: json.dumps(value) if isinstance(value, (dict, list)) else value
            for key, value in row.items()
        })
    return buf.getvalue()
