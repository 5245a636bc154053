"""
api/routes/ingest.py

POST /api/system-data   — bulk push from external monitoring tools

Best-effort: valid items are stored even when others in the same batch are
rejected. The response lists what was accepted and why items were rejected.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...context import AppContext
from ...sources.ingest import ingest_batch
from ..dependencies import get_context
from ..serializers import IngestResponse, SystemDataRequest

router = APIRouter(tags=["ingest"])


@router.post("/system-data", response_model=IngestResponse)
async def ingest_system_data(
    body: SystemDataRequest,
    ctx: AppContext = Depends(get_context),
) -> IngestResponse:
    result = await ingest_batch(
        ctx.repository,
        ctx.bus,
        body.model_dump(),
        counters=ctx.counters,
    )
    return IngestResponse(success=not result.errors, **result.to_dict())
