"""
sources/ingest.py

ingest_batch() — stores an externally pushed batch of records.

Payload (camelCase keys, as sent by external monitoring tools):
    {"logs": [...], "connections": [...], "alerts": [...]}

Every item is validated and stored on its own: an invalid item is reported
in the result and skipped, the rest of the batch is kept. Stored logs and
alerts are published to the event bus.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, ValidationError

from ..counters import PipelineCounters
from ..events import AlertCreated, EventBus, LogCreated
from ..models import RecordValidationError
from ..schemas import AlertIn, ConnectionIn, NetworkLogIn
from ..storage.repository import TrafficRepository

logger = logging.getLogger(__name__)

_ITEM_MODELS: dict[str, type[BaseModel]] = {
    "logs": NetworkLogIn,
    "connections": ConnectionIn,
    "alerts": AlertIn,
}


@dataclass
class IngestResult:
    accepted: dict[str, int] = field(
        default_factory=lambda: {kind: 0 for kind in _ITEM_MODELS}
    )
    errors: list[dict] = field(default_factory=list)

    @property
    def total_accepted(self) -> int:
        return sum(self.accepted.values())

    def to_dict(self) -> dict:
        return {"accepted": dict(self.accepted), "errors": list(self.errors)}


async def ingest_batch(
    repository: TrafficRepository,
    bus: EventBus,
    payload: dict,
    counters: PipelineCounters | None = None,
) -> IngestResult:
    """Validate and store every item of *payload*; never raises for bad items."""
    result = IngestResult()

    for kind, model in _ITEM_MODELS.items():
        items = payload.get(kind) or []
        if not isinstance(items, list):
            result.errors.append({"kind": kind, "index": None, "error": "expected a list"})
            continue

        for index, item in enumerate(items):
            try:
                record = model.model_validate(item).to_record()
                if kind == "logs":
                    saved = repository.create_log(record)
                    if counters is not None:
                        counters.logs_created.inc()
                    await bus.publish(LogCreated(saved))
                elif kind == "alerts":
                    saved = repository.create_alert(record)
                    if counters is not None:
                        counters.alerts_raised.inc()
                    await bus.publish(AlertCreated(saved))
                else:
                    repository.create_connection(record)
            except (ValidationError, RecordValidationError) as exc:
                result.errors.append({"kind": kind, "index": index, "error": _describe(exc)})
                continue
            result.accepted[kind] += 1

    logger.info(
        "External data ingested — accepted=%s rejected=%d",
        result.accepted,
        len(result.errors),
    )
    return result


def _describe(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'item'}: {err['msg']}"
            for err in exc.errors()
        )
    return str(exc)
