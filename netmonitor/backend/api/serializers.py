"""
api/serializers.py

Request/response envelopes that only the HTTP API uses. Record models
(NetworkLogOut, AlertIn, ...) live in backend/schemas.py because the
gateway and the ingestion sources share them.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from ..schemas import WireModel


class ActionResponse(BaseModel):
    success: bool
    message: str


class SystemDataRequest(WireModel):
    logs: list[Any] = []
    connections: list[Any] = []
    alerts: list[Any] = []


class IngestError(BaseModel):
    kind: str
    index: int | None
    error: str


class IngestResponse(BaseModel):
    success: bool
    accepted: dict[str, int]
    errors: list[IngestError] = []


class ElasticsearchConfigRequest(WireModel):
    url: str | None = None
    api_key: str | None = None
    username: str | None = None
    password: str | None = None
    index_pattern: str | None = Field(default=None, min_length=1)
    enabled: bool | None = None


class ElasticsearchTestRequest(WireModel):
    url: str | None = None
    api_key: str | None = None


class ElasticsearchTestResponse(BaseModel):
    success: bool
    message: str
    details: Any = None


class ElasticsearchSyncResponse(ActionResponse):
    stored: int = 0
