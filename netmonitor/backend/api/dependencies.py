"""
api/dependencies.py

FastAPI dependencies. The AppContext is attached to app.state by
create_app(); routes reach it (and its parts) through these getters, which
tests can replace via app.dependency_overrides.
"""

from __future__ import annotations

from fastapi import Request

from ..context import AppContext
from ..events import EventBus
from ..storage.repository import TrafficRepository


def get_context(request: Request) -> AppContext:
    return request.app.state.ctx


def get_repository(request: Request) -> TrafficRepository:
    return get_context(request).repository


def get_bus(request: Request) -> EventBus:
    return get_context(request).bus
