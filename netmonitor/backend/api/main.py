"""
api/main.py

create_app(ctx) — FastAPI application for one AppContext.

The context is started and stopped by the lifespan and attached to
app.state.ctx; nothing is kept in module globals.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketDisconnect

from ..context import AppContext
from ..models import RecordValidationError
from .routes import alerts as alerts_router
from .routes import connections as connections_router
from .routes import dashboard as dashboard_router
from .routes import elasticsearch as elasticsearch_router
from .routes import export as export_router
from .routes import ingest as ingest_router
from .routes import logs as logs_router
from .routes import metrics as metrics_router

logger = logging.getLogger(__name__)


def create_app(ctx: AppContext) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        ctx.start()
        yield
        logger.info("FastAPI shutdown")
        await ctx.stop()

    app = FastAPI(
        title="NetMonitor — Network Traffic Dashboard",
        version="1.0.0",
        description="Realtime network traffic monitoring with anomaly alerts",
        lifespan=lifespan,
    )
    app.state.ctx = ctx

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ctx.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RecordValidationError)
    async def record_validation_error(_request: Request, exc: RecordValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    # REST routers
    app.include_router(logs_router.router,          prefix="/api")
    app.include_router(alerts_router.router,        prefix="/api")
    app.include_router(connections_router.router,   prefix="/api")
    app.include_router(dashboard_router.router,     prefix="/api")
    app.include_router(metrics_router.router,       prefix="/api")
    app.include_router(ingest_router.router,        prefix="/api")
    app.include_router(export_router.router,        prefix="/api")
    app.include_router(elasticsearch_router.router, prefix="/api")

    # WebSocket
    @app.websocket("/ws")
    async def ws_dashboard(websocket: WebSocket):
        gateway = ctx.gateway
        await gateway.connect(websocket)
        try:
            while True:
                gateway.handle_message(await websocket.receive_text())
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            logger.debug("WS receive loop ended: %s", exc)
        finally:
            gateway.disconnect(websocket)

    @app.get("/health")
    async def health() -> dict:
        return ctx.health()

    return app
