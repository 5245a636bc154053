"""
backend/main.py

Entry point: parse arguments, configure logging, build the AppContext and
serve it with uvicorn. The aggregation engine, the optional sources and
the realtime gateway all run on uvicorn's event loop.

    python -m netmonitor.backend.main --port 5000 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

import uvicorn

from .api.main import create_app
from .config import Settings, settings
from .context import build_context

logger = logging.getLogger("netmonitor.main")


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NetMonitor dashboard backend")
    parser.add_argument("--host", default=settings.API_HOST)
    parser.add_argument("--port", type=int, default=settings.API_PORT)
    parser.add_argument("--db", default=settings.DB_PATH, help="SQLite database path")
    parser.add_argument(
        "--log-level", default=settings.LOG_LEVEL.upper(),
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument(
        "--no-synthesis", action="store_true",
        help="Disable the synthetic traffic generator",
    )
    return parser.parse_args()


def _effective_settings(args: argparse.Namespace) -> Settings:
    overrides = {"API_HOST": args.host, "API_PORT": args.port, "DB_PATH": args.db}
    if args.no_synthesis:
        overrides["SYNTHESIS_ENABLED"] = False
    return settings.model_copy(update=overrides)


def main() -> NoReturn:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    cfg = _effective_settings(args)
    ctx = build_context(cfg)
    app = create_app(ctx)

    logger.info(
        "NetMonitor — API=http://%s:%d db=%r synthesis=%s elasticsearch=%s host_collector=%s",
        cfg.API_HOST, cfg.API_PORT, cfg.DB_PATH,
        cfg.SYNTHESIS_ENABLED, cfg.ELASTICSEARCH_ENABLED, cfg.HOST_COLLECTOR_ENABLED,
    )
    logger.info("Anomaly rules: %s", [r.name for r in ctx.engine.rules])

    uvicorn.run(app, host=cfg.API_HOST, port=cfg.API_PORT, log_level="warning")
    logger.info("NetMonitor stopped cleanly")
    sys.exit(0)


if __name__ == "__main__":
    main()
