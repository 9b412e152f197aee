"""FastAPI application factory for zkleader.

Creates the application with:
- Leader status and control endpoints (/leader)
- Health probes and Prometheus metrics
- Lifecycle management for the election node (connect, register, close)
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from zkleader.api.errors import (
    ElectionApiError,
    command_timeout_exception_handler,
    election_api_exception_handler,
    generic_exception_handler,
)
from zkleader.api.routers import health, leader
from zkleader.api.routers import metrics as metrics_router
from zkleader.config import settings
from zkleader.election.node import ElectionNode, NodeConfig
from zkleader.errors import CommandTimeoutError
from zkleader.observability import configure_logging
from zkleader.observability.metrics import MetricsMiddleware, get_metrics

logger = logging.getLogger(__name__)


def create_app(node: ElectionNode | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        node: An already constructed election node. When omitted, one is
            built from settings and started by the lifespan. A provided
            node is started too unless it is already running.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start the election node on startup and close its session on shutdown."""
        configure_logging(
            json_format=settings.env != "dev",
            level=settings.log_level,
        )
        get_metrics()

        logger.info(f"Starting zkleader ({settings.env})")
        election = node or ElectionNode(NodeConfig.from_settings(settings))
        if not election.loop.running:
            await asyncio.to_thread(election.start)
        app.state.node = election
        logger.info("zkleader startup complete")

        yield

        logger.info("Shutting down zkleader")
        await asyncio.to_thread(election.stop)
        app.state.node = None
        logger.info("zkleader shutdown complete")

    app = FastAPI(
        title="zkleader",
        description="ZooKeeper leader election with an HTTP control surface",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(
        ElectionApiError, cast(ExceptionHandler, election_api_exception_handler)
    )
    app.add_exception_handler(
        CommandTimeoutError, cast(ExceptionHandler, command_timeout_exception_handler)
    )
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    app.include_router(leader.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)

    return app
