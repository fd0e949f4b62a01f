"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from offline_pay import __version__
from offline_pay.api.mesh_socket import router as mesh_socket_router
from offline_pay.api.v1 import v1_router
from offline_pay.config.settings import AppConfig
from offline_pay.errors.base import OfflinePayError
from offline_pay.metrics.collector import MeshMetrics
from offline_pay.metrics.middleware import PrometheusMiddleware
from offline_pay.node import OfflinePayNode

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Initialises the node (store, mesh, jobs, sync) on startup and
    gracefully shuts it down on exit.
    """
    node: OfflinePayNode = app.state.pending_node
    try:
        await node.initialize()
        app.state.node = node
        logger.info("offline-pay node initialized")
        yield
    finally:
        app.state.node = None
        await node.close()
        logger.info("offline-pay node shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    node: OfflinePayNode | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
        node: Optional node to serve (not yet initialized). Built from
            *config* when omitted.
    """
    if config is None:
        config = node.config if node is not None else AppConfig()

    app = FastAPI(
        title="offline-pay",
        version=__version__,
        description="Offline payment propagation and ledger sync",
        lifespan=_lifespan,
    )

    metrics = node.metrics if node is not None else None
    if metrics is None and config.metrics.enabled:
        metrics = MeshMetrics()
    if node is None:
        node = OfflinePayNode(config, metrics=metrics)

    app.state.config = config
    app.state.metrics = metrics
    app.state.pending_node = node
    app.state.node = None

    # -- Middleware --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if metrics is not None:
        app.add_middleware(PrometheusMiddleware, registry=metrics.registry)

    # -- Error handler --
    @app.exception_handler(OfflinePayError)
    async def _offline_pay_error_handler(request: Request, exc: OfflinePayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    # -- Base routes --
    @app.get("/health", tags=["base"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics", tags=["base"], include_in_schema=False)
    async def metrics_endpoint() -> Response:
        """Prometheus metrics endpoint."""
        registry = app.state.metrics.registry if app.state.metrics is not None else None
        body = generate_latest(registry) if registry else generate_latest()
        return Response(
            content=body,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    app.include_router(v1_router)
    app.include_router(mesh_socket_router)

    return app
