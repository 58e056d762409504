"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest
from starlette.responses import Response

from token_custody import __version__
from token_custody.api.v1 import v1_router
from token_custody.config.settings import AppConfig
from token_custody.engine.client import CustodyEngine
from token_custody.errors.custody_errors import CustodyError
from token_custody.metrics.collector import EngineMetrics
from token_custody.metrics.middleware import PrometheusMiddleware

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from token_custody.ledger.client import LedgerClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle hooks.

    Initialises the engine (datastore, ledger, workers) on startup and
    gracefully shuts down on exit.
    """
    config: AppConfig = app.state.config
    engine = CustodyEngine(
        config,
        ledger=app.state.ledger,
        metrics=getattr(app.state, "metrics", None),
    )
    try:
        await engine.initialize()
        app.state.engine = engine
        logger.info("Token custody engine initialized")
        yield
    finally:
        await engine.close()
        app.state.engine = None
        logger.info("Token custody engine shut down")


def create_app(
    *,
    config: AppConfig | None = None,
    ledger: LedgerClient | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Args:
        config: Optional AppConfig. If *None*, a default config is created
            from environment variables.
        ledger: Ledger client overriding ``config.ledger.backend``.
    """
    if config is None:
        config = AppConfig()

    app = FastAPI(
        title="token-custody",
        version=__version__,
        description="Custodial token disbursement and dual-signature transfers",
        lifespan=_lifespan,
    )

    # Store config on app.state for lifespan access
    app.state.config = config
    app.state.ledger = ledger
    if config.metrics.enabled:
        app.state.metrics = EngineMetrics()

    # -- Error handler --
    @app.exception_handler(CustodyError)
    async def _custody_error_handler(request: Request, exc: CustodyError) -> JSONResponse:
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
        metrics = getattr(app.state, "metrics", None)
        body = generate_latest(metrics.registry) if metrics is not None else b""
        return Response(
            content=body,
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    # -- Prometheus request metrics middleware --
    if config.metrics.enabled:
        app.add_middleware(PrometheusMiddleware, registry=app.state.metrics.registry)

    # -- Mount v1 API --
    app.include_router(v1_router)

    return app
