"""FastAPI application factory for the alerting API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from panel_alerts import __version__
from panel_alerts.api.routers import alerts, health, rules
from panel_alerts.config import AlertsConfig, load_config
from panel_alerts.service import AlertingService, build_service

logger = logging.getLogger(__name__)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Echoed inputs may hold NaN, which JSON cannot carry
    detail = [
        {"type": e["type"], "loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"detail": detail})


def create_app(
    config: AlertsConfig | None = None,
    service: AlertingService | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    The service is built from *config* (or the discovered config file)
    unless one is passed in, and injected into each router via its
    ``init_router()`` function.
    """
    if service is None:
        if config is None:
            config = load_config()
        service = build_service(config)
        logger.info("Alerting API using database %s", config.db_path)

    app = FastAPI(
        title="Panel Alerts",
        version=__version__,
        docs_url="/api/docs",
        openapi_url="/api/openapi.json",
    )
    app.add_exception_handler(RequestValidationError, _validation_error)

    rules.init_router(service)
    alerts.init_router(service)
    health.init_router(service, __version__)

    app.include_router(rules.router)
    app.include_router(alerts.router)
    app.include_router(health.router)

    return app
