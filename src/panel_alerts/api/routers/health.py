"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from panel_alerts.db.migrations import get_schema_version
from panel_alerts.service import AlertingService

router = APIRouter(tags=["health"])

_service: AlertingService | None = None
_version: str = "0.1.0"


def init_router(service: AlertingService, version: str = "0.1.0") -> None:
    global _service, _version  # noqa: PLW0603
    _service = service
    _version = version


@router.get("/api/health")
def health_check() -> dict:
    return {
        "status": "ok",
        "version": _version,
        "schema_version": get_schema_version(_service.db) if _service else 0,
        "rules": len(_service.list_rules()) if _service else 0,
    }
