"""Common FastAPI dependencies and error mapping used across routers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Header, HTTPException

from panel_alerts.errors import (
    AlertingError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

_STATUS_CODES: dict[type[AlertingError], int] = {
    NotFoundError: 404,
    ValidationError: 400,
    InvalidStateError: 409,
}


def caller_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    """Identity of the caller, taken from the ``X-User-Id`` header."""
    return (x_user_id or "").strip() or "system"


def http_error(exc: AlertingError) -> HTTPException:
    """Map an alerting error to the matching HTTP error."""
    for exc_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=503, detail=str(exc))
