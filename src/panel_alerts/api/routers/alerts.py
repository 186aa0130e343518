"""Alert incident API: listing, lifecycle transitions, comments, stats."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from panel_alerts.api.dependencies import caller_id, http_error
from panel_alerts.errors import AlertingError
from panel_alerts.models import (
    Alert,
    AlertComment,
    AlertCreateRequest,
    AlertHistoryEntry,
    AlertStats,
    AlertStatus,
    CommentRequest,
    EvaluationReport,
)
from panel_alerts.service import AlertingService

router = APIRouter(prefix="/api/alerts", tags=["alerts"])

_service: AlertingService | None = None


def init_router(service: AlertingService) -> None:
    global _service  # noqa: PLW0603
    _service = service


def _svc() -> AlertingService:
    assert _service is not None, "AlertingService not initialized"
    return _service


@router.get("", response_model=list[Alert])
def list_alerts(
    server_id: str | None = None,
    status: AlertStatus | None = None,
    rule_id: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
) -> list[Alert]:
    return _svc().list_alerts(
        server_id=server_id, status=status, rule_id=rule_id, limit=limit,
    )


@router.post("", response_model=Alert, status_code=201)
def create_alert(
    body: AlertCreateRequest,
    user: Annotated[str, Depends(caller_id)],
) -> Alert:
    try:
        return _svc().create_alert(body, performed_by=user)
    except AlertingError as e:
        raise http_error(e) from e


# Fixed paths go before /{alert_id}.


@router.get("/stats", response_model=AlertStats)
def get_stats() -> AlertStats:
    return _svc().get_stats()


@router.post("/evaluate", response_model=EvaluationReport)
def evaluate_now() -> EvaluationReport:
    return _svc().evaluate_now()


@router.get("/{alert_id}", response_model=Alert)
def get_alert(alert_id: str) -> Alert:
    try:
        return _svc().get_alert(alert_id)
    except AlertingError as e:
        raise http_error(e) from e


@router.put("/{alert_id}/acknowledge", response_model=Alert)
def acknowledge_alert(
    alert_id: str,
    user: Annotated[str, Depends(caller_id)],
    body: CommentRequest | None = None,
) -> Alert:
    try:
        return _svc().acknowledge(
            alert_id, comment=body.comment if body else None, performed_by=user,
        )
    except AlertingError as e:
        raise http_error(e) from e


@router.put("/{alert_id}/resolve", response_model=Alert)
def resolve_alert(
    alert_id: str,
    user: Annotated[str, Depends(caller_id)],
    body: CommentRequest | None = None,
) -> Alert:
    try:
        return _svc().resolve(
            alert_id, comment=body.comment if body else None, performed_by=user,
        )
    except AlertingError as e:
        raise http_error(e) from e


@router.delete("/{alert_id}", response_model=Alert)
def delete_alert(
    alert_id: str,
    user: Annotated[str, Depends(caller_id)],
) -> Alert:
    try:
        return _svc().delete_alert(alert_id, performed_by=user)
    except AlertingError as e:
        raise http_error(e) from e


@router.get("/{alert_id}/comments", response_model=list[AlertComment])
def list_comments(alert_id: str) -> list[AlertComment]:
    try:
        return _svc().get_comments(alert_id)
    except AlertingError as e:
        raise http_error(e) from e


@router.post("/{alert_id}/comments", response_model=AlertComment, status_code=201)
def add_comment(
    alert_id: str,
    body: CommentRequest,
    user: Annotated[str, Depends(caller_id)],
) -> AlertComment:
    try:
        return _svc().add_comment(
            alert_id, body.comment or "", comment_type=body.comment_type, author=user,
        )
    except AlertingError as e:
        raise http_error(e) from e


@router.get("/{alert_id}/history", response_model=list[AlertHistoryEntry])
def get_history(alert_id: str) -> list[AlertHistoryEntry]:
    try:
        return _svc().get_history(alert_id)
    except AlertingError as e:
        raise http_error(e) from e
