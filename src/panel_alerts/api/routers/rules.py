"""Alert rule management API."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from panel_alerts.api.dependencies import caller_id, http_error
from panel_alerts.errors import AlertingError
from panel_alerts.models import (
    AlertRule,
    AlertRuleCreateRequest,
    AlertRuleUpdateRequest,
)
from panel_alerts.service import AlertingService

router = APIRouter(prefix="/api/alert-rules", tags=["alert-rules"])

_service: AlertingService | None = None


def init_router(service: AlertingService) -> None:
    global _service  # noqa: PLW0603
    _service = service


def _svc() -> AlertingService:
    assert _service is not None, "AlertingService not initialized"
    return _service


@router.get("", response_model=list[AlertRule])
def list_rules(owner_id: str | None = None) -> list[AlertRule]:
    return _svc().list_rules(owner_id=owner_id)


@router.post("", response_model=AlertRule, status_code=201)
def create_rule(
    body: AlertRuleCreateRequest,
    user: Annotated[str, Depends(caller_id)],
) -> AlertRule:
    try:
        return _svc().create_rule(body, owner_id=user)
    except AlertingError as e:
        raise http_error(e) from e


@router.get("/{rule_id}", response_model=AlertRule)
def get_rule(rule_id: str) -> AlertRule:
    try:
        return _svc().get_rule(rule_id)
    except AlertingError as e:
        raise http_error(e) from e


@router.put("/{rule_id}", response_model=AlertRule)
def update_rule(rule_id: str, body: AlertRuleUpdateRequest) -> AlertRule:
    try:
        return _svc().update_rule(rule_id, body)
    except AlertingError as e:
        raise http_error(e) from e


@router.delete("/{rule_id}")
def delete_rule(rule_id: str) -> dict:
    try:
        _svc().delete_rule(rule_id)
    except AlertingError as e:
        raise http_error(e) from e
    return {"ok": True}


@router.post("/{rule_id}/test")
def test_rule(rule_id: str) -> dict[str, Any]:
    """Raise a synthetic alert for the rule and send its notifications."""
    try:
        alert, report = _svc().test_rule(rule_id)
    except AlertingError as e:
        raise http_error(e) from e
    return {
        "alert": alert.model_dump(mode="json"),
        "dispatch": report.model_dump(mode="json"),
    }
