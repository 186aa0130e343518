"""Alert rule persistence and the per-rule cooldown gate."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any

import pydantic

from panel_alerts.clock import Clock, from_iso, to_iso, utc_now
from panel_alerts.db.connection import Database
from panel_alerts.errors import NotFoundError, ValidationError
from panel_alerts.models import (
    AlertChannels,
    AlertRule,
    AlertRuleCreateRequest,
    AlertRuleUpdateRequest,
)
from panel_alerts.servers import ServerRegistry

logger = logging.getLogger(__name__)


def _coerce(model: type[pydantic.BaseModel], data: Any) -> Any:
    """Validate a dict into *model*, mapping pydantic errors to ours."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(str(exc)) from exc


class RuleStore:
    """Manages alert rules (CRUD) and the atomic last-triggered update."""

    def __init__(
        self,
        db: Database,
        servers: ServerRegistry,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._servers = servers
        self._clock = clock or utc_now

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_rule(
        self,
        req: AlertRuleCreateRequest | dict[str, Any],
        owner_id: str,
    ) -> AlertRule:
        """Create a new alert rule owned by *owner_id*."""
        req = _coerce(AlertRuleCreateRequest, req)
        if not owner_id.strip():
            raise ValidationError("Rule owner must not be blank")
        self._check_server(req.server_id)

        rule_id = f"rule-{secrets.token_hex(8)}"
        now = to_iso(self._clock())

        self._db.write(
            """INSERT INTO alert_rules
               (rule_id, owner_id, server_id, name, description, metric_name,
                operator, threshold, severity, enabled, cooldown_minutes,
                channels_json, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                rule_id,
                owner_id,
                req.server_id,
                req.name,
                req.description,
                req.metric_name,
                req.operator.value,
                req.threshold,
                req.severity.value,
                1 if req.enabled else 0,
                req.cooldown_minutes,
                req.channels.model_dump_json(),
                now,
                now,
            ),
        )
        logger.info("Created alert rule %s (%s)", req.name, rule_id)
        return self.get_rule(rule_id)

    def list_rules(
        self,
        owner_id: str | None = None,
        include_disabled: bool = True,
    ) -> list[AlertRule]:
        """List rules, newest first, optionally filtered by owner."""
        conditions: list[str] = []
        params: list[object] = []
        if owner_id is not None:
            conditions.append("owner_id = ?")
            params.append(owner_id)
        if not include_disabled:
            conditions.append("enabled = 1")

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        rows = self._db.fetchall(
            f"SELECT * FROM alert_rules{where} ORDER BY created_at DESC, rule_id",
            tuple(params),
        )
        return [self._row_to_rule(r) for r in rows]

    def list_enabled_rules(self) -> list[AlertRule]:
        return self.list_rules(include_disabled=False)

    def find_rule(self, rule_id: str) -> AlertRule | None:
        row = self._db.fetchone(
            "SELECT * FROM alert_rules WHERE rule_id = ?", (rule_id,)
        )
        return self._row_to_rule(row) if row else None

    def get_rule(self, rule_id: str) -> AlertRule:
        rule = self.find_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Alert rule not found: {rule_id}")
        return rule

    def update_rule(
        self,
        rule_id: str,
        req: AlertRuleUpdateRequest | dict[str, Any],
    ) -> AlertRule:
        """Update the fields set on *req*. ``last_triggered_at`` is untouched."""
        req = _coerce(AlertRuleUpdateRequest, req)
        self.get_rule(rule_id)

        updates: list[str] = []
        params: list[object] = []
        fields = req.model_dump(exclude_unset=True, exclude={"channels"})

        if "server_id" in fields:
            self._check_server(fields["server_id"])

        for name, value in fields.items():
            if value is None and name != "server_id":
                continue
            if name == "enabled":
                value = 1 if value else 0
            elif hasattr(value, "value"):
                value = value.value
            updates.append(f"{name} = ?")
            params.append(value)

        if req.channels is not None:
            updates.append("channels_json = ?")
            params.append(req.channels.model_dump_json())

        if updates:
            updates.append("updated_at = ?")
            params.append(to_iso(self._clock()))
            params.append(rule_id)
            self._db.write(
                f"UPDATE alert_rules SET {', '.join(updates)} WHERE rule_id = ?",
                tuple(params),
            )
            logger.info("Updated alert rule %s", rule_id)

        return self.get_rule(rule_id)

    def delete_rule(self, rule_id: str) -> None:
        """Delete a rule. Alerts it raised keep their copy of the rule id."""
        self.get_rule(rule_id)
        self._db.write("DELETE FROM alert_rules WHERE rule_id = ?", (rule_id,))
        logger.info("Deleted alert rule %s", rule_id)

    # ------------------------------------------------------------------
    # Cooldown gate
    # ------------------------------------------------------------------

    def try_mark_triggered(
        self,
        rule_id: str,
        now: datetime,
        cooldown_minutes: int,
    ) -> bool:
        """Atomically claim a trigger slot for *rule_id*.

        Sets ``last_triggered_at = now`` only when the previous trigger is
        at least *cooldown_minutes* old (or absent). Returns True when this
        caller won the slot. A single conditional UPDATE, so two concurrent
        evaluations can never both pass.
        """
        cutoff = now - timedelta(minutes=cooldown_minutes)
        cursor = self._db.write(
            """UPDATE alert_rules SET last_triggered_at = ?
               WHERE rule_id = ?
                 AND (last_triggered_at IS NULL OR last_triggered_at <= ?)""",
            (to_iso(now), rule_id, to_iso(cutoff)),
        )
        return cursor.rowcount == 1

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_server(self, server_id: str | None) -> None:
        if server_id is not None and not self._servers.exists(server_id):
            raise ValidationError(f"Unknown server id: {server_id}")

    @staticmethod
    def _row_to_rule(row: Any) -> AlertRule:
        return AlertRule(
            rule_id=row["rule_id"],
            owner_id=row["owner_id"],
            server_id=row["server_id"],
            name=row["name"],
            description=row["description"],
            metric_name=row["metric_name"],
            operator=row["operator"],
            threshold=row["threshold"],
            severity=row["severity"],
            enabled=bool(row["enabled"]),
            cooldown_minutes=row["cooldown_minutes"],
            channels=AlertChannels.model_validate_json(row["channels_json"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            last_triggered_at=from_iso(row["last_triggered_at"]),
        )
