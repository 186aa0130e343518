"""Alert state machine, audit history and comments.

States::

    active --> acknowledged --> resolved
       \\_______________________/

``resolved`` is terminal. Every transition appends one history row in
the same transaction that changes the alert, so a transition can never
be recorded without its audit entry or vice versa. Alerts are never
hard-deleted: ``soft_delete`` resolves them with a "Deleted" entry.

Re-acknowledging an acknowledged alert and resolving a resolved alert
are successful no-ops (no new history). Acknowledging a resolved alert
raises InvalidStateError.
"""

from __future__ import annotations

import json
import logging
import secrets
import sqlite3
from typing import Any

import pydantic

from panel_alerts.clock import Clock, from_iso, to_iso, utc_now
from panel_alerts.db.connection import Database
from panel_alerts.errors import InvalidStateError, NotFoundError, ValidationError
from panel_alerts.models import (
    Alert,
    AlertComment,
    AlertCreateRequest,
    AlertHistoryEntry,
    AlertRule,
    AlertStatus,
    DispatchReport,
)
from panel_alerts.rules.store import RuleStore
from panel_alerts.servers import ServerRegistry

logger = logging.getLogger(__name__)

OPERATOR_SYMBOLS = {
    "gt": ">",
    "lt": "<",
    "eq": "==",
    "ne": "!=",
    "gte": ">=",
    "lte": "<=",
}


class IncidentLifecycle:
    """Sole owner of Alert, AlertHistory and AlertComment rows."""

    def __init__(
        self,
        db: Database,
        rules: RuleStore,
        servers: ServerRegistry,
        clock: Clock | None = None,
    ) -> None:
        self._db = db
        self._rules = rules
        self._servers = servers
        self._clock = clock or utc_now

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        rule: AlertRule,
        observed_value: float,
        context: dict[str, Any] | None = None,
        test: bool = False,
    ) -> Alert:
        """Raise a new alert for *rule*, copying its severity and metric now.

        *test* marks a synthetic alert raised on request; its title is
        prefixed with ``[TEST]``.
        """
        if self._rules.find_rule(rule.rule_id) is None:
            raise ValidationError(f"Unknown rule id: {rule.rule_id}")

        server_name = None
        if rule.server_id is not None:
            server = self._servers.get(rule.server_id)
            if server is None:
                raise ValidationError(f"Unknown server id: {rule.server_id}")
            server_name = server.name

        symbol = OPERATOR_SYMBOLS.get(rule.operator.value, rule.operator.value)
        title = f"{rule.name} on {server_name}" if server_name else rule.name
        if test:
            title = f"[TEST] {title}"
        message = (
            f"{rule.metric_name} is {observed_value:.2f} "
            f"({symbol} threshold {rule.threshold:g})"
        )
        if rule.description:
            message = f"{message}. {rule.description}"

        diagnostics = {
            "rule_id": rule.rule_id,
            "rule_name": rule.name,
            "operator": rule.operator.value,
            "threshold": rule.threshold,
            "observed_value": observed_value,
        }
        if test:
            diagnostics["test"] = True
        diagnostics.update(context or {})

        alert = self._insert(
            rule_id=rule.rule_id,
            server_id=rule.server_id,
            title=title,
            message=message,
            severity=rule.severity.value,
            metric_name=rule.metric_name,
            metric_value=observed_value,
            context=json.dumps(diagnostics, sort_keys=True),
            description=(
                "Test alert was created on request"
                if test
                else "Alert was automatically created by rule evaluation"
            ),
        )
        logger.warning("Alert triggered: %s (%s)", alert.title, alert.alert_id)
        return alert

    def create_manual(
        self,
        req: AlertCreateRequest | dict[str, Any],
        performed_by: str = "system",
    ) -> Alert:
        """Create an alert from the API (test or synthetic incidents)."""
        if not isinstance(req, AlertCreateRequest):
            try:
                req = AlertCreateRequest.model_validate(req)
            except pydantic.ValidationError as exc:
                raise ValidationError(str(exc)) from exc

        if req.rule_id is not None and self._rules.find_rule(req.rule_id) is None:
            raise ValidationError(f"Unknown rule id: {req.rule_id}")
        if req.server_id is not None and not self._servers.exists(req.server_id):
            raise ValidationError(f"Unknown server id: {req.server_id}")

        alert = self._insert(
            rule_id=req.rule_id,
            server_id=req.server_id,
            title=req.title,
            message=req.message,
            severity=req.severity.value,
            metric_name=req.metric_name,
            metric_value=req.metric_value,
            context=req.context,
            description="Alert was created manually",
            performed_by=performed_by,
        )
        logger.warning("Alert created manually: %s (%s)", alert.title, alert.alert_id)
        return alert

    def _insert(
        self,
        *,
        rule_id: str | None,
        server_id: str | None,
        title: str,
        message: str,
        severity: str,
        metric_name: str | None,
        metric_value: float | None,
        context: str,
        description: str,
        performed_by: str = "system",
    ) -> Alert:
        title = title.strip()
        message = message.strip()
        if not title:
            raise ValidationError("Alert title must not be blank")
        if not message:
            raise ValidationError("Alert message must not be blank")

        alert_id = f"alt-{secrets.token_hex(8)}"
        now = to_iso(self._clock())

        with self._db.transaction() as conn:
            conn.execute(
                """INSERT INTO alerts
                   (alert_id, rule_id, server_id, title, message, severity,
                    status, metric_name, metric_value, context, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    alert_id,
                    rule_id,
                    server_id,
                    title,
                    message,
                    severity,
                    AlertStatus.ACTIVE.value,
                    metric_name,
                    metric_value,
                    context,
                    now,
                ),
            )
            self._append_history(
                conn, alert_id, "Created", None, AlertStatus.ACTIVE,
                description, performed_by, now,
            )

        return self.get(alert_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def acknowledge(
        self,
        alert_id: str,
        comment: str | None = None,
        performed_by: str = "system",
    ) -> Alert:
        """Move an active alert to acknowledged.

        Already acknowledged: no-op (the comment, if any, is still kept).
        Resolved: InvalidStateError.
        """
        with self._db.transaction() as conn:
            status = self._locked_status(conn, alert_id)
            now = to_iso(self._clock())
            if status == AlertStatus.RESOLVED:
                raise InvalidStateError(f"Alert {alert_id} is already resolved")
            if status == AlertStatus.ACTIVE:
                conn.execute(
                    "UPDATE alerts SET status = ?, acknowledged_at = ? WHERE alert_id = ?",
                    (AlertStatus.ACKNOWLEDGED.value, now, alert_id),
                )
                self._append_history(
                    conn, alert_id, "Acknowledged", status, AlertStatus.ACKNOWLEDGED,
                    f"Alert was acknowledged by {performed_by}", performed_by, now,
                )
                logger.info("Alert acknowledged: %s", alert_id)
            if comment and comment.strip():
                self._append_comment(
                    conn, alert_id, comment.strip(), "Acknowledgment", performed_by, now,
                )
        return self.get(alert_id)

    def resolve(
        self,
        alert_id: str,
        comment: str | None = None,
        performed_by: str = "system",
    ) -> Alert:
        """Resolve an active or acknowledged alert. Idempotent."""
        return self._resolve(alert_id, "Resolved", comment, performed_by)

    def soft_delete(self, alert_id: str, performed_by: str = "system") -> Alert:
        """Resolve the alert with a "Deleted" history entry; rows are kept."""
        return self._resolve(alert_id, "Deleted", None, performed_by)

    def _resolve(
        self,
        alert_id: str,
        action: str,
        comment: str | None,
        performed_by: str,
    ) -> Alert:
        with self._db.transaction() as conn:
            status = self._locked_status(conn, alert_id)
            now = to_iso(self._clock())
            if status != AlertStatus.RESOLVED:
                conn.execute(
                    "UPDATE alerts SET status = ?, resolved_at = ? WHERE alert_id = ?",
                    (AlertStatus.RESOLVED.value, now, alert_id),
                )
                verb = "deleted" if action == "Deleted" else "resolved"
                self._append_history(
                    conn, alert_id, action, status, AlertStatus.RESOLVED,
                    f"Alert was {verb} by {performed_by}", performed_by, now,
                )
                logger.info("Alert %s: %s", verb, alert_id)
            if comment and comment.strip():
                self._append_comment(
                    conn, alert_id, comment.strip(), "Resolution", performed_by, now,
                )
        return self.get(alert_id)

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def add_comment(
        self,
        alert_id: str,
        text: str,
        comment_type: str | None = None,
        author: str | None = None,
    ) -> AlertComment:
        if not text or not text.strip():
            raise ValidationError("Comment text must not be blank")
        with self._db.transaction() as conn:
            self._locked_status(conn, alert_id)
            now = to_iso(self._clock())
            comment_id = self._append_comment(
                conn,
                alert_id,
                text.strip(),
                (comment_type or "").strip() or "General",
                (author or "").strip() or "system",
                now,
            )
        logger.info("Alert comment added: %s", alert_id)
        row = self._db.fetchone("SELECT * FROM alert_comments WHERE id = ?", (comment_id,))
        return self._row_to_comment(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, alert_id: str) -> Alert | None:
        row = self._db.fetchone("SELECT * FROM alerts WHERE alert_id = ?", (alert_id,))
        return self._row_to_alert(row) if row else None

    def get(self, alert_id: str) -> Alert:
        alert = self.find(alert_id)
        if alert is None:
            raise NotFoundError(f"Alert not found: {alert_id}")
        return alert

    def list_alerts(
        self,
        server_id: str | None = None,
        status: AlertStatus | str | None = None,
        rule_id: str | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        """List alerts, newest first."""
        conditions: list[str] = []
        params: list[object] = []
        if server_id is not None:
            conditions.append("server_id = ?")
            params.append(server_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(AlertStatus(status).value)
        if rule_id is not None:
            conditions.append("rule_id = ?")
            params.append(rule_id)

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.append(limit)
        rows = self._db.fetchall(
            f"SELECT * FROM alerts{where} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            tuple(params),
        )
        return [self._row_to_alert(r) for r in rows]

    def get_history(self, alert_id: str) -> list[AlertHistoryEntry]:
        """History entries, oldest first."""
        self.get(alert_id)
        rows = self._db.fetchall(
            "SELECT * FROM alert_history WHERE alert_id = ? ORDER BY id",
            (alert_id,),
        )
        return [self._row_to_history(r) for r in rows]

    def get_comments(self, alert_id: str) -> list[AlertComment]:
        """Comments, oldest first."""
        self.get(alert_id)
        rows = self._db.fetchall(
            "SELECT * FROM alert_comments WHERE alert_id = ? ORDER BY id",
            (alert_id,),
        )
        return [self._row_to_comment(r) for r in rows]

    # ------------------------------------------------------------------
    # Notification tracking
    # ------------------------------------------------------------------

    def record_notification(self, alert_id: str, report: DispatchReport) -> None:
        self._db.write(
            """UPDATE alerts SET notification_status = ?, last_notification_at = ?
               WHERE alert_id = ?""",
            (report.status.value, to_iso(self._clock()), alert_id),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _locked_status(conn: sqlite3.Connection, alert_id: str) -> AlertStatus:
        row = conn.execute(
            "SELECT status FROM alerts WHERE alert_id = ?", (alert_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Alert not found: {alert_id}")
        return AlertStatus(row["status"])

    @staticmethod
    def _append_history(
        conn: sqlite3.Connection,
        alert_id: str,
        action: str,
        old_status: AlertStatus | None,
        new_status: AlertStatus,
        description: str,
        performed_by: str,
        timestamp: str,
    ) -> None:
        conn.execute(
            """INSERT INTO alert_history
               (alert_id, action, old_status, new_status, description,
                performed_by, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                alert_id,
                action,
                old_status.value if old_status else None,
                new_status.value,
                description,
                performed_by,
                timestamp,
            ),
        )

    @staticmethod
    def _append_comment(
        conn: sqlite3.Connection,
        alert_id: str,
        text: str,
        comment_type: str,
        author: str,
        timestamp: str,
    ) -> int:
        cursor = conn.execute(
            """INSERT INTO alert_comments
               (alert_id, comment, comment_type, author, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (alert_id, text, comment_type, author, timestamp),
        )
        return int(cursor.lastrowid)

    @staticmethod
    def _row_to_alert(row: Any) -> Alert:
        return Alert(
            alert_id=row["alert_id"],
            rule_id=row["rule_id"],
            server_id=row["server_id"],
            title=row["title"],
            message=row["message"],
            severity=row["severity"],
            status=row["status"],
            metric_name=row["metric_name"],
            metric_value=row["metric_value"],
            context=row["context"],
            created_at=from_iso(row["created_at"]),
            acknowledged_at=from_iso(row["acknowledged_at"]),
            resolved_at=from_iso(row["resolved_at"]),
            notification_status=row["notification_status"],
            last_notification_at=from_iso(row["last_notification_at"]),
        )

    @staticmethod
    def _row_to_history(row: Any) -> AlertHistoryEntry:
        return AlertHistoryEntry(
            id=row["id"],
            alert_id=row["alert_id"],
            action=row["action"],
            old_status=row["old_status"],
            new_status=row["new_status"],
            description=row["description"],
            performed_by=row["performed_by"],
            timestamp=from_iso(row["timestamp"]),
        )

    @staticmethod
    def _row_to_comment(row: Any) -> AlertComment:
        return AlertComment(
            id=row["id"],
            alert_id=row["alert_id"],
            comment=row["comment"],
            comment_type=row["comment_type"],
            author=row["author"],
            created_at=from_iso(row["created_at"]),
        )
