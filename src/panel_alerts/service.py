"""Service facade wiring the alerting core together.

The API and CLI talk to ``AlertingService`` only. Each operation
delegates to the component that owns the data: rules to RuleStore,
alerts/history/comments to IncidentLifecycle, counts to StatsAggregator.
"""

from __future__ import annotations

import logging
from typing import Any

from panel_alerts.clock import Clock, utc_now
from panel_alerts.config import AlertsConfig
from panel_alerts.db.connection import Database
from panel_alerts.db.migrations import run_migrations
from panel_alerts.errors import DependencyUnavailable
from panel_alerts.evaluation.evaluator import Evaluator
from panel_alerts.incidents.lifecycle import IncidentLifecycle
from panel_alerts.metrics.source import (
    JsonFileMetricSource,
    MetricSource,
    StaticMetricSource,
)
from panel_alerts.models import (
    Alert,
    AlertComment,
    AlertCreateRequest,
    AlertHistoryEntry,
    AlertRule,
    AlertRuleCreateRequest,
    AlertRuleUpdateRequest,
    AlertStats,
    AlertStatus,
    DispatchReport,
    EvaluationReport,
)
from panel_alerts.notify.channels import SmtpMailSender
from panel_alerts.notify.dispatcher import NotificationDispatcher
from panel_alerts.rules.store import RuleStore
from panel_alerts.servers import ServerRegistry
from panel_alerts.stats import StatsAggregator

logger = logging.getLogger(__name__)


class AlertingService:
    """Every externally exposed alerting operation."""

    def __init__(
        self,
        db: Database,
        metric_source: MetricSource,
        dispatcher: NotificationDispatcher | None = None,
        clock: Clock | None = None,
        metric_timeout: float = 5.0,
    ) -> None:
        self.db = db
        self.clock = clock or utc_now
        self.servers = ServerRegistry(db, clock=self.clock)
        self.rules = RuleStore(db, self.servers, clock=self.clock)
        self.lifecycle = IncidentLifecycle(db, self.rules, self.servers, clock=self.clock)
        self.dispatcher = dispatcher or NotificationDispatcher(servers=self.servers)
        self.stats = StatsAggregator(db, clock=self.clock)
        self.metric_source = metric_source
        self.evaluator = Evaluator(
            self.rules,
            self.lifecycle,
            self.dispatcher,
            metric_source,
            clock=self.clock,
            metric_timeout=metric_timeout,
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self, owner_id: str | None = None) -> list[AlertRule]:
        return self.rules.list_rules(owner_id=owner_id)

    def get_rule(self, rule_id: str) -> AlertRule:
        return self.rules.get_rule(rule_id)

    def create_rule(
        self,
        req: AlertRuleCreateRequest | dict[str, Any],
        owner_id: str,
    ) -> AlertRule:
        return self.rules.create_rule(req, owner_id)

    def update_rule(
        self,
        rule_id: str,
        req: AlertRuleUpdateRequest | dict[str, Any],
    ) -> AlertRule:
        return self.rules.update_rule(rule_id, req)

    def delete_rule(self, rule_id: str) -> None:
        self.rules.delete_rule(rule_id)

    def test_rule(self, rule_id: str) -> tuple[Alert, DispatchReport]:
        """Raise and dispatch a synthetic alert for *rule_id*.

        Uses the current metric value when available, otherwise the
        threshold. The cooldown gate is not consulted or updated.
        """
        rule = self.rules.get_rule(rule_id)
        try:
            value = self.evaluator.current_value(rule)
        except DependencyUnavailable:
            value = rule.threshold

        alert = self.lifecycle.create(rule, value, test=True)
        report = self._notify(alert, rule)
        return self.lifecycle.get(alert.alert_id), report

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def list_alerts(
        self,
        server_id: str | None = None,
        status: AlertStatus | str | None = None,
        rule_id: str | None = None,
        limit: int = 100,
    ) -> list[Alert]:
        return self.lifecycle.list_alerts(
            server_id=server_id, status=status, rule_id=rule_id, limit=limit,
        )

    def get_alert(self, alert_id: str) -> Alert:
        return self.lifecycle.get(alert_id)

    def create_alert(
        self,
        req: AlertCreateRequest | dict[str, Any],
        performed_by: str = "system",
    ) -> Alert:
        """Create an alert manually; dispatched when it names a rule."""
        alert = self.lifecycle.create_manual(req, performed_by=performed_by)
        if alert.rule_id is not None:
            rule = self.rules.find_rule(alert.rule_id)
            if rule is not None:
                self._notify(alert, rule)
                alert = self.lifecycle.get(alert.alert_id)
        return alert

    def acknowledge(
        self,
        alert_id: str,
        comment: str | None = None,
        performed_by: str = "system",
    ) -> Alert:
        return self.lifecycle.acknowledge(alert_id, comment, performed_by)

    def resolve(
        self,
        alert_id: str,
        comment: str | None = None,
        performed_by: str = "system",
    ) -> Alert:
        return self.lifecycle.resolve(alert_id, comment, performed_by)

    def delete_alert(self, alert_id: str, performed_by: str = "system") -> Alert:
        """Soft delete: the alert is resolved and kept."""
        return self.lifecycle.soft_delete(alert_id, performed_by)

    def add_comment(
        self,
        alert_id: str,
        text: str,
        comment_type: str | None = None,
        author: str | None = None,
    ) -> AlertComment:
        return self.lifecycle.add_comment(alert_id, text, comment_type, author)

    def get_comments(self, alert_id: str) -> list[AlertComment]:
        return self.lifecycle.get_comments(alert_id)

    def get_history(self, alert_id: str) -> list[AlertHistoryEntry]:
        return self.lifecycle.get_history(alert_id)

    def get_stats(self) -> AlertStats:
        return self.stats.get_stats()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_now(self) -> EvaluationReport:
        return self.evaluator.evaluate_all()

    def close(self) -> None:
        self.evaluator.close()
        self.db.close()

    def _notify(self, alert: Alert, rule: AlertRule) -> DispatchReport:
        report = self.dispatcher.dispatch(alert, rule)
        self.lifecycle.record_notification(alert.alert_id, report)
        return report


def build_service(
    config: AlertsConfig,
    metric_source: MetricSource | None = None,
    clock: Clock | None = None,
) -> AlertingService:
    """Open the database, migrate it and wire the production service.

    Without an explicit *metric_source*, metrics are read from
    ``config.metrics_file`` when set (otherwise every metric is
    unavailable until values are pushed into the static source).
    """
    if metric_source is None:
        if config.metrics_file:
            metric_source = JsonFileMetricSource(config.metrics_file)
        else:
            metric_source = StaticMetricSource()

    db = Database(config.db_path)
    version = run_migrations(db)
    logger.debug("Alert database %s at schema version %d", config.db_path, version)

    servers = ServerRegistry(db, clock=clock)
    mail_sender = None
    if config.smtp_host and config.mail_from:
        mail_sender = SmtpMailSender(
            host=config.smtp_host,
            port=config.smtp_port,
            from_address=config.mail_from,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            timeout=config.channel_timeout_seconds,
        )
    dispatcher = NotificationDispatcher(
        mail_sender=mail_sender,
        servers=servers,
        timeout=config.channel_timeout_seconds,
    )
    return AlertingService(
        db,
        metric_source,
        dispatcher=dispatcher,
        clock=clock,
        metric_timeout=config.metric_timeout_seconds,
    )
