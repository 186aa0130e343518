"""Core data models for the alerting engine.

Defines the schemas for:
- Alert rules (standing threshold policies) and their channel settings
- Alerts (raised incidents), their audit history and comments
- Evaluation and dispatch reports
- Derived alert statistics
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

# --- Enums ---


class ComparisonOperator(enum.StrEnum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    NE = "ne"
    GTE = "gte"
    LTE = "lte"


class Severity(enum.StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertStatus(enum.StrEnum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class NotificationChannel(enum.StrEnum):
    WEBHOOK = "webhook"
    EMAIL = "email"
    SLACK = "slack"


class NotificationStatus(enum.StrEnum):
    PENDING = "pending"
    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class ChannelOutcome(enum.StrEnum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


class RuleOutcome(enum.StrEnum):
    TRIGGERED = "triggered"
    NOT_TRIGGERED = "not_triggered"
    SUPPRESSED = "suppressed"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


def _not_blank(value: str, field: str) -> str:
    stripped = value.strip()
    if not stripped:
        msg = f"{field} must not be blank"
        raise ValueError(msg)
    return stripped


# --- Servers ---


class Server(BaseModel):
    """A managed server known to the panel (read-only to the core)."""

    server_id: str
    name: str
    created_at: datetime


# --- Rules ---


class AlertChannels(BaseModel):
    """Notification channel configuration of a rule.

    A target may only be set for a channel listed in ``enabled``. An
    enabled channel whose target is blank is kept but never dispatched.
    """

    enabled: list[NotificationChannel] = Field(default_factory=list)
    webhook_url: str | None = None
    email_recipients: list[str] | None = None
    slack_webhook_url: str | None = None
    slack_channel: str | None = None

    @field_validator("enabled")
    @classmethod
    def _dedupe(cls, value: list[NotificationChannel]) -> list[NotificationChannel]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _targets_match_enabled(self) -> AlertChannels:
        targets = {
            NotificationChannel.WEBHOOK: self.webhook_url,
            NotificationChannel.EMAIL: self.email_recipients,
            NotificationChannel.SLACK: self.slack_webhook_url,
        }
        for channel, target in targets.items():
            if target and channel not in self.enabled:
                msg = f"Target given for channel '{channel}' which is not enabled"
                raise ValueError(msg)
        return self

    def target_for(self, channel: NotificationChannel) -> str | list[str] | None:
        """Return the usable target of *channel*, or None when blank."""
        if channel == NotificationChannel.WEBHOOK:
            return (self.webhook_url or "").strip() or None
        if channel == NotificationChannel.SLACK:
            return (self.slack_webhook_url or "").strip() or None
        recipients = [r.strip() for r in self.email_recipients or [] if r.strip()]
        return recipients or None


class AlertRule(BaseModel):
    """A standing threshold policy over one metric."""

    rule_id: str
    owner_id: str
    server_id: str | None = None
    name: str
    description: str = ""
    metric_name: str
    operator: ComparisonOperator
    threshold: float
    severity: Severity
    enabled: bool = True
    cooldown_minutes: int = 5
    channels: AlertChannels = Field(default_factory=AlertChannels)
    created_at: datetime
    updated_at: datetime
    last_triggered_at: datetime | None = None


class AlertRuleCreateRequest(BaseModel):
    """Request body for creating an alert rule."""

    name: str
    description: str = ""
    server_id: str | None = None
    metric_name: str
    operator: ComparisonOperator
    threshold: float = Field(allow_inf_nan=False)
    severity: Severity = Severity.WARNING
    enabled: bool = True
    cooldown_minutes: int = Field(5, ge=0)
    channels: AlertChannels = Field(default_factory=AlertChannels)

    @field_validator("name", "metric_name")
    @classmethod
    def _required_text(cls, value: str, info) -> str:
        return _not_blank(value, info.field_name)


class AlertRuleUpdateRequest(BaseModel):
    """Request body for updating an alert rule. All fields optional."""

    name: str | None = None
    description: str | None = None
    server_id: str | None = None
    metric_name: str | None = None
    operator: ComparisonOperator | None = None
    threshold: float | None = Field(default=None, allow_inf_nan=False)
    severity: Severity | None = None
    enabled: bool | None = None
    cooldown_minutes: int | None = Field(default=None, ge=0)
    channels: AlertChannels | None = None

    @field_validator("name", "metric_name")
    @classmethod
    def _required_text(cls, value: str | None, info) -> str | None:
        if value is None:
            return None
        return _not_blank(value, info.field_name)


# --- Alerts ---


class Alert(BaseModel):
    """One raised incident."""

    alert_id: str
    rule_id: str | None = None
    server_id: str | None = None
    title: str
    message: str
    severity: Severity
    status: AlertStatus = AlertStatus.ACTIVE
    metric_name: str | None = None
    metric_value: float | None = None
    context: str = ""
    created_at: datetime
    acknowledged_at: datetime | None = None
    resolved_at: datetime | None = None
    notification_status: NotificationStatus = NotificationStatus.PENDING
    last_notification_at: datetime | None = None


class AlertCreateRequest(BaseModel):
    """Request body for a manually created (or synthetic) alert."""

    title: str
    message: str
    severity: Severity = Severity.INFO
    rule_id: str | None = None
    server_id: str | None = None
    metric_name: str | None = None
    metric_value: float | None = None
    context: str = ""


class AlertHistoryEntry(BaseModel):
    """Immutable audit record of one alert transition."""

    id: int
    alert_id: str
    action: str
    old_status: AlertStatus | None = None
    new_status: AlertStatus
    description: str = ""
    performed_by: str = "system"
    timestamp: datetime


class AlertComment(BaseModel):
    """Immutable user annotation on an alert."""

    id: int
    alert_id: str
    comment: str
    comment_type: str = "General"
    author: str = "system"
    created_at: datetime


class CommentRequest(BaseModel):
    """Request body for adding a comment or annotating a transition."""

    comment: str | None = None
    comment_type: str = "General"


class AlertStats(BaseModel):
    """Counts derived from the current alert rows."""

    total_alerts: int = 0
    active_alerts: int = 0
    acknowledged_alerts: int = 0
    resolved_alerts: int = 0
    info_alerts: int = 0
    warning_alerts: int = 0
    error_alerts: int = 0
    critical_alerts: int = 0
    recent_alerts: int = 0


# --- Reports ---


class ChannelResult(BaseModel):
    """Outcome of one channel delivery attempt."""

    channel: NotificationChannel
    outcome: ChannelOutcome
    error: str | None = None


class DispatchReport(BaseModel):
    """Per-channel outcome of dispatching one alert."""

    alert_id: str
    results: list[ChannelResult] = Field(default_factory=list)

    def outcome_for(self, channel: NotificationChannel) -> ChannelOutcome | None:
        for result in self.results:
            if result.channel == channel:
                return result.outcome
        return None

    @property
    def status(self) -> NotificationStatus:
        outcomes = {r.outcome for r in self.results}
        if not outcomes or outcomes == {ChannelOutcome.SKIPPED}:
            return NotificationStatus.SKIPPED
        if ChannelOutcome.FAILED not in outcomes:
            return NotificationStatus.SENT
        if ChannelOutcome.SENT in outcomes:
            return NotificationStatus.PARTIAL
        return NotificationStatus.FAILED


class RuleEvaluation(BaseModel):
    """Outcome of evaluating one rule during a pass."""

    rule_id: str
    outcome: RuleOutcome
    value: float | None = None
    alert_id: str | None = None
    error: str | None = None
    dispatch: DispatchReport | None = None


class EvaluationReport(BaseModel):
    """Summary of one ``evaluate_all`` pass."""

    started_at: datetime
    finished_at: datetime | None = None
    results: list[RuleEvaluation] = Field(default_factory=list)
    cancelled: bool = False

    def by_outcome(self, outcome: RuleOutcome) -> list[RuleEvaluation]:
        return [r for r in self.results if r.outcome == outcome]

    @property
    def triggered(self) -> list[RuleEvaluation]:
        return self.by_outcome(RuleOutcome.TRIGGERED)
