"""Tests for alerting data models and report helpers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from panel_alerts.models import (
    AlertChannels,
    AlertRuleCreateRequest,
    AlertRuleUpdateRequest,
    ChannelOutcome,
    ChannelResult,
    DispatchReport,
    EvaluationReport,
    NotificationChannel,
    NotificationStatus,
    RuleEvaluation,
    RuleOutcome,
    Severity,
)


class TestAlertChannels:
    def test_defaults_to_no_channels(self):
        channels = AlertChannels()
        assert channels.enabled == []
        assert channels.target_for(NotificationChannel.WEBHOOK) is None

    def test_target_requires_enabled_channel(self):
        with pytest.raises(ValidationError, match="not enabled"):
            AlertChannels(webhook_url="https://example.com/hook")

    def test_email_target_requires_enabled_channel(self):
        with pytest.raises(ValidationError):
            AlertChannels(
                enabled=[NotificationChannel.WEBHOOK],
                email_recipients=["ops@example.com"],
            )

    def test_enabled_channels_deduplicated(self):
        channels = AlertChannels(enabled=["webhook", "webhook", "email"])
        assert channels.enabled == [NotificationChannel.WEBHOOK, NotificationChannel.EMAIL]

    def test_blank_target_is_none(self):
        channels = AlertChannels(enabled=["webhook", "email"], webhook_url="   ")
        assert channels.target_for(NotificationChannel.WEBHOOK) is None
        assert channels.target_for(NotificationChannel.EMAIL) is None

    def test_email_recipients_stripped(self):
        channels = AlertChannels(
            enabled=["email"], email_recipients=[" ops@example.com ", "", "  "],
        )
        assert channels.target_for(NotificationChannel.EMAIL) == ["ops@example.com"]

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValidationError):
            AlertChannels(enabled=["pager"])


class TestAlertRuleRequests:
    def test_create_defaults(self):
        req = AlertRuleCreateRequest(
            name="High CPU", metric_name="cpu_usage", operator="gt", threshold=80,
        )
        assert req.severity == Severity.WARNING
        assert req.cooldown_minutes == 5
        assert req.enabled is True
        assert req.channels.enabled == []

    def test_create_blank_name_rejected(self):
        with pytest.raises(ValidationError, match="name must not be blank"):
            AlertRuleCreateRequest(
                name="  ", metric_name="cpu_usage", operator="gt", threshold=80,
            )

    def test_create_blank_metric_rejected(self):
        with pytest.raises(ValidationError, match="metric_name"):
            AlertRuleCreateRequest(
                name="High CPU", metric_name="", operator="gt", threshold=80,
            )

    def test_create_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            AlertRuleCreateRequest(
                name="High CPU", metric_name="cpu_usage", operator="between", threshold=80,
            )

    def test_create_negative_cooldown_rejected(self):
        with pytest.raises(ValidationError):
            AlertRuleCreateRequest(
                name="High CPU", metric_name="cpu_usage", operator="gt",
                threshold=80, cooldown_minutes=-1,
            )

    def test_update_all_optional(self):
        req = AlertRuleUpdateRequest()
        assert req.model_dump(exclude_unset=True) == {}

    def test_update_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            AlertRuleUpdateRequest(name=" ")


class TestDispatchReport:
    def _report(self, *outcomes: ChannelOutcome) -> DispatchReport:
        channels = list(NotificationChannel)
        return DispatchReport(
            alert_id="alt-1",
            results=[
                ChannelResult(channel=channels[i], outcome=o) for i, o in enumerate(outcomes)
            ],
        )

    def test_empty_is_skipped(self):
        assert self._report().status == NotificationStatus.SKIPPED

    def test_all_skipped(self):
        assert self._report(ChannelOutcome.SKIPPED).status == NotificationStatus.SKIPPED

    def test_all_sent(self):
        report = self._report(ChannelOutcome.SENT, ChannelOutcome.SKIPPED)
        assert report.status == NotificationStatus.SENT

    def test_partial(self):
        report = self._report(ChannelOutcome.FAILED, ChannelOutcome.SENT)
        assert report.status == NotificationStatus.PARTIAL

    def test_all_failed(self):
        assert self._report(ChannelOutcome.FAILED).status == NotificationStatus.FAILED

    def test_outcome_for(self):
        report = self._report(ChannelOutcome.FAILED, ChannelOutcome.SENT)
        assert report.outcome_for(NotificationChannel.WEBHOOK) == ChannelOutcome.FAILED
        assert report.outcome_for(NotificationChannel.EMAIL) == ChannelOutcome.SENT
        assert report.outcome_for(NotificationChannel.SLACK) is None


class TestEvaluationReport:
    def test_by_outcome(self):
        report = EvaluationReport(
            started_at=datetime(2026, 1, 1, tzinfo=UTC),
            results=[
                RuleEvaluation(rule_id="r1", outcome=RuleOutcome.TRIGGERED, alert_id="a1"),
                RuleEvaluation(rule_id="r2", outcome=RuleOutcome.SUPPRESSED),
                RuleEvaluation(rule_id="r3", outcome=RuleOutcome.TRIGGERED, alert_id="a2"),
            ],
        )
        assert [r.rule_id for r in report.triggered] == ["r1", "r3"]
        assert len(report.by_outcome(RuleOutcome.SUPPRESSED)) == 1
        assert report.by_outcome(RuleOutcome.ERROR) == []
