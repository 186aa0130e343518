"""Shared fixtures: temp database, controllable clock, recording senders."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from panel_alerts.db.connection import Database
from panel_alerts.db.migrations import run_migrations
from panel_alerts.metrics.source import StaticMetricSource
from panel_alerts.models import (
    AlertChannels,
    AlertRuleCreateRequest,
    ComparisonOperator,
    NotificationChannel,
    Severity,
)
from panel_alerts.notify.dispatcher import NotificationDispatcher
from panel_alerts.servers import ServerRegistry
from panel_alerts.service import AlertingService

WEBHOOK_URL = "https://hooks.example.com/alerts"
SLACK_URL = "https://hooks.slack.example.com/services/T000/B000/XXX"


class MockClock:
    """A controllable clock for testing time-dependent behavior."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, **kwargs: float) -> None:
        self._now += timedelta(**kwargs)


class RecordingWebhookSender:
    """Webhook transport that records posts and optionally fails."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.posts: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def post(self, url: str, payload: dict[str, Any]) -> None:
        if self.delay:
            threading.Event().wait(self.delay)
        if self.fail:
            raise ConnectionError(f"connection refused: {url}")
        with self._lock:
            self.posts.append((url, payload))


class RecordingMailSender:
    """Mail transport that records messages and optionally fails."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[tuple[list[str], str, str]] = []

    def send(self, recipients: list[str], subject: str, body: str) -> None:
        if self.fail:
            raise OSError("SMTP server unavailable")
        self.messages.append((recipients, subject, body))


def make_rule_request(**overrides: Any) -> AlertRuleCreateRequest:
    """Helper to create a cpu > 80 rule request."""
    defaults: dict[str, Any] = {
        "name": "High CPU usage",
        "metric_name": "cpu_usage",
        "operator": ComparisonOperator.GT,
        "threshold": 80.0,
        "severity": Severity.WARNING,
        "cooldown_minutes": 5,
    }
    defaults.update(overrides)
    return AlertRuleCreateRequest(**defaults)


def webhook_channels(url: str = WEBHOOK_URL) -> AlertChannels:
    return AlertChannels(enabled=[NotificationChannel.WEBHOOK], webhook_url=url)


@pytest.fixture()
def clock() -> MockClock:
    return MockClock()


@pytest.fixture()
def db(tmp_path: Path) -> Iterator[Database]:
    d = Database(str(tmp_path / "alerts.db"))
    run_migrations(d)
    yield d
    d.close()


@pytest.fixture()
def metrics() -> StaticMetricSource:
    return StaticMetricSource()


@pytest.fixture()
def webhook() -> RecordingWebhookSender:
    return RecordingWebhookSender()


@pytest.fixture()
def chat() -> RecordingWebhookSender:
    return RecordingWebhookSender()


@pytest.fixture()
def mailer() -> RecordingMailSender:
    return RecordingMailSender()


@pytest.fixture()
def service(
    db: Database,
    metrics: StaticMetricSource,
    clock: MockClock,
    webhook: RecordingWebhookSender,
    chat: RecordingWebhookSender,
    mailer: RecordingMailSender,
) -> Iterator[AlertingService]:
    dispatcher = NotificationDispatcher(
        webhook_sender=webhook,
        chat_sender=chat,
        mail_sender=mailer,
        servers=ServerRegistry(db),
        timeout=2.0,
    )
    svc = AlertingService(
        db, metrics, dispatcher=dispatcher, clock=clock, metric_timeout=2.0,
    )
    yield svc
    svc.evaluator.close()
