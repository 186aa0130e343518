"""Fan a triggered alert out to its rule's notification channels.

Each channel attempt is isolated: a failing, slow or misconfigured
channel is recorded in the DispatchReport and never prevents the other
channels from being attempted. ``dispatch`` itself never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from panel_alerts.models import (
    Alert,
    AlertRule,
    ChannelOutcome,
    ChannelResult,
    DispatchReport,
    NotificationChannel,
)
from panel_alerts.notify.channels import (
    ChatWebhookSender,
    MailSender,
    WebhookSender,
    WebhookTransport,
    build_chat_payload,
    build_email,
    build_webhook_payload,
)
from panel_alerts.servers import ServerRegistry

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Deliver alerts to webhook, email and chat-webhook channels.

    Channel attempts run concurrently in a small thread pool. Each is
    bounded by *timeout* seconds; an attempt that has not finished by
    then is reported as failed and left to finish in the background.
    """

    def __init__(
        self,
        webhook_sender: WebhookTransport | None = None,
        chat_sender: WebhookTransport | None = None,
        mail_sender: MailSender | None = None,
        servers: ServerRegistry | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._webhook = webhook_sender or WebhookSender(timeout=timeout)
        self._chat = chat_sender or ChatWebhookSender(timeout=timeout)
        self._mail = mail_sender
        self._servers = servers
        self._timeout = timeout

    def dispatch(self, alert: Alert, rule: AlertRule) -> DispatchReport:
        report = DispatchReport(alert_id=alert.alert_id)
        server_name = self._server_name(alert.server_id)

        attempts: dict[NotificationChannel, Callable[[], None]] = {}
        for channel in rule.channels.enabled:
            target = rule.channels.target_for(channel)
            if target is None:
                logger.info(
                    "Skipping %s channel for alert %s: no target configured",
                    channel, alert.alert_id,
                )
                report.results.append(
                    ChannelResult(channel=channel, outcome=ChannelOutcome.SKIPPED),
                )
                continue
            attempts[channel] = self._attempt(channel, target, alert, rule, server_name)

        if not attempts:
            return report

        executor = ThreadPoolExecutor(
            max_workers=len(attempts), thread_name_prefix="alert-dispatch",
        )
        try:
            futures: dict[NotificationChannel, Future[None]] = {
                channel: executor.submit(fn) for channel, fn in attempts.items()
            }
            wait(futures.values(), timeout=self._timeout)
            for channel, future in futures.items():
                report.results.append(self._collect(channel, future, alert))
        finally:
            executor.shutdown(wait=False)

        return report

    def _attempt(
        self,
        channel: NotificationChannel,
        target: str | list[str],
        alert: Alert,
        rule: AlertRule,
        server_name: str | None,
    ) -> Callable[[], None]:
        if channel == NotificationChannel.WEBHOOK:
            payload = build_webhook_payload(alert, server_name)
            return lambda: self._webhook.post(target, payload)  # type: ignore[arg-type]
        if channel == NotificationChannel.SLACK:
            payload = build_chat_payload(alert, server_name, rule.channels.slack_channel)
            return lambda: self._chat.post(target, payload)  # type: ignore[arg-type]

        subject, body = build_email(alert, server_name)

        def _send_mail() -> None:
            if self._mail is None:
                raise RuntimeError("No mail sender configured")
            self._mail.send(list(target), subject, body)

        return _send_mail

    def _collect(
        self,
        channel: NotificationChannel,
        future: Future[None],
        alert: Alert,
    ) -> ChannelResult:
        if not future.done():
            future.cancel()
            error = f"timed out after {self._timeout:.1f}s"
        else:
            exc = future.exception()
            if exc is None:
                logger.info("Sent %s notification for alert %s", channel, alert.alert_id)
                return ChannelResult(channel=channel, outcome=ChannelOutcome.SENT)
            error = str(exc) or type(exc).__name__

        logger.warning(
            "Alert notification via %s failed for alert %s: %s",
            channel, alert.alert_id, error,
        )
        return ChannelResult(channel=channel, outcome=ChannelOutcome.FAILED, error=error)

    def _server_name(self, server_id: str | None) -> str | None:
        if server_id is None or self._servers is None:
            return None
        server = self._servers.get(server_id)
        return server.name if server else None
