"""Notification transports and payload formatting.

Built-in transports:
- WebhookSender: POST JSON to a URL (stdlib only)
- ChatWebhookSender: POST a chat message to a Slack-style incoming webhook
- SmtpMailSender: send HTML mail over SMTP (stdlib smtplib)

Custom transports only need the matching ``post(url, payload)`` or
``send(recipients, subject, body)`` method. Every transport raises on
failure; the dispatcher turns exceptions into per-channel results.
"""

from __future__ import annotations

import html
import json
import smtplib
import ssl
import urllib.request
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate
from typing import Any, Protocol, runtime_checkable

from panel_alerts.clock import to_iso
from panel_alerts.models import Alert, Severity

SLACK_COLORS: dict[Severity, str] = {
    Severity.INFO: "good",
    Severity.WARNING: "warning",
    Severity.ERROR: "danger",
    Severity.CRITICAL: "danger",
}


class DeliveryError(Exception):
    """Raised when a transport cannot deliver (e.g. SMTP not configured)."""


@runtime_checkable
class WebhookTransport(Protocol):
    def post(self, url: str, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class MailSender(Protocol):
    def send(self, recipients: list[str], subject: str, body: str) -> None: ...


class WebhookSender:
    """POST JSON payloads to a webhook URL.

    Uses stdlib urllib.request -- no extra dependencies required.
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._headers = headers or {}
        self._timeout = timeout

    def post(self, url: str, payload: dict[str, Any]) -> None:
        body = json.dumps(payload, sort_keys=True).encode("utf-8")
        req = urllib.request.Request(
            url,
            data=body,
            headers={
                "Content-Type": "application/json",
                **self._headers,
            },
            method="POST",
        )
        # urllib raises HTTPError for any non-2xx answer
        urllib.request.urlopen(req, timeout=self._timeout)  # noqa: S310


class ChatWebhookSender(WebhookSender):
    """Slack-style incoming webhook. The channel override travels in the payload."""


class SmtpMailSender:
    """SMTP mail sender with STARTTLS and HTML + plaintext parts."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        from_address: str = "",
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        from_name: str = "Panel Alerts",
    ) -> None:
        self._host = host
        self._port = port
        self._from_address = from_address
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        self._from_name = from_name

    def is_configured(self) -> bool:
        return bool(self._host and self._from_address)

    def send(self, recipients: list[str], subject: str, body: str) -> None:
        if not self.is_configured():
            raise DeliveryError("SMTP is not configured (host and sender required)")

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self._from_name, self._from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=False)
        msg.attach(MIMEText(_strip_html(body), "plain", "utf-8"))
        msg.attach(MIMEText(body, "html", "utf-8"))

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
            if self._use_tls:
                server.starttls(context=ssl.create_default_context())
            if self._username and self._password:
                server.login(self._username, self._password)
            server.sendmail(self._from_address, recipients, msg.as_string())


# --- Payload formatting ---


def build_webhook_payload(alert: Alert, server_name: str | None = None) -> dict[str, Any]:
    return {
        "type": "alert",
        "alert_id": alert.alert_id,
        "rule_id": alert.rule_id,
        "title": alert.title,
        "message": alert.message,
        "severity": alert.severity.value,
        "server_id": alert.server_id,
        "server_name": server_name,
        "metric_name": alert.metric_name,
        "metric_value": alert.metric_value,
        "triggered_at": to_iso(alert.created_at),
    }


def build_chat_payload(
    alert: Alert,
    server_name: str | None = None,
    channel: str | None = None,
) -> dict[str, Any]:
    server = server_name or alert.server_id or "global"
    fields: list[dict[str, Any]] = [
        {"title": "Alert ID", "value": alert.alert_id, "short": True},
        {"title": "Server", "value": server, "short": True},
        {
            "title": "Triggered",
            "value": alert.created_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
            "short": True,
        },
    ]
    if alert.metric_value is not None:
        fields.append({
            "title": alert.metric_name or "Metric",
            "value": f"{alert.metric_value:g}",
            "short": True,
        })
    payload: dict[str, Any] = {
        "text": (
            f":rotating_light: *{alert.title}*\n"
            f"{alert.message}\n"
            f"*Severity:* `{alert.severity.value}`\n"
            f"*Server:* `{server}`"
        ),
        "attachments": [
            {"color": SLACK_COLORS.get(alert.severity, "warning"), "fields": fields},
        ],
    }
    if channel and channel.strip():
        payload["channel"] = channel.strip()
    return payload


def build_email(alert: Alert, server_name: str | None = None) -> tuple[str, str]:
    """Return ``(subject, html_body)`` for an alert email."""
    server = html.escape(server_name or alert.server_id or "global")
    subject = f"[{alert.severity.value.upper()}] Alert: {alert.title}"
    metric = ""
    if alert.metric_value is not None:
        unit = "%" if "usage" in (alert.metric_name or "").lower() else ""
        metric = (
            "<p><strong>Metric:</strong> "
            f"{html.escape(alert.metric_name or 'n/a')} = {alert.metric_value:.2f}{unit}</p>"
        )
    body = (
        "<html><body>"
        f"<h2>{html.escape(alert.title)}</h2>"
        f"<p>{html.escape(alert.message)}</p>"
        f"<p><strong>Server:</strong> {server}<br>"
        f"<strong>Triggered:</strong> {alert.created_at.strftime('%Y-%m-%d %H:%M:%S UTC')}<br>"
        f"<strong>Severity:</strong> <span class=\"badge-{alert.severity.value}\">"
        f"{alert.severity.value}</span></p>"
        f"{metric}"
        f"<p>Alert ID: {alert.alert_id}</p>"
        "</body></html>"
    )
    return subject, body


def _strip_html(body: str) -> str:
    text = body.replace("<br>", "\n").replace("</p>", "\n").replace("</h2>", "\n")
    out: list[str] = []
    in_tag = False
    for ch in text:
        if ch == "<":
            in_tag = True
        elif ch == ">":
            in_tag = False
        elif not in_tag:
            out.append(ch)
    return html.unescape("".join(out)).strip()
