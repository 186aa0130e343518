"""panel-alerts CLI: command-line interface for the alerting engine.

Commands:
    init-db         Create or migrate the alert database
    evaluate        Run one evaluation pass over all enabled rules
    rules list      Show alert rules
    rules test      Raise a synthetic alert for a rule
    alerts list     Show alerts (newest first)
    alerts ack      Acknowledge an alert
    alerts resolve  Resolve an alert
    alerts delete   Soft-delete (resolve) an alert
    stats           Show alert counts
    serve           Run the HTTP API and the background evaluator
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from typing import Any

import click

from panel_alerts import __version__
from panel_alerts.config import AlertsConfig, load_config
from panel_alerts.db.connection import Database
from panel_alerts.db.migrations import run_migrations
from panel_alerts.errors import AlertingError
from panel_alerts.metrics.source import JsonFileMetricSource
from panel_alerts.models import Alert, AlertStatus, RuleOutcome
from panel_alerts.service import AlertingService, build_service

logger = logging.getLogger(__name__)

_OUTCOME_COLORS = {
    RuleOutcome.TRIGGERED: "red",
    RuleOutcome.NOT_TRIGGERED: "green",
    RuleOutcome.SUPPRESSED: "yellow",
    RuleOutcome.UNAVAILABLE: "yellow",
    RuleOutcome.ERROR: "red",
}

_STATUS_COLORS = {
    AlertStatus.ACTIVE: "red",
    AlertStatus.ACKNOWLEDGED: "yellow",
    AlertStatus.RESOLVED: "green",
}


def _config(ctx: click.Context) -> AlertsConfig:
    return ctx.obj["config"]


def _service(ctx: click.Context, metrics_file: str | None = None) -> AlertingService:
    config = _config(ctx)
    if metrics_file is not None:
        return build_service(config, JsonFileMetricSource(metrics_file))
    return build_service(config)


def _fail(message: str) -> None:
    click.echo(click.style("ERROR", fg="red") + f"  {message}", err=True)
    sys.exit(1)


def _dump(value: Any) -> None:
    click.echo(json.dumps(value, indent=2))


def _echo_alert(alert: Alert) -> None:
    status = click.style(alert.status.value.upper(), fg=_STATUS_COLORS[alert.status])
    click.echo(f"{alert.alert_id}  {status}  [{alert.severity.value}]  {alert.title}")


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to panel-alerts.yaml")
@click.option("--db", "db_path", default=None, help="Override the database path")
@click.option("--log-level", default=None, help="Logging level (default from config)")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    db_path: str | None,
    log_level: str | None,
) -> None:
    """panel-alerts: alert rule evaluation and notification dispatch."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        _fail(f"Error loading config: {e}")
    if db_path is not None:
        config = dataclasses.replace(config, db_path=db_path)

    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# --- init-db ---


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create or migrate the alert database."""
    config = _config(ctx)
    db = Database(config.db_path)
    try:
        version = run_migrations(db)
    finally:
        db.close()
    click.echo(f"Database ready: {config.db_path} (schema version {version})")


# --- evaluate ---


@cli.command()
@click.option("--metrics", "metrics_file", default=None, help="Metric snapshot (YAML/JSON)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def evaluate(ctx: click.Context, metrics_file: str | None, json_output: bool) -> None:
    """Run one evaluation pass over all enabled rules."""
    report = _service(ctx, metrics_file).evaluate_now()

    if json_output:
        _dump(report.model_dump(mode="json"))
        return

    for result in report.results:
        outcome = click.style(
            result.outcome.value.upper(), fg=_OUTCOME_COLORS[result.outcome],
        )
        line = f"{outcome}  {result.rule_id}"
        if result.value is not None:
            line += f"  value={result.value:g}"
        if result.alert_id:
            line += f"  alert={result.alert_id}"
        if result.error:
            line += f"  ({result.error})"
        click.echo(line)
    click.echo(f"\n{len(report.results)} rule(s) evaluated, {len(report.triggered)} triggered")


# --- rules group ---


@cli.group()
def rules() -> None:
    """Alert rule commands."""


@rules.command("list")
@click.option("--owner", default=None, help="Only rules of this owner")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def rules_list(ctx: click.Context, owner: str | None, json_output: bool) -> None:
    """Show alert rules."""
    items = _service(ctx).list_rules(owner_id=owner)

    if json_output:
        _dump([r.model_dump(mode="json") for r in items])
        return

    if not items:
        click.echo("No alert rules.")
        return
    for rule in items:
        state = "enabled" if rule.enabled else click.style("disabled", fg="yellow")
        click.echo(
            f"{rule.rule_id}  {rule.name}  "
            f"{rule.metric_name} {rule.operator.value} {rule.threshold:g}  "
            f"[{rule.severity.value}]  {state}"
        )


@rules.command("test")
@click.argument("rule_id")
@click.option("--metrics", "metrics_file", default=None, help="Metric snapshot (YAML/JSON)")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def rules_test(
    ctx: click.Context,
    rule_id: str,
    metrics_file: str | None,
    json_output: bool,
) -> None:
    """Raise a synthetic alert for RULE_ID and send its notifications."""
    try:
        alert, report = _service(ctx, metrics_file).test_rule(rule_id)
    except AlertingError as e:
        _fail(str(e))

    if json_output:
        _dump({
            "alert": alert.model_dump(mode="json"),
            "dispatch": report.model_dump(mode="json"),
        })
        return

    _echo_alert(alert)
    for result in report.results:
        detail = f" ({result.error})" if result.error else ""
        click.echo(f"  {result.channel.value}: {result.outcome.value}{detail}")


# --- alerts group ---


@cli.group()
def alerts() -> None:
    """Alert incident commands."""


@alerts.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in AlertStatus]),
    default=None,
    help="Only alerts in this status",
)
@click.option("--server", "server_id", default=None, help="Only alerts of this server")
@click.option("--rule", "rule_id", default=None, help="Only alerts raised by this rule")
@click.option("--limit", default=50, type=int, help="Maximum number of alerts")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def alerts_list(
    ctx: click.Context,
    status: str | None,
    server_id: str | None,
    rule_id: str | None,
    limit: int,
    json_output: bool,
) -> None:
    """Show alerts, newest first."""
    items = _service(ctx).list_alerts(
        server_id=server_id, status=status, rule_id=rule_id, limit=limit,
    )

    if json_output:
        _dump([a.model_dump(mode="json") for a in items])
        return

    if not items:
        click.echo("No alerts.")
        return
    for alert in items:
        _echo_alert(alert)


@alerts.command("ack")
@click.argument("alert_id")
@click.option("--comment", default=None, help="Acknowledgment comment")
@click.option("--user", default="system", help="Who acknowledges the alert")
@click.pass_context
def alerts_ack(ctx: click.Context, alert_id: str, comment: str | None, user: str) -> None:
    """Acknowledge ALERT_ID."""
    try:
        alert = _service(ctx).acknowledge(alert_id, comment=comment, performed_by=user)
    except AlertingError as e:
        _fail(str(e))
    _echo_alert(alert)


@alerts.command("resolve")
@click.argument("alert_id")
@click.option("--comment", default=None, help="Resolution comment")
@click.option("--user", default="system", help="Who resolves the alert")
@click.pass_context
def alerts_resolve(ctx: click.Context, alert_id: str, comment: str | None, user: str) -> None:
    """Resolve ALERT_ID."""
    try:
        alert = _service(ctx).resolve(alert_id, comment=comment, performed_by=user)
    except AlertingError as e:
        _fail(str(e))
    _echo_alert(alert)


@alerts.command("delete")
@click.argument("alert_id")
@click.option("--user", default="system", help="Who deletes the alert")
@click.pass_context
def alerts_delete(ctx: click.Context, alert_id: str, user: str) -> None:
    """Soft-delete ALERT_ID (the alert is resolved and kept)."""
    try:
        alert = _service(ctx).delete_alert(alert_id, performed_by=user)
    except AlertingError as e:
        _fail(str(e))
    _echo_alert(alert)


# --- stats ---


@cli.command()
@click.option("--json-output", is_flag=True, help="Output as JSON")
@click.pass_context
def stats(ctx: click.Context, json_output: bool) -> None:
    """Show alert counts by status and severity."""
    result = _service(ctx).get_stats()

    if json_output:
        _dump(result.model_dump(mode="json"))
        return

    click.echo(f"Total:         {result.total_alerts}")
    click.echo(f"  active:        {result.active_alerts}")
    click.echo(f"  acknowledged:  {result.acknowledged_alerts}")
    click.echo(f"  resolved:      {result.resolved_alerts}")
    click.echo(f"  last 24h:      {result.recent_alerts}")
    click.echo(
        f"Severity:      info={result.info_alerts} warning={result.warning_alerts} "
        f"error={result.error_alerts} critical={result.critical_alerts}"
    )


# --- serve command ---


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", default=None, type=int, help="Port number (default from config)")
@click.option(
    "--scheduler/--no-scheduler",
    default=True,
    help="Run the periodic evaluator alongside the API",
)
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, scheduler: bool) -> None:
    """Run the HTTP API (and the background evaluator)."""
    try:
        import uvicorn
    except ImportError:
        click.echo(
            "The API requires extra dependencies. Install with:\n"
            "  pip install panel-alerts[api]",
            err=True,
        )
        sys.exit(1)

    from panel_alerts.api.app import create_app
    from panel_alerts.scheduler import EvaluationScheduler

    config = _config(ctx)
    service = build_service(config)
    app = create_app(config, service=service)

    timer = None
    if scheduler:
        timer = EvaluationScheduler(service.evaluator, config.evaluation_interval_seconds)
        timer.start()

    try:
        uvicorn.run(app, host=host or config.api_host, port=port or config.api_port)
    finally:
        if timer is not None:
            timer.stop()
        service.close()
