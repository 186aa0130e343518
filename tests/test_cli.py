"""Tests for the panel-alerts CLI."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from panel_alerts.cli.main import cli
from panel_alerts.config import AlertsConfig
from panel_alerts.service import AlertingService, build_service


def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "cli.db")


@pytest.fixture()
def svc(db_path: str) -> AlertingService:
    return build_service(AlertsConfig(db_path=db_path))


def _rule(svc: AlertingService, **overrides) -> str:
    body = {
        "name": "High CPU usage",
        "metric_name": "cpu_usage",
        "operator": "gt",
        "threshold": 80,
    }
    body.update(overrides)
    return svc.create_rule(body, owner_id="ops").rule_id


def _alert(svc: AlertingService) -> str:
    alert = svc.create_alert({"title": "Disk check", "message": "m", "severity": "error"})
    return alert.alert_id


# --- init-db ---


class TestInitDb:
    def test_creates_database(self, db_path: str):
        result = runner().invoke(cli, ["--db", db_path, "init-db"])
        assert result.exit_code == 0
        assert "schema version 2" in result.output
        assert Path(db_path).is_file()

    def test_idempotent(self, db_path: str):
        runner().invoke(cli, ["--db", db_path, "init-db"])
        result = runner().invoke(cli, ["--db", db_path, "init-db"])
        assert result.exit_code == 0


# --- evaluate ---


class TestEvaluate:
    def test_triggers_from_metrics_file(
        self, db_path: str, svc: AlertingService, tmp_path: Path,
    ):
        rule_id = _rule(svc)
        metrics = tmp_path / "metrics.yaml"
        metrics.write_text("global:\n  cpu_usage: 91.5\n", encoding="utf-8")

        result = runner().invoke(cli, ["--db", db_path, "evaluate", "--metrics", str(metrics)])

        assert result.exit_code == 0
        assert "TRIGGERED" in result.output
        assert rule_id in result.output
        assert "1 triggered" in result.output
        assert len(svc.list_alerts()) == 1

    def test_json_output(self, db_path: str, svc: AlertingService, tmp_path: Path):
        _rule(svc)
        metrics = tmp_path / "metrics.json"
        metrics.write_text(json.dumps({"global": {"cpu_usage": 50}}), encoding="utf-8")

        result = runner().invoke(
            cli, ["--db", db_path, "evaluate", "--metrics", str(metrics), "--json-output"],
        )

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [r["outcome"] for r in data["results"]] == ["not_triggered"]

    def test_missing_metrics_unavailable(self, db_path: str, svc: AlertingService):
        _rule(svc)
        result = runner().invoke(cli, ["--db", db_path, "evaluate"])
        assert result.exit_code == 0
        assert "UNAVAILABLE" in result.output


# --- rules ---


class TestRules:
    def test_list_empty(self, db_path: str, svc: AlertingService):
        result = runner().invoke(cli, ["--db", db_path, "rules", "list"])
        assert result.exit_code == 0
        assert "No alert rules." in result.output

    def test_list(self, db_path: str, svc: AlertingService):
        rule_id = _rule(svc)
        result = runner().invoke(cli, ["--db", db_path, "rules", "list"])
        assert rule_id in result.output
        assert "cpu_usage gt 80" in result.output

    def test_list_json_owner_filter(self, db_path: str, svc: AlertingService):
        _rule(svc)
        result = runner().invoke(
            cli, ["--db", db_path, "rules", "list", "--owner", "nobody", "--json-output"],
        )
        assert json.loads(result.output) == []

    def test_test_rule(self, db_path: str, svc: AlertingService):
        rule_id = _rule(svc)
        result = runner().invoke(cli, ["--db", db_path, "rules", "test", rule_id])
        assert result.exit_code == 0
        assert "[TEST]" in result.output

    def test_test_missing_rule(self, db_path: str, svc: AlertingService):
        result = runner().invoke(cli, ["--db", db_path, "rules", "test", "rule-nope"])
        assert result.exit_code == 1
        assert "not found" in result.output


# --- alerts ---


class TestAlerts:
    def test_list(self, db_path: str, svc: AlertingService):
        alert_id = _alert(svc)
        result = runner().invoke(cli, ["--db", db_path, "alerts", "list"])
        assert result.exit_code == 0
        assert alert_id in result.output
        assert "ACTIVE" in result.output

    def test_list_status_filter(self, db_path: str, svc: AlertingService):
        _alert(svc)
        result = runner().invoke(
            cli, ["--db", db_path, "alerts", "list", "--status", "resolved", "--json-output"],
        )
        assert json.loads(result.output) == []

    def test_ack_resolve_delete(self, db_path: str, svc: AlertingService):
        alert_id = _alert(svc)

        result = runner().invoke(
            cli,
            ["--db", db_path, "alerts", "ack", alert_id, "--comment", "on it", "--user", "alice"],
        )
        assert result.exit_code == 0
        assert "ACKNOWLEDGED" in result.output

        result = runner().invoke(cli, ["--db", db_path, "alerts", "resolve", alert_id])
        assert "RESOLVED" in result.output

        result = runner().invoke(cli, ["--db", db_path, "alerts", "delete", alert_id])
        assert result.exit_code == 0

        actions = [h.action for h in svc.get_history(alert_id)]
        assert actions == ["Created", "Acknowledged", "Resolved"]
        assert svc.get_comments(alert_id)[0].author == "alice"

    def test_ack_resolved_fails(self, db_path: str, svc: AlertingService):
        alert_id = _alert(svc)
        svc.resolve(alert_id)
        result = runner().invoke(cli, ["--db", db_path, "alerts", "ack", alert_id])
        assert result.exit_code == 1
        assert "already resolved" in result.output

    def test_ack_missing(self, db_path: str, svc: AlertingService):
        result = runner().invoke(cli, ["--db", db_path, "alerts", "ack", "alt-nope"])
        assert result.exit_code == 1


# --- stats ---


class TestStats:
    def test_stats(self, db_path: str, svc: AlertingService):
        _alert(svc)
        result = runner().invoke(cli, ["--db", db_path, "stats"])
        assert result.exit_code == 0
        assert "Total:         1" in result.output

    def test_stats_json(self, db_path: str, svc: AlertingService):
        _alert(svc)
        result = runner().invoke(cli, ["--db", db_path, "stats", "--json-output"])
        data = json.loads(result.output)
        assert data["error_alerts"] == 1


# --- config ---


class TestConfigOption:
    def test_missing_config_file(self, tmp_path: Path):
        result = runner().invoke(
            cli, ["--config", str(tmp_path / "nope.yaml"), "stats"],
        )
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_config_file_db_path(self, tmp_path: Path):
        cfg = tmp_path / "panel-alerts.yaml"
        cfg.write_text("db_path: from-config.db\n", encoding="utf-8")
        result = runner().invoke(cli, ["--config", str(cfg), "init-db"])
        assert result.exit_code == 0
        assert (tmp_path / "from-config.db").is_file()
