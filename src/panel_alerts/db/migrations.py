"""Version-tracked SQLite schema migrations."""

from __future__ import annotations

import sqlite3

from panel_alerts.db.connection import Database

MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        );
        INSERT INTO schema_version (version) VALUES (0);

        CREATE TABLE IF NOT EXISTS servers (
            server_id   TEXT PRIMARY KEY,
            name        TEXT NOT NULL,
            created_at  TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS alert_rules (
            rule_id            TEXT PRIMARY KEY,
            owner_id           TEXT NOT NULL,
            server_id          TEXT REFERENCES servers(server_id),
            name               TEXT NOT NULL,
            description        TEXT NOT NULL DEFAULT '',
            metric_name        TEXT NOT NULL,
            operator           TEXT NOT NULL,
            threshold          REAL NOT NULL,
            severity           TEXT NOT NULL,
            enabled            INTEGER NOT NULL DEFAULT 1,
            cooldown_minutes   INTEGER NOT NULL DEFAULT 5,
            channels_json      TEXT NOT NULL DEFAULT '{}',
            created_at         TEXT NOT NULL,
            updated_at         TEXT NOT NULL,
            last_triggered_at  TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_alert_rules_owner
            ON alert_rules(owner_id);
        CREATE INDEX IF NOT EXISTS idx_alert_rules_enabled
            ON alert_rules(enabled);
        """,
    ),
    (
        2,
        """
        CREATE TABLE IF NOT EXISTS alerts (
            alert_id              TEXT PRIMARY KEY,
            rule_id               TEXT,
            server_id             TEXT REFERENCES servers(server_id),
            title                 TEXT NOT NULL,
            message               TEXT NOT NULL,
            severity              TEXT NOT NULL,
            status                TEXT NOT NULL DEFAULT 'active',
            metric_name           TEXT,
            metric_value          REAL,
            context               TEXT NOT NULL DEFAULT '',
            created_at            TEXT NOT NULL,
            acknowledged_at       TEXT,
            resolved_at           TEXT,
            notification_status   TEXT NOT NULL DEFAULT 'pending',
            last_notification_at  TEXT
        );

        CREATE TABLE IF NOT EXISTS alert_history (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            alert_id      TEXT NOT NULL REFERENCES alerts(alert_id),
            action        TEXT NOT NULL,
            old_status    TEXT,
            new_status    TEXT NOT NULL,
            description   TEXT NOT NULL DEFAULT '',
            performed_by  TEXT NOT NULL DEFAULT 'system',
            timestamp     TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS alert_comments (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            alert_id      TEXT NOT NULL REFERENCES alerts(alert_id),
            comment       TEXT NOT NULL,
            comment_type  TEXT NOT NULL DEFAULT 'General',
            author        TEXT NOT NULL DEFAULT 'system',
            created_at    TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_alerts_status
            ON alerts(status);
        CREATE INDEX IF NOT EXISTS idx_alerts_rule
            ON alerts(rule_id);
        CREATE INDEX IF NOT EXISTS idx_alert_history_alert
            ON alert_history(alert_id);
        CREATE INDEX IF NOT EXISTS idx_alert_comments_alert
            ON alert_comments(alert_id);
        """,
    ),
]


def get_schema_version(db: Database) -> int:
    """Return the current schema version, or 0 if uninitialized."""
    try:
        row = db.fetchone("SELECT version FROM schema_version")
    except sqlite3.OperationalError:
        return 0
    return int(row["version"]) if row else 0


def run_migrations(db: Database) -> int:
    """Apply pending migrations. Returns the final schema version."""
    current = get_schema_version(db)

    for version, sql in MIGRATIONS:
        if version <= current:
            continue
        db.write_script(sql)
        db.write("UPDATE schema_version SET version = ?", (version,))

    return get_schema_version(db)
