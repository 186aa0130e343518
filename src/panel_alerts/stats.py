"""Alert statistics derived from the current alert rows."""

from __future__ import annotations

from datetime import timedelta

from panel_alerts.clock import Clock, to_iso, utc_now
from panel_alerts.db.connection import Database
from panel_alerts.models import AlertStats

RECENT_WINDOW = timedelta(hours=24)


class StatsAggregator:
    """Counts alerts by status and severity in one aggregate query."""

    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or utc_now

    def get_stats(self) -> AlertStats:
        since = to_iso(self._clock() - RECENT_WINDOW)
        row = self._db.fetchone(
            """SELECT
                 COUNT(*) AS total_alerts,
                 SUM(CASE WHEN status = 'active' THEN 1 ELSE 0 END) AS active_alerts,
                 SUM(CASE WHEN status = 'acknowledged' THEN 1 ELSE 0 END)
                     AS acknowledged_alerts,
                 SUM(CASE WHEN status = 'resolved' THEN 1 ELSE 0 END) AS resolved_alerts,
                 SUM(CASE WHEN severity = 'info' THEN 1 ELSE 0 END) AS info_alerts,
                 SUM(CASE WHEN severity = 'warning' THEN 1 ELSE 0 END) AS warning_alerts,
                 SUM(CASE WHEN severity = 'error' THEN 1 ELSE 0 END) AS error_alerts,
                 SUM(CASE WHEN severity = 'critical' THEN 1 ELSE 0 END) AS critical_alerts,
                 SUM(CASE WHEN created_at >= ? THEN 1 ELSE 0 END) AS recent_alerts
               FROM alerts""",
            (since,),
        )
        # SUM over an empty table is NULL
        return AlertStats(**{key: row[key] or 0 for key in row.keys()})
