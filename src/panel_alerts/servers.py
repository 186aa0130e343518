"""Minimal server directory.

Server CRUD belongs to the panel's API layer; the alerting core only
needs to check that a server id exists and to name it in alert titles.
"""

from __future__ import annotations

import secrets

from panel_alerts.clock import Clock, from_iso, to_iso, utc_now
from panel_alerts.db.connection import Database
from panel_alerts.errors import ValidationError
from panel_alerts.models import Server


class ServerRegistry:
    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self._db = db
        self._clock = clock or utc_now

    def register(self, name: str, server_id: str | None = None) -> Server:
        if not name.strip():
            raise ValidationError("Server name must not be blank")
        server_id = server_id or f"srv-{secrets.token_hex(6)}"
        self._db.write(
            "INSERT INTO servers (server_id, name, created_at) VALUES (?, ?, ?)",
            (server_id, name.strip(), to_iso(self._clock())),
        )
        return self.get(server_id)  # type: ignore[return-value]

    def get(self, server_id: str) -> Server | None:
        row = self._db.fetchone(
            "SELECT * FROM servers WHERE server_id = ?", (server_id,)
        )
        if row is None:
            return None
        return Server(
            server_id=row["server_id"],
            name=row["name"],
            created_at=from_iso(row["created_at"]),
        )

    def exists(self, server_id: str) -> bool:
        return self.get(server_id) is not None

    def list_servers(self) -> list[Server]:
        rows = self._db.fetchall("SELECT server_id FROM servers ORDER BY name")
        return [self.get(r["server_id"]) for r in rows]  # type: ignore[misc]
