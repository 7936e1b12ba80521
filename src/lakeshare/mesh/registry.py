"""🔐 Trust Registry - Who may send to which channel, and where events go.

Uses SQLite for:
- Registered domains (domain id, region, inbound channel)
- Channel permissions: the allow-list of principals per channel
- Routing rules: event pattern on a channel → destination channel

Writes are upserts keyed by natural identifiers, so re-running a
registration updates entries instead of duplicating them.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

PUT_EVENTS = "events:PutEvents"


@dataclass
class DomainRegistration:
    """A domain that may take part in the mesh."""

    domain_id: str
    region: str
    channel: str
    registered_at: datetime = field(default_factory=datetime.now)


@dataclass
class ChannelPermission:
    """Allows `principal` to put events on `channel`."""

    channel: str
    statement_id: str
    principal: str
    action: str = PUT_EVENTS
    granted_at: datetime = field(default_factory=datetime.now)


@dataclass
class RoutingRule:
    """Forwards events matching `pattern` on `channel` to `target_channel`."""

    channel: str
    name: str
    pattern: dict[str, Any]
    target_channel: str
    target_arn: str | None = None
    updated_at: datetime = field(default_factory=datetime.now)


class TrustRegistry:
    """Allow-list and routing table for the mesh channels.

    Example:
        registry = TrustRegistry(tmp_path / "lakeshare.db")
        registry.put_permission("111_centralEventBus", "AllowDomain_222", "222")
        registry.is_allowed("111_centralEventBus", "222")  # True
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: str | Path | None = None):
        """Initialize registry with SQLite database.

        Args:
            db_path: Path to the SQLite database, or ":memory:"
        """
        if db_path is None:
            from lakeshare.config import get_settings

            db_path = get_settings().registry_db

        self._lock = threading.RLock()
        self._memory = str(db_path) == ":memory:"
        if self._memory:
            # One shared connection, or every connect() would see an empty database
            self._conn = sqlite3.connect(":memory:", check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        # The shared in-memory connection is used by one caller at a time
        with self._lock if self._memory else nullcontext():
            if self._memory:
                conn = self._conn
            else:
                conn = sqlite3.connect(self.db_path)
                conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                if not self._memory:
                    conn.close()

    def _init_schema(self) -> None:
        """Initialize database schema."""
        with self._connect() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS _schema_version (
                    version INTEGER PRIMARY KEY
                );

                CREATE TABLE IF NOT EXISTS domains (
                    domain_id TEXT PRIMARY KEY,
                    region TEXT NOT NULL,
                    channel TEXT NOT NULL,
                    registered_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS channel_permissions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel TEXT NOT NULL,
                    statement_id TEXT NOT NULL,
                    principal TEXT NOT NULL,
                    action TEXT NOT NULL,
                    granted_at TEXT NOT NULL,
                    UNIQUE (channel, statement_id)
                );

                CREATE TABLE IF NOT EXISTS routing_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    channel TEXT NOT NULL,
                    name TEXT NOT NULL,
                    pattern TEXT NOT NULL,  -- JSON
                    target_channel TEXT NOT NULL,
                    target_arn TEXT,
                    updated_at TEXT NOT NULL,
                    UNIQUE (channel, name)
                );

                CREATE INDEX IF NOT EXISTS idx_permissions_channel ON channel_permissions(channel);
                CREATE INDEX IF NOT EXISTS idx_routes_channel ON routing_rules(channel);
            """)

            result = conn.execute("SELECT MAX(version) FROM _schema_version").fetchone()
            if result[0] is None:
                conn.execute(
                    "INSERT INTO _schema_version (version) VALUES (?)",
                    (self.SCHEMA_VERSION,),
                )

    # ========== Domains ==========

    def upsert_domain(self, domain_id: str, region: str, channel: str) -> DomainRegistration:
        now = datetime.now().isoformat()

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO domains (domain_id, region, channel, registered_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (domain_id) DO UPDATE SET region = excluded.region,
                                                      channel = excluded.channel
                """,
                (domain_id, region, channel, now),
            )
            row = conn.execute(
                "SELECT * FROM domains WHERE domain_id = ?", (domain_id,)
            ).fetchone()

        return self._row_to_domain(row)

    def get_domain(self, domain_id: str) -> DomainRegistration | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM domains WHERE domain_id = ?", (domain_id,)
            ).fetchone()
            return self._row_to_domain(row) if row else None

    def list_domains(self) -> list[DomainRegistration]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM domains ORDER BY domain_id").fetchall()
            return [self._row_to_domain(row) for row in rows]

    def remove_domain(self, domain_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM domains WHERE domain_id = ?", (domain_id,))
            return cursor.rowcount > 0

    def _row_to_domain(self, row: sqlite3.Row) -> DomainRegistration:
        return DomainRegistration(
            domain_id=row["domain_id"],
            region=row["region"],
            channel=row["channel"],
            registered_at=datetime.fromisoformat(row["registered_at"]),
        )

    # ========== Channel Permissions ==========

    def put_permission(
        self,
        channel: str,
        statement_id: str,
        principal: str,
        action: str = PUT_EVENTS,
    ) -> ChannelPermission:
        """Create or update the permission identified by (channel, statement_id)."""
        now = datetime.now().isoformat()

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO channel_permissions
                (channel, statement_id, principal, action, granted_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (channel, statement_id, principal, action, now),
            )

        return ChannelPermission(
            channel=channel,
            statement_id=statement_id,
            principal=principal,
            action=action,
            granted_at=datetime.fromisoformat(now),
        )

    def revoke_permission(self, channel: str, statement_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM channel_permissions WHERE channel = ? AND statement_id = ?",
                (channel, statement_id),
            )
            return cursor.rowcount > 0

    def list_permissions(self, channel: str | None = None) -> list[ChannelPermission]:
        query = "SELECT * FROM channel_permissions"
        params: list[Any] = []
        if channel:
            query += " WHERE channel = ?"
            params.append(channel)
        query += " ORDER BY channel, statement_id"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                ChannelPermission(
                    channel=row["channel"],
                    statement_id=row["statement_id"],
                    principal=row["principal"],
                    action=row["action"],
                    granted_at=datetime.fromisoformat(row["granted_at"]),
                )
                for row in rows
            ]

    def is_allowed(self, channel: str, principal: str, action: str = PUT_EVENTS) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM channel_permissions
                WHERE channel = ? AND action = ? AND (principal = ? OR principal = '*')
                LIMIT 1
                """,
                (channel, action, principal),
            ).fetchone()
            return row is not None

    # ========== Routing Rules ==========

    def put_route(
        self,
        channel: str,
        name: str,
        pattern: dict[str, Any],
        target_channel: str,
        target_arn: str | None = None,
    ) -> RoutingRule:
        now = datetime.now().isoformat()

        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO routing_rules
                (channel, name, pattern, target_channel, target_arn, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (channel, name, json.dumps(pattern), target_channel, target_arn, now),
            )

        return RoutingRule(
            channel=channel,
            name=name,
            pattern=pattern,
            target_channel=target_channel,
            target_arn=target_arn,
            updated_at=datetime.fromisoformat(now),
        )

    def remove_route(self, channel: str, name: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM routing_rules WHERE channel = ? AND name = ?",
                (channel, name),
            )
            return cursor.rowcount > 0

    def list_routes(self, channel: str | None = None) -> list[RoutingRule]:
        query = "SELECT * FROM routing_rules"
        params: list[Any] = []
        if channel:
            query += " WHERE channel = ?"
            params.append(channel)
        query += " ORDER BY channel, name"

        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
            return [
                RoutingRule(
                    channel=row["channel"],
                    name=row["name"],
                    pattern=json.loads(row["pattern"]),
                    target_channel=row["target_channel"],
                    target_arn=row["target_arn"],
                    updated_at=datetime.fromisoformat(row["updated_at"]),
                )
                for row in rows
            ]
