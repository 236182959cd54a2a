"""Append-only log of sync run outcomes."""

from __future__ import annotations

import sqlite3

from inventory_sync.connectors.database import Database
from inventory_sync.models import SyncLogEntry, now_iso


def _row_to_entry(row: sqlite3.Row) -> SyncLogEntry:
    return SyncLogEntry(
        id=row["id"],
        timestamp=row["sync_date"],
        products_added=row["products_added"],
        products_updated=row["products_updated"],
        status=row["status"],
        details=row["details"],
    )


class SyncLog:
    """
    Durable record of sync runs, queried most recent first.

    Entries are only ever inserted.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.db.init_schema()

    def append(self, entry: SyncLogEntry) -> SyncLogEntry:
        cursor = self.db.execute_sql(
            "INSERT INTO sync_log "
            "(sync_date, products_added, products_updated, status, details) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                entry.timestamp,
                entry.products_added,
                entry.products_updated,
                entry.status,
                entry.details,
            ),
        )
        return SyncLogEntry(
            id=int(cursor.lastrowid),
            timestamp=entry.timestamp,
            products_added=entry.products_added,
            products_updated=entry.products_updated,
            status=entry.status,
            details=entry.details,
        )

    def record(
        self,
        products_added: int,
        products_updated: int,
        status: str,
        details: str = "",
    ) -> SyncLogEntry:
        """Append an entry stamped with the current time."""
        return self.append(
            SyncLogEntry(
                timestamp=now_iso(),
                products_added=products_added,
                products_updated=products_updated,
                status=status,
                details=details,
            )
        )

    def recent(self, limit: int = 10) -> list[SyncLogEntry]:
        rows = self.db.query(
            "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
        )
        return [_row_to_entry(r) for r in rows]

    def last(self) -> SyncLogEntry | None:
        entries = self.recent(1)
        return entries[0] if entries else None
