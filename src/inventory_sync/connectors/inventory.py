"""
Inventory Store - local physical inventory rows.

Idempotent lookup and insert/update by external (catalog) id. Stock is
owned locally: the sync path sets it only when a row is created.
"""

from __future__ import annotations

import sqlite3
from enum import Enum
from typing import Any, Iterable

from inventory_sync.connectors.database import Database
from inventory_sync.models import InventoryItem, now_iso


# Fields the remote catalog owns; the only ones a sync may overwrite
CATALOG_FIELDS = ("title", "sku", "category", "price", "image_url")

UPDATABLE_FIELDS = CATALOG_FIELDS + ("stock", "low_stock_threshold", "notes")

_COLUMNS = (
    "external_id, title, sku, category, price, stock, low_stock_threshold, "
    "is_low_stock, image_url, notes, created_at, last_updated"
)


class PersistenceError(Exception):
    """Raised when an inventory insert or update fails."""


class UpsertOutcome(str, Enum):
    """What an upsert did to the store."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"


def _row_to_item(row: sqlite3.Row) -> InventoryItem:
    item = InventoryItem(
        local_id=row["id"],
        external_id=row["external_id"],
        title=row["title"],
        sku=row["sku"],
        category=row["category"],
        price=row["price"],
        stock=row["stock"],
        low_stock_threshold=row["low_stock_threshold"],
        image_url=row["image_url"],
        notes=row["notes"],
        created_at=row["created_at"],
        last_updated=row["last_updated"],
    )
    item.is_low_stock = bool(row["is_low_stock"])
    return item


def _insert_params(item: InventoryItem, now: str) -> tuple[Any, ...]:
    return (
        item.external_id,
        item.title,
        item.sku,
        item.category,
        item.price,
        item.stock,
        item.low_stock_threshold,
        int(item.stock <= item.low_stock_threshold),
        item.image_url,
        item.notes,
        now,
        now,
    )


class InventoryStore:
    """
    Store for InventoryItem rows.

    Example:
        store = InventoryStore(db)

        outcome = store.upsert(item, update_fields=CATALOG_FIELDS)
        existing = store.find_by_external_id(item.external_id)
        store.update(existing.local_id, stock=12)
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.db.init_schema()

    def get(self, local_id: int) -> InventoryItem | None:
        row = self.db.query_one(
            "SELECT * FROM physical_inventory WHERE id = ?", (local_id,)
        )
        return _row_to_item(row) if row else None

    def find_by_external_id(self, external_id: int) -> InventoryItem | None:
        """Look up the item mirroring a catalog product or variation."""
        row = self.db.query_one(
            "SELECT * FROM physical_inventory WHERE external_id = ?",
            (external_id,),
        )
        return _row_to_item(row) if row else None

    def insert(self, item: InventoryItem) -> int:
        """
        Insert a new item.

        Returns:
            The new local id

        Raises:
            PersistenceError: on a duplicate external id or database error
        """
        placeholders = ", ".join("?" for _ in range(12))
        try:
            cursor = self.db.execute_sql(
                f"INSERT INTO physical_inventory ({_COLUMNS}) VALUES ({placeholders})",
                _insert_params(item, now_iso()),
            )
        except sqlite3.IntegrityError as e:
            raise PersistenceError(
                f"Item with external id {item.external_id} already exists"
            ) from e
        except sqlite3.Error as e:
            raise PersistenceError(f"Insert failed for {item.external_id}: {e}") from e
        return int(cursor.lastrowid)

    def update(self, local_id: int, **fields: Any) -> bool:
        """
        Apply a sparse patch to an item.

        Only supplied fields change. is_low_stock is recomputed when stock
        or low_stock_threshold is supplied; last_updated is always touched.

        Returns:
            False if no row has this local id
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        try:
            with self.db.transaction() as conn:
                return self._apply_update(conn, "id", local_id, fields)
        except sqlite3.Error as e:
            raise PersistenceError(f"Update failed for item {local_id}: {e}") from e

    def _apply_update(
        self,
        conn: sqlite3.Connection,
        key_column: str,
        key: int,
        fields: dict[str, Any],
    ) -> bool:
        assignments = [f"{name} = ?" for name in fields]
        params: list[Any] = list(fields.values())

        if "stock" in fields or "low_stock_threshold" in fields:
            current = conn.execute(
                f"SELECT stock, low_stock_threshold FROM physical_inventory "
                f"WHERE {key_column} = ?",
                (key,),
            ).fetchone()
            if current is None:
                return False
            stock = fields.get("stock", current["stock"])
            threshold = fields.get("low_stock_threshold", current["low_stock_threshold"])
            assignments.append("is_low_stock = ?")
            params.append(int(stock <= threshold))

        assignments.append("last_updated = ?")
        params.append(now_iso())
        params.append(key)

        cursor = conn.execute(
            f"UPDATE physical_inventory SET {', '.join(assignments)} "
            f"WHERE {key_column} = ?",
            params,
        )
        return cursor.rowcount > 0

    def upsert(
        self,
        item: InventoryItem,
        update_fields: Iterable[str] | None = None,
    ) -> UpsertOutcome:
        """
        Insert the item, or refresh selected catalog fields if it exists.

        Insert and update run in one transaction keyed on the unique
        external_id, so repeated calls never create duplicate rows.

        Args:
            item: Item built from catalog data
            update_fields: Catalog fields to refresh on an existing row
                (None = leave existing rows untouched)

        Returns:
            ADDED, UPDATED or SKIPPED
        """
        fields = tuple(update_fields or ())
        if set(fields) - set(CATALOG_FIELDS):
            raise ValueError("upsert may only refresh catalog fields")

        placeholders = ", ".join("?" for _ in range(12))
        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    f"INSERT INTO physical_inventory ({_COLUMNS}) VALUES ({placeholders}) "
                    f"ON CONFLICT(external_id) DO NOTHING",
                    _insert_params(item, now_iso()),
                )
                if cursor.rowcount == 1:
                    return UpsertOutcome.ADDED
                if not fields:
                    return UpsertOutcome.SKIPPED

                values = item.catalog_fields()
                self._apply_update(
                    conn,
                    "external_id",
                    item.external_id,
                    {name: values[name] for name in fields},
                )
                return UpsertOutcome.UPDATED
        except sqlite3.Error as e:
            raise PersistenceError(f"Upsert failed for {item.external_id}: {e}") from e

    def set_stock(self, local_id: int, stock: int) -> bool:
        """Set the physical stock count of an item."""
        if stock < 0:
            raise ValueError("stock cannot be negative")
        return self.update(local_id, stock=stock)

    def search(self, term: str, limit: int = 20) -> list[InventoryItem]:
        """Find items whose title or SKU contains the term."""
        pattern = f"%{term}%"
        rows = self.db.query(
            "SELECT * FROM physical_inventory WHERE title LIKE ? OR sku LIKE ? "
            "ORDER BY title ASC LIMIT ?",
            (pattern, pattern, limit),
        )
        return [_row_to_item(r) for r in rows]

    def list_items(self, limit: int = 50, offset: int = 0) -> list[InventoryItem]:
        rows = self.db.query(
            "SELECT * FROM physical_inventory ORDER BY title ASC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [_row_to_item(r) for r in rows]

    def list_low_stock(self, limit: int = 20) -> list[InventoryItem]:
        """Items at or below their threshold, lowest stock first."""
        rows = self.db.query(
            "SELECT * FROM physical_inventory WHERE is_low_stock = 1 "
            "ORDER BY stock ASC, title ASC LIMIT ?",
            (limit,),
        )
        return [_row_to_item(r) for r in rows]

    def find_by_sku(self, sku: str) -> InventoryItem | None:
        """First item with this SKU. SKUs are not unique; blank ones never match."""
        if not sku:
            return None
        row = self.db.query_one(
            "SELECT * FROM physical_inventory WHERE sku = ? ORDER BY id ASC LIMIT 1",
            (sku,),
        )
        return _row_to_item(row) if row else None

    def recently_updated(self, limit: int = 10) -> list[InventoryItem]:
        rows = self.db.query(
            "SELECT * FROM physical_inventory ORDER BY last_updated DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [_row_to_item(r) for r in rows]

    def total_value(self) -> float:
        """Value of the physical stock on hand (sum of price * stock)."""
        row = self.db.query_one(
            "SELECT COALESCE(SUM(price * stock), 0) AS total FROM physical_inventory"
        )
        return float(row["total"]) if row else 0.0

    def low_stock_count(self) -> int:
        row = self.db.query_one(
            "SELECT COUNT(*) AS total FROM physical_inventory WHERE is_low_stock = 1"
        )
        return row["total"] if row else 0

    def count(self, notes: str | None = None) -> int:
        """
        Count items, optionally by provenance note.

        A full note such as "variation-of:10" matches exactly; a bare tag
        ending in ":" ("variation-of:") matches every item of that kind.
        """
        where, params = _notes_clause(notes)
        row = self.db.query_one(
            f"SELECT COUNT(*) AS total FROM physical_inventory{where}", params
        )
        return row["total"] if row else 0

    def external_ids(self, notes: str | None = None) -> set[int]:
        """External ids in the store, optionally filtered as in count()."""
        where, params = _notes_clause(notes)
        rows = self.db.query(f"SELECT external_id FROM physical_inventory{where}", params)
        return {r["external_id"] for r in rows}


def _notes_clause(notes: str | None) -> tuple[str, tuple[Any, ...]]:
    if notes is None:
        return "", ()
    if notes.endswith(":"):
        return " WHERE substr(notes, 1, ?) = ?", (len(notes), notes)
    return " WHERE notes = ?", (notes,)
