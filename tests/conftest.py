"""Shared fixtures: an in-memory catalog and a temporary inventory database."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterator

import pytest

from inventory_sync.connectors.catalog import FetchResult
from inventory_sync.connectors.database import Database
from inventory_sync.connectors.inventory import InventoryStore
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.models import RemoteProduct, RemoteVariation


def make_product(product_id: int, **overrides: Any) -> dict[str, Any]:
    """Raw catalog payload for a product."""
    data: dict[str, Any] = {
        "id": product_id,
        "name": f"Product {product_id}",
        "type": "simple",
        "sku": f"SKU-{product_id}",
        "price": "9.99",
        "categories": [{"id": 1, "name": "Widgets"}],
        "images": [{"id": 1, "src": f"https://cdn.test/{product_id}.jpg"}],
        "status": "publish",
    }
    data.update(overrides)
    return data


def make_variation(variation_id: int, **overrides: Any) -> dict[str, Any]:
    """Raw catalog payload for a variation."""
    data: dict[str, Any] = {
        "id": variation_id,
        "sku": f"VAR-{variation_id}",
        "price": "4.50",
        "attributes": [{"name": "Size", "option": f"S{variation_id}"}],
        "image": [],
        "status": "publish",
        "visible": True,
    }
    data.update(overrides)
    return data


class FakeCatalog:
    """
    In-memory Catalog.

    Pages are sliced from a flat product list the way the REST API
    paginates. Failures can be queued per page.
    """

    def __init__(
        self,
        products: list[dict[str, Any]] | None = None,
        variations: dict[int, list[dict[str, Any]]] | None = None,
    ) -> None:
        self.products = list(products or [])
        self.variations = dict(variations or {})
        self.connected = True
        self.page_failures: dict[int, int] = {}
        self.variation_failures: set[int] = set()
        self.product_calls: list[tuple[int, int]] = []
        self.variation_calls: list[int] = []
        self.closed = False

    def fetch_products_page(
        self,
        page_size: int,
        page: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteProduct]:
        self.product_calls.append((page_size, page))
        if self.page_failures.get(page, 0) > 0:
            self.page_failures[page] -= 1
            return FetchResult.err(f"HTTP 503 on products page {page}")

        products = self.products
        if filters and "status" in filters:
            products = [p for p in products if p.get("status") == filters["status"]]
        start = (page - 1) * page_size
        raw = products[start:start + page_size]

        items: list[RemoteProduct] = []
        invalid: list[str] = []
        for entry in raw:
            if not entry.get("name"):
                invalid.append(f"Invalid RemoteProduct data received (id={entry['id']}): name")
            else:
                items.append(RemoteProduct.model_validate(entry))
        return FetchResult.ok(items, invalid)

    def fetch_variations(
        self,
        product_id: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteVariation]:
        self.variation_calls.append(product_id)
        if product_id in self.variation_failures:
            return FetchResult.err(f"HTTP 500 on products/{product_id}/variations")

        raw = self.variations.get(product_id, [])
        if filters and "status" in filters:
            raw = [v for v in raw if v.get("status") == filters["status"]]
        return FetchResult.ok([RemoteVariation.model_validate(v) for v in raw])

    def test_connectivity(self) -> tuple[bool, str]:
        if self.connected:
            return True, "Connection successful"
        return False, "Connection error: connection refused"

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> "FakeCatalog":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """A fresh inventory database file."""
    database = Database(tmp_path / "inventory.db")
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def store(db: Database) -> InventoryStore:
    return InventoryStore(db)


@pytest.fixture
def sync_log(db: Database) -> SyncLog:
    return SyncLog(db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep INVENTORY_SYNC_* variables from the host out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("INVENTORY_SYNC_"):
            monkeypatch.delenv(name)
