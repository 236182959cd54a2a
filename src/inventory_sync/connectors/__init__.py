"""Catalog and database connectors for Inventory Sync."""

from inventory_sync.connectors.catalog import CatalogClient, FetchResult
from inventory_sync.connectors.database import Database
from inventory_sync.connectors.inventory import InventoryStore

__all__ = ["CatalogClient", "FetchResult", "Database", "InventoryStore"]
