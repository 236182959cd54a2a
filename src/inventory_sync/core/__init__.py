"""Core sync components for Inventory Sync."""

from inventory_sync.core.dedup import VariationFilter
from inventory_sync.core.engine import SyncEngine, SyncResult
from inventory_sync.core.state import (
    JsonFileStateRepository,
    MemoryStateRepository,
    SyncState,
)
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.core.variation_import import VariationImporter

__all__ = [
    "VariationFilter",
    "SyncEngine",
    "SyncResult",
    "JsonFileStateRepository",
    "MemoryStateRepository",
    "SyncState",
    "SyncLog",
    "VariationImporter",
]
