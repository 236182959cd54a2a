"""Inventory Sync - mirror a remote product catalog into a local stock database."""

__version__ = "1.0.0"
__author__ = "Inventory Sync Contributors"

from inventory_sync.config import Settings, load_settings

__all__ = ["Settings", "load_settings", "__version__"]
