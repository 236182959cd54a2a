"""Utility modules for Inventory Sync."""

from inventory_sync.utils.logger import setup_logging, get_logger
from inventory_sync.utils.display import ProgressDisplay

__all__ = ["setup_logging", "get_logger", "ProgressDisplay"]
