"""
Variation Import - one-shot import of variable products.

Walks the whole catalog in one call (no checkpointing), collects variable
parents, fetches and filters their variations, then inserts the parents
and variations the store does not have yet. Used by the CLI for bulk
backfills; the web flow uses SyncEngine instead.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from inventory_sync.connectors.catalog import Catalog
from inventory_sync.connectors.inventory import (
    InventoryStore,
    PersistenceError,
    UpsertOutcome,
)
from inventory_sync.core.dedup import DedupStats, VariationFilter
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.models import (
    InventoryItem,
    PUBLISH_STATUS,
    RemoteProduct,
    RemoteVariation,
)
from inventory_sync.utils.logger import get_logger


logger = get_logger(__name__)


class ImportMode(str, Enum):
    """How strictly fetched variations are filtered."""

    BASIC = "basic"  # drop ids repeated within one fetch
    STRICT = "strict"  # + drop ids already seen under another parent
    STATUS_AWARE = "status-aware"  # + drop unpublished/hidden variations


@dataclass
class ImportReport:
    """Result of a variation import."""

    mode: ImportMode
    dry_run: bool
    parents_found: int = 0
    parents_to_add: int = 0
    variations_to_add: int = 0
    parents_added: int = 0
    variations_added: int = 0
    pages_fetched: int = 0
    dedup: DedupStats = field(default_factory=DedupStats)
    errors: list[str] = field(default_factory=list)
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def duration_seconds(self) -> float:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return 0.0

    @property
    def total_added(self) -> int:
        return self.parents_added + self.variations_added


class VariationImporter:
    """
    Bulk importer for variable products and their variations.

    Example:
        importer = VariationImporter(catalog, store, sync_log, mode=ImportMode.STRICT)
        report = importer.run(dry_run=True)
        print(report.variations_to_add)
    """

    def __init__(
        self,
        catalog: Catalog,
        store: InventoryStore,
        sync_log: SyncLog,
        mode: ImportMode = ImportMode.STATUS_AWARE,
        page_size: int = 50,
        low_stock_threshold: int = 5,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.sync_log = sync_log
        self.mode = mode
        self.page_size = page_size
        self.low_stock_threshold = low_stock_threshold

    def _filters(self) -> dict[str, str]:
        if self.mode == ImportMode.STATUS_AWARE:
            return {"status": PUBLISH_STATUS}
        return {}

    def _collect_parents(self, report: ImportReport) -> list[RemoteProduct]:
        parents: dict[int, RemoteProduct] = {}
        page = 1
        while True:
            result = self.catalog.fetch_products_page(self.page_size, page, self._filters())
            if result.is_error:
                report.errors.append(f"Page {page} could not be fetched: {result.error}")
                break
            report.pages_fetched += 1
            report.errors.extend(result.invalid)
            for product in result.items:
                if product.is_variable:
                    parents.setdefault(product.id, product)
            if result.raw_count < self.page_size:
                break
            page += 1

        logger.info(f"Found {len(parents)} variable products across {report.pages_fetched} pages")
        return list(parents.values())

    def run(self, dry_run: bool = False) -> ImportReport:
        """
        Import missing variable parents and variations.

        Args:
            dry_run: Report planned inserts without touching the store

        Returns:
            ImportReport with counts of what was (or would be) added
        """
        report = ImportReport(mode=self.mode, dry_run=dry_run, start_time=time.time())

        ok, message = self.catalog.test_connectivity()
        if not ok:
            report.errors.append(f"Catalog connection failed: {message}")
            report.end_time = time.time()
            return report

        parents = self._collect_parents(report)
        report.parents_found = len(parents)

        variation_filter = VariationFilter(
            check_status=self.mode == ImportMode.STATUS_AWARE,
            global_dedup=self.mode != ImportMode.BASIC,
        )
        pairs: list[tuple[RemoteProduct, RemoteVariation]] = []
        for parent in parents:
            fetched = self.catalog.fetch_variations(parent.id, self._filters())
            if fetched.is_error:
                report.errors.append(
                    f"Variations of product {parent.id} could not be fetched: {fetched.error}"
                )
                continue
            report.errors.extend(fetched.invalid)
            pairs.extend(variation_filter.filter(parent, fetched.items))
        report.dedup = variation_filter.stats

        existing = self.store.external_ids()
        new_parents = [p for p in parents if p.id not in existing]
        planned: dict[int, tuple[RemoteProduct, RemoteVariation]] = {}
        for parent, variation in pairs:
            if variation.id not in existing:
                planned.setdefault(variation.id, (parent, variation))

        report.parents_to_add = len(new_parents)
        report.variations_to_add = len(planned)

        if dry_run:
            logger.info(
                f"Dry run: would add {report.parents_to_add} parents and "
                f"{report.variations_to_add} variations"
            )
            report.end_time = time.time()
            return report

        for parent in new_parents:
            item = InventoryItem.from_product(parent, self.low_stock_threshold)
            if self._insert(item, report):
                report.parents_added += 1

        for parent, variation in planned.values():
            item = InventoryItem.from_variation(parent, variation, self.low_stock_threshold)
            if self._insert(item, report):
                report.variations_added += 1

        self.sync_log.record(
            report.total_added,
            0,
            "success",
            f"Variation import ({self.mode.value}): {report.parents_added} parents, "
            f"{report.variations_added} variations, "
            f"{report.dedup.duplicates_dropped} duplicates and "
            f"{report.dedup.ghosts_dropped} ghosts filtered",
        )
        report.end_time = time.time()
        return report

    def _insert(self, item: InventoryItem, report: ImportReport) -> bool:
        try:
            return self.store.upsert(item) == UpsertOutcome.ADDED
        except PersistenceError as e:
            logger.error(str(e))
            report.errors.append(str(e))
            return False
