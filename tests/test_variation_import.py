"""Tests for the one-shot variation importer."""

import pytest

from conftest import FakeCatalog, make_product, make_variation
from inventory_sync.connectors.inventory import InventoryStore
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.core.variation_import import ImportMode, VariationImporter


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog(
        [
            make_product(1),
            make_product(10, type="variable"),
            make_product(11, type="variable"),
        ],
        {
            10: [
                make_variation(101),
                make_variation(101),
                make_variation(102, status="private"),
                make_variation(500),
            ],
            11: [make_variation(500), make_variation(201, visible=False)],
        },
    )


def importer(catalog, store, sync_log, mode) -> VariationImporter:
    return VariationImporter(catalog, store, sync_log, mode=mode, page_size=2)


class TestVariationImporter:
    """Tests for VariationImporter."""

    def test_dry_run_writes_nothing(
        self, catalog: FakeCatalog, store: InventoryStore, sync_log: SyncLog
    ) -> None:
        """Test a dry run reports the plan and leaves the store untouched."""
        report = importer(catalog, store, sync_log, ImportMode.STRICT).run(dry_run=True)

        assert report.dry_run is True
        assert report.parents_found == 2
        assert report.parents_to_add == 2
        assert report.variations_to_add == 4  # 101, 102, 500, 201
        assert report.total_added == 0
        assert store.count() == 0
        assert sync_log.last() is None

    def test_pages_through_catalog(self, catalog: FakeCatalog, store, sync_log) -> None:
        """Test the importer walks pages until a short one."""
        report = importer(catalog, store, sync_log, ImportMode.BASIC).run(dry_run=True)

        assert report.pages_fetched == 2
        assert catalog.product_calls == [(2, 1), (2, 2)]

    def test_basic_mode(self, catalog: FakeCatalog, store: InventoryStore, sync_log: SyncLog) -> None:
        """Test basic mode only drops in-fetch duplicates."""
        report = importer(catalog, store, sync_log, ImportMode.BASIC).run()

        # 101, 102 (private), 500 under 10; 500 again and 201 (hidden) under 11
        assert report.dedup.duplicates_dropped == 1
        assert report.dedup.ghosts_dropped == 0
        assert report.variations_added == 4
        assert store.find_by_external_id(500).parent_external_id == 10
        assert store.find_by_external_id(201) is not None

    def test_strict_mode(self, catalog: FakeCatalog, store: InventoryStore, sync_log: SyncLog) -> None:
        """Test strict mode also drops cross-parent duplicates."""
        report = importer(catalog, store, sync_log, ImportMode.STRICT).run()

        assert report.dedup.duplicates_dropped == 2
        assert len(report.dedup.collisions) == 1
        assert report.parents_added == 2
        assert report.variations_added == 4
        assert store.find_by_external_id(102) is not None

    def test_status_aware_mode(
        self, catalog: FakeCatalog, store: InventoryStore, sync_log: SyncLog
    ) -> None:
        """Test status-aware mode drops unpublished and hidden variations."""
        report = importer(catalog, store, sync_log, ImportMode.STATUS_AWARE).run()

        assert store.find_by_external_id(102) is None
        assert store.find_by_external_id(201) is None
        assert store.find_by_external_id(101) is not None
        assert store.find_by_external_id(500).parent_external_id == 10
        assert report.variations_added == 2
        assert store.find_by_external_id(1) is None  # simple products are not imported

        entry = sync_log.last()
        assert entry.status == "success"
        assert entry.products_added == 4
        assert entry.details.startswith("Variation import (status-aware)")

    def test_rerun_adds_nothing(self, catalog: FakeCatalog, store: InventoryStore, sync_log) -> None:
        """Test a second import finds nothing new."""
        importer(catalog, store, sync_log, ImportMode.STRICT).run()
        report = importer(catalog, store, sync_log, ImportMode.STRICT).run()

        assert report.parents_to_add == 0
        assert report.variations_to_add == 0
        assert report.total_added == 0

    def test_connectivity_failure(self, catalog: FakeCatalog, store, sync_log) -> None:
        """Test nothing is fetched when the catalog is unreachable."""
        catalog.connected = False
        report = importer(catalog, store, sync_log, ImportMode.STRICT).run()

        assert report.errors
        assert catalog.product_calls == []
        assert store.count() == 0
