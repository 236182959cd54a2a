"""Tests for the sync log."""

from inventory_sync.core.sync_log import SyncLog
from inventory_sync.models import SyncLogEntry


class TestSyncLog:
    """Tests for SyncLog."""

    def test_empty(self, sync_log: SyncLog) -> None:
        """Test a new log has no entries."""
        assert sync_log.recent() == []
        assert sync_log.last() is None

    def test_record_assigns_id(self, sync_log: SyncLog) -> None:
        """Test recorded entries get an id and timestamp."""
        entry = sync_log.record(3, 1, "success", "Total products: 4, Processed: 4")

        assert entry.id is not None
        assert entry.timestamp
        assert sync_log.last() == entry

    def test_recent_is_newest_first(self, sync_log: SyncLog) -> None:
        """Test entries come back most recent first, limited."""
        for i in range(5):
            sync_log.append(
                SyncLogEntry(
                    timestamp=f"2024-01-0{i + 1}T00:00:00+00:00",
                    products_added=i,
                    products_updated=0,
                    status="success",
                )
            )

        recent = sync_log.recent(limit=3)
        assert [e.products_added for e in recent] == [4, 3, 2]

    def test_error_entries(self, sync_log: SyncLog) -> None:
        """Test error outcomes are stored with their details."""
        sync_log.record(0, 0, "error", "Catalog connection failed")
        last = sync_log.last()
        assert last.status == "error"
        assert last.details == "Catalog connection failed"
