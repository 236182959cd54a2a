"""Tests for sync state and its repositories."""

import json
from pathlib import Path

import pytest

from inventory_sync.core.state import (
    JsonFileStateRepository,
    MemoryStateRepository,
    StateConflictError,
    SyncState,
    SyncStatus,
)


class TestSyncState:
    """Tests for the SyncState record."""

    def test_defaults(self) -> None:
        """Test a fresh state is idle on page 1."""
        state = SyncState()
        assert state.status == SyncStatus.IDLE
        assert state.page == 1
        assert state.in_progress is False

    def test_dict_round_trip(self) -> None:
        """Test serialization keeps status and variation ownership."""
        state = SyncState(
            status=SyncStatus.IN_PROGRESS,
            page=4,
            products_added=7,
            errors=["bad item"],
            seen_variations={500: 10},
        )
        data = state.to_dict()
        assert data["status"] == "in_progress"
        assert data["seen_variations"] == {"500": 10}

        restored = SyncState.from_dict(json.loads(json.dumps(data)))
        assert restored.status == SyncStatus.IN_PROGRESS
        assert restored.page == 4
        assert restored.products_added == 7
        assert restored.errors == ["bad item"]
        assert restored.seen_variations == {500: 10}

    def test_from_dict_fills_defaults(self) -> None:
        """Test missing keys fall back to defaults."""
        restored = SyncState.from_dict({"status": "in_progress"})
        assert restored.page == 1
        assert restored.warnings == []

    def test_is_expired(self) -> None:
        """Test only in-progress runs expire."""
        state = SyncState(status=SyncStatus.IN_PROGRESS, start_time=0.0)
        assert state.is_expired(3600, now=3601) is True
        assert state.is_expired(3600, now=3599) is False
        assert SyncState(start_time=0.0).is_expired(3600, now=10_000) is False


@pytest.fixture(params=["memory", "json"])
def repository(request: pytest.FixtureRequest, tmp_path: Path):
    if request.param == "memory":
        return MemoryStateRepository()
    return JsonFileStateRepository(tmp_path / "state.json")


class TestStateRepository:
    """Tests shared by both repositories."""

    def test_load_missing(self, repository) -> None:
        """Test an unknown session has no state."""
        assert repository.load("nobody") is None

    def test_save_bumps_version(self, repository) -> None:
        """Test each save increments the version."""
        state = repository.save("alice", SyncState(status=SyncStatus.IN_PROGRESS))
        assert state.version == 1

        loaded = repository.load("alice")
        assert loaded.version == 1
        assert loaded.status == SyncStatus.IN_PROGRESS

        loaded.page = 2
        assert repository.save("alice", loaded).version == 2

    def test_stale_save_conflicts(self, repository) -> None:
        """Test a save based on an outdated load is rejected."""
        repository.save("alice", SyncState(status=SyncStatus.IN_PROGRESS))
        first = repository.load("alice")
        second = repository.load("alice")

        first.page = 2
        repository.save("alice", first)

        second.page = 2
        with pytest.raises(StateConflictError):
            repository.save("alice", second)

    def test_sessions_are_isolated(self, repository) -> None:
        """Test sessions do not share state."""
        repository.save("alice", SyncState(page=3))
        repository.save("bob", SyncState(page=7))

        assert repository.load("alice").page == 3
        assert repository.load("bob").page == 7

        repository.delete("alice")
        assert repository.load("alice") is None
        assert repository.load("bob").page == 7

    def test_delete_missing(self, repository) -> None:
        """Test deleting an unknown session is a no-op."""
        repository.delete("nobody")


class TestJsonFileStateRepository:
    """Tests specific to the file-backed repository."""

    def test_survives_new_instance(self, tmp_path: Path) -> None:
        """Test state written by one instance is read by another."""
        path = tmp_path / "state.json"
        JsonFileStateRepository(path).save("default", SyncState(page=5))

        assert JsonFileStateRepository(path).load("default").page == 5

    def test_file_removed_when_empty(self, tmp_path: Path) -> None:
        """Test the file is deleted with the last session."""
        path = tmp_path / "state.json"
        repo = JsonFileStateRepository(path)
        repo.save("default", SyncState())
        assert path.exists()

        repo.delete("default")
        assert not path.exists()

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Test an unreadable file is treated as empty."""
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert JsonFileStateRepository(path).load("default") is None
