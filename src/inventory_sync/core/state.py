"""
Sync State - checkpointing for resumable runs.

SyncState is an explicit value passed into and returned from each sync
step. A StateRepository persists it per caller session:
- MemoryStateRepository for a single process (web workers, tests)
- JsonFileStateRepository for the CLI, so a run survives restarts

Saves are compare-and-swap on SyncState.version; a lost race raises
StateConflictError instead of double-processing a page.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from inventory_sync.utils.logger import get_logger


logger = get_logger(__name__)


class SyncStatus(str, Enum):
    """Lifecycle of a sync run."""

    IDLE = "idle"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class StateConflictError(Exception):
    """Raised when the stored state changed since it was loaded."""


@dataclass
class SyncState:
    """Checkpoint of one sync run."""

    status: SyncStatus = SyncStatus.IDLE
    page: int = 1
    page_size: int = 20
    full_sync: bool = False
    products_added: int = 0
    products_updated: int = 0
    processed_products: int = 0
    estimated_total: int = 0
    last_page_count: int = 0
    stall_pages: int = 0
    duplicates_dropped: int = 0
    ghosts_dropped: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    seen_variations: dict[int, int] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)
    version: int = 0

    @property
    def in_progress(self) -> bool:
        return self.status == SyncStatus.IN_PROGRESS

    def is_expired(self, max_duration_seconds: float, now: float | None = None) -> bool:
        """True for an in-progress run that has been going on too long."""
        if not self.in_progress:
            return False
        now = time.time() if now is None else now
        return now - self.start_time > max_duration_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["status"] = self.status.value
        # JSON object keys are strings
        data["seen_variations"] = {
            str(k): v for k, v in self.seen_variations.items()
        }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncState":
        """Create from dictionary, filling in defaults for missing keys."""
        defaults = cls()
        return cls(
            status=SyncStatus(data.get("status", SyncStatus.IDLE.value)),
            page=data.get("page", defaults.page),
            page_size=data.get("page_size", defaults.page_size),
            full_sync=data.get("full_sync", defaults.full_sync),
            products_added=data.get("products_added", 0),
            products_updated=data.get("products_updated", 0),
            processed_products=data.get("processed_products", 0),
            estimated_total=data.get("estimated_total", 0),
            last_page_count=data.get("last_page_count", 0),
            stall_pages=data.get("stall_pages", 0),
            duplicates_dropped=data.get("duplicates_dropped", 0),
            ghosts_dropped=data.get("ghosts_dropped", 0),
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
            seen_variations={
                int(k): int(v) for k, v in data.get("seen_variations", {}).items()
            },
            start_time=data.get("start_time", defaults.start_time),
            version=data.get("version", 0),
        )


class StateRepository(Protocol):
    """Key-value persistence for SyncState, keyed by caller session."""

    def load(self, key: str) -> SyncState | None: ...

    def save(self, key: str, state: SyncState) -> SyncState: ...

    def delete(self, key: str) -> None: ...


class MemoryStateRepository:
    """
    In-process state repository.

    Stores serialized copies so callers never share a mutable SyncState.
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> SyncState | None:
        with self._lock:
            data = self._data.get(key)
        return SyncState.from_dict(data) if data is not None else None

    def save(self, key: str, state: SyncState) -> SyncState:
        """
        Persist the state if nobody saved over it since it was loaded.

        Returns:
            The state with its version bumped
        """
        with self._lock:
            stored = self._data.get(key)
            if stored is not None and stored.get("version", 0) != state.version:
                raise StateConflictError(
                    f"State for {key!r} changed (stored version "
                    f"{stored.get('version')}, expected {state.version})"
                )
            state.version += 1
            self._data[key] = state.to_dict()
        return state

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStateRepository:
    """
    State repository backed by a JSON file holding all sessions.

    Example:
        states = JsonFileStateRepository(Path(".inventory-sync-state.json"))
        state = states.load("default")
    """

    def __init__(self, state_file: Path | str) -> None:
        self.state_file = Path(state_file)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self.state_file.exists():
            return {}
        try:
            data = json.loads(self.state_file.read_text())
        except json.JSONDecodeError as e:
            logger.warning(f"Could not load state file {self.state_file}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, dict[str, Any]]) -> None:
        if data:
            self.state_file.write_text(json.dumps(data, indent=2))
        elif self.state_file.exists():
            self.state_file.unlink()

    def load(self, key: str) -> SyncState | None:
        with self._lock:
            data = self._read().get(key)
        return SyncState.from_dict(data) if data is not None else None

    def save(self, key: str, state: SyncState) -> SyncState:
        with self._lock:
            data = self._read()
            stored = data.get(key)
            if stored is not None and stored.get("version", 0) != state.version:
                raise StateConflictError(
                    f"State for {key!r} changed (stored version "
                    f"{stored.get('version')}, expected {state.version})"
                )
            state.version += 1
            data[key] = state.to_dict()
            self._write(data)
        return state

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
