"""
Sync Engine - resumable catalog to inventory import.

Coordinates all components to mirror the remote catalog locally:
- Catalog client for paged product and variation fetches
- Variation filter for duplicates and ghosts
- Inventory store for idempotent upserts
- State repository for checkpoints between calls
- Sync log for run outcomes

Each call processes exactly one catalog page and returns; the caller
drives the run by calling again until the result reports completion.
"""

from __future__ import annotations

import base64
import binascii
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from inventory_sync.config import SyncOptions
from inventory_sync.connectors.catalog import (
    Catalog,
    ConnectivityError,
    FetchResult,
)
from inventory_sync.connectors.inventory import (
    CATALOG_FIELDS,
    InventoryStore,
    PersistenceError,
    UpsertOutcome,
)
from inventory_sync.core.dedup import VariationFilter
from inventory_sync.core.state import (
    MemoryStateRepository,
    StateRepository,
    SyncState,
    SyncStatus,
)
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.models import InventoryItem, RemoteProduct, RemoteVariation
from inventory_sync.utils.logger import get_logger, run_context


logger = get_logger(__name__)

DEFAULT_SESSION = "default"


class SyncError(Exception):
    """Base exception for sync run errors."""


class SyncInProgressError(SyncError):
    """Raised when starting a run while another one is in progress."""


class NoSyncInProgressError(SyncError):
    """Raised when continuing a run that does not exist."""


@dataclass
class StallPolicy:
    """
    Ends a run whose pages keep coming back full but change nothing.

    Guards against a catalog that never returns a short last page because
    of concurrent writes upstream. Full pages grow the estimate to 1.2x
    the processed count, so threshold_fraction must be below ~0.83 for
    the policy to fire on anything but a tiny catalog.
    """

    max_stall_pages: int = 10
    threshold_fraction: float = 0.9

    def should_stop(self, state: SyncState) -> bool:
        return (
            state.stall_pages > self.max_stall_pages
            and state.processed_products > self.threshold_fraction * state.estimated_total
        )


@dataclass
class SyncResult:
    """Outcome of one sync call."""

    status: str = "success"  # success or error
    products_added: int = 0
    products_updated: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_complete: bool = False
    continuation_token: str | None = None
    processed_products: int = 0
    total_products: int = 0
    progress_percent: int = 0
    page: int = 1
    start_time: float = 0.0
    end_time: float | None = None

    @property
    def duration_seconds(self) -> float:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "added_count": self.products_added,
            "updated_count": self.products_updated,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "is_complete": self.is_complete,
            "continuation_token": self.continuation_token,
            "processed_count": self.processed_products,
            "total_count": self.total_products,
            "progress_percent": self.progress_percent,
        }


@dataclass
class SyncProgress:
    """Snapshot of the current run for progress polling."""

    in_progress: bool = False
    percent: int = 0
    processed: int = 0
    total: int = 0
    added: int = 0
    updated: int = 0
    page: int = 1
    last_count: int = 0


def encode_continuation_token(page: int) -> str:
    payload = json.dumps({"page": page}).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii")


def decode_continuation_token(token: str) -> int | None:
    """Page number carried by a token, or None if the token is malformed."""
    try:
        data = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
        return int(data["page"])
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError):
        return None


def percent_of(processed: int, estimated_total: int) -> int:
    """Progress of an unfinished run, capped at 99."""
    if estimated_total <= 0:
        return 0
    return min(99, round(processed / estimated_total * 100))


# Clock used for start times and timeouts
Clock = Callable[[], float]


class SyncEngine:
    """
    Resumable, idempotent catalog sync.

    Example:
        engine = SyncEngine(catalog, store, sync_log, MemoryStateRepository())

        result = engine.start(session="alice", full_sync=False)
        while not result.is_complete and result.status == "success":
            result = engine.continue_sync(session="alice")

        print(engine.progress("alice"))
    """

    def __init__(
        self,
        catalog: Catalog,
        store: InventoryStore,
        sync_log: SyncLog,
        states: StateRepository | None = None,
        options: SyncOptions | None = None,
        clock: Clock = time.time,
    ) -> None:
        """
        Initialize sync engine.

        Args:
            catalog: Remote catalog
            store: Local inventory store
            sync_log: Log receiving one entry per finished run
            states: Per-session checkpoint storage (default: in memory)
            options: Sync options (page size, timeouts, stall policy)
            clock: Time source, in seconds
        """
        self.catalog = catalog
        self.store = store
        self.sync_log = sync_log
        self.states = states if states is not None else MemoryStateRepository()
        self.options = options or SyncOptions()
        self.stall_policy = StallPolicy(
            max_stall_pages=self.options.max_stall_pages,
            threshold_fraction=self.options.stall_threshold_fraction,
        )
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _session_lock(self, session: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(session, threading.Lock())

    # =========================================================================
    # State access
    # =========================================================================

    def _idle_state(self) -> SyncState:
        return SyncState(
            page_size=self.options.page_size,
            estimated_total=self.options.initial_estimate,
            start_time=self._clock(),
        )

    def get_state(self, session: str = DEFAULT_SESSION) -> SyncState:
        """
        Current state of a session's run.

        An in-progress run older than max_duration_minutes is discarded
        and the idle default is returned.
        """
        state = self.states.load(session)
        if state is None:
            return self._idle_state()

        max_seconds = self.options.max_duration_minutes * 60
        if state.is_expired(max_seconds, now=self._clock()):
            logger.warning(
                f"Discarding sync for session {session!r}: running for more "
                f"than {self.options.max_duration_minutes} minutes"
            )
            self.states.delete(session)
            return self._idle_state()

        return state

    def reset(self, session: str = DEFAULT_SESSION) -> None:
        """Cancel any run for the session. Takes effect between calls."""
        self.states.delete(session)
        logger.info(f"Sync state reset for session {session!r}")

    def progress(self, session: str = DEFAULT_SESSION) -> SyncProgress:
        """Progress snapshot; a pure read apart from timeout recovery."""
        state = self.get_state(session)
        if not state.in_progress:
            return SyncProgress()

        return SyncProgress(
            in_progress=True,
            percent=percent_of(state.processed_products, state.estimated_total),
            processed=state.processed_products,
            total=state.estimated_total,
            added=state.products_added,
            updated=state.products_updated,
            page=state.page,
            last_count=state.last_page_count,
        )

    # =========================================================================
    # Run control
    # =========================================================================

    def sync(self, session: str = DEFAULT_SESSION, full_sync: bool = False) -> SyncResult:
        """Start a run, or continue the session's run if one is in progress."""
        if self.get_state(session).in_progress:
            return self.continue_sync(session)
        return self.start(session, full_sync=full_sync)

    def start(self, session: str = DEFAULT_SESSION, full_sync: bool = False) -> SyncResult:
        """
        Start a new run and process its first page.

        Raises:
            SyncInProgressError: if the session already has a run going
        """
        with self._session_lock(session):
            if self.get_state(session).in_progress:
                raise SyncInProgressError(f"A sync is already in progress for {session!r}")

            ok, message = self.catalog.test_connectivity()
            if not ok:
                error = ConnectivityError(f"Catalog connection failed: {message}")
                logger.error(str(error))
                self.sync_log.record(0, 0, "error", str(error))
                now = self._clock()
                return SyncResult(
                    status="error",
                    errors=[str(error)],
                    is_complete=True,
                    start_time=now,
                    end_time=now,
                )

            state = SyncState(
                status=SyncStatus.IN_PROGRESS,
                page=1,
                page_size=self.options.page_size,
                full_sync=full_sync,
                estimated_total=self.options.initial_estimate,
                start_time=self._clock(),
            )
            self.states.delete(session)
            logger.info(
                f"Starting {'full' if full_sync else 'regular'} sync for session "
                f"{session!r} ({state.page_size} products per page)",
                extra=run_context(state, session),
            )
            return self._run_step(session, state)

    def continue_sync(
        self,
        session: str = DEFAULT_SESSION,
        continuation_token: str | None = None,
    ) -> SyncResult:
        """
        Process the next page of the session's run.

        Raises:
            NoSyncInProgressError: if the session has no run in progress
        """
        with self._session_lock(session):
            state = self.get_state(session)
            if not state.in_progress:
                raise NoSyncInProgressError(f"No sync in progress for {session!r}")

            if continuation_token is not None:
                token_page = decode_continuation_token(continuation_token)
                if token_page != state.page:
                    logger.warning(
                        f"Stale continuation token (page {token_page}); "
                        f"resuming at page {state.page}",
                        extra=run_context(state, session),
                    )

            return self._run_step(session, state)

    def _run_step(self, session: str, state: SyncState) -> SyncResult:
        try:
            state, complete = self.step(state)
        except Exception as e:
            logger.exception(
                f"Sync aborted on page {state.page}", extra=run_context(state, session)
            )
            return self._abort(session, state, str(e))

        if complete:
            return self._complete(session, state)

        self.states.save(session, state)
        result = self._result_from(state)
        result.continuation_token = encode_continuation_token(state.page)
        result.progress_percent = percent_of(state.processed_products, state.estimated_total)
        return result

    def _result_from(self, state: SyncState) -> SyncResult:
        return SyncResult(
            products_added=state.products_added,
            products_updated=state.products_updated,
            errors=list(state.errors),
            warnings=list(state.warnings),
            processed_products=state.processed_products,
            total_products=state.estimated_total,
            page=state.page,
            start_time=state.start_time,
        )

    def _complete(self, session: str, state: SyncState) -> SyncResult:
        details = (
            f"Total products: {state.estimated_total}, "
            f"Processed: {state.processed_products}"
        )
        if state.duplicates_dropped or state.ghosts_dropped:
            details += (
                f", Duplicate variations dropped: {state.duplicates_dropped}, "
                f"Ghost variations dropped: {state.ghosts_dropped}"
            )
        if state.errors:
            details += f", Errors: {len(state.errors)} (last: {state.errors[-1]})"

        self.sync_log.record(
            state.products_added, state.products_updated, "success", details
        )
        self.states.delete(session)

        result = self._result_from(state)
        result.is_complete = True
        result.progress_percent = 100
        result.end_time = self._clock()
        logger.info(
            f"Sync complete: {state.products_added} added, "
            f"{state.products_updated} updated in {result.duration_seconds:.1f}s",
            extra=run_context(state, session),
        )
        return result

    def _abort(self, session: str, state: SyncState, message: str) -> SyncResult:
        self.sync_log.record(
            state.products_added, state.products_updated, "error", message
        )
        self.states.delete(session)

        result = self._result_from(state)
        result.status = "error"
        result.errors.append(message)
        result.is_complete = True
        result.end_time = self._clock()
        return result

    # =========================================================================
    # Page processing
    # =========================================================================

    def step(self, state: SyncState) -> tuple[SyncState, bool]:
        """
        Process the state's current page.

        Mutates and returns the state, plus whether the run is complete.
        Does not persist anything besides inventory rows.

        Raises:
            SyncError: if the first page cannot be fetched
        """
        page = self._fetch_with_retries(
            lambda: self.catalog.fetch_products_page(state.page_size, state.page)
        )

        if page.is_error:
            if state.page == 1:
                raise SyncError(f"Failed to retrieve products from catalog: {page.error}")
            # Later pages: stop with what has been imported so far
            state.errors.append(
                f"Page {state.page} could not be fetched, stopping: {page.error}"
            )
            state.estimated_total = state.processed_products
            return state, True

        count = page.raw_count
        if count == state.page_size:
            state.estimated_total = max(
                state.estimated_total, int(state.page * state.page_size * 1.2)
            )
        else:
            state.estimated_total = (state.page - 1) * state.page_size + count
        state.last_page_count = count
        state.errors.extend(page.invalid)

        logger.info(
            f"Processing page {state.page} with {count} products",
            extra=run_context(state),
        )

        changes_before = state.products_added + state.products_updated
        variation_filter = VariationFilter(seen=state.seen_variations)

        for product in page.items:
            if product.is_variable:
                self._sync_variable_product(state, product, variation_filter)
            else:
                self._sync_item(state, InventoryItem.from_product(
                    product, self.options.default_low_stock_threshold
                ))

        state.processed_products += count
        state.seen_variations = variation_filter.seen
        state.duplicates_dropped += variation_filter.stats.duplicates_dropped
        state.ghosts_dropped += variation_filter.stats.ghosts_dropped
        state.warnings.extend(str(c) for c in variation_filter.stats.collisions)

        if state.products_added + state.products_updated > changes_before:
            state.stall_pages = 0
        else:
            state.stall_pages += 1

        if count < state.page_size:
            return state, True
        if self.stall_policy.should_stop(state):
            logger.info(
                f"No changes for {state.stall_pages} pages after processing "
                f"{state.processed_products} of ~{state.estimated_total}; stopping",
                extra=run_context(state),
            )
            return state, True

        state.page += 1
        return state, False

    def _fetch_with_retries(
        self,
        fetch: Callable[[], FetchResult[Any]],
    ) -> FetchResult[Any]:
        result = fetch()
        attempts = 0
        while result.is_error and attempts < self.options.page_retries:
            attempts += 1
            logger.warning(f"Fetch failed ({result.error}); retry {attempts}")
            result = fetch()
        return result

    def _sync_item(self, state: SyncState, item: InventoryItem) -> None:
        update_fields = CATALOG_FIELDS if state.full_sync else None
        try:
            outcome = self.store.upsert(item, update_fields=update_fields)
        except PersistenceError as e:
            logger.error(str(e))
            state.errors.append(str(e))
            return

        if outcome == UpsertOutcome.ADDED:
            state.products_added += 1
        elif outcome == UpsertOutcome.UPDATED:
            state.products_updated += 1

    def _sync_variable_product(
        self,
        state: SyncState,
        product: RemoteProduct,
        variation_filter: VariationFilter,
    ) -> None:
        threshold = self.options.default_low_stock_threshold
        self._sync_item(state, InventoryItem.from_product(product, threshold))

        fetched: FetchResult[RemoteVariation] = self._fetch_with_retries(
            lambda: self.catalog.fetch_variations(product.id)
        )
        if fetched.is_error:
            state.errors.append(
                f"Variations of product {product.id} could not be fetched: {fetched.error}"
            )
            return
        state.errors.extend(fetched.invalid)

        for parent, variation in variation_filter.filter(product, fetched.items):
            self._sync_item(state, InventoryItem.from_variation(parent, variation, threshold))
