"""
HTTP endpoints for the sync engine and the local inventory.

Every caller gets a session cookie on first request; sync runs are keyed
by that session so concurrent users do not share a checkpoint.

Run with:
    uvicorn inventory_sync.api:create_app --factory
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, AsyncIterator

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from inventory_sync import __version__
from inventory_sync.config import Settings, load_settings
from inventory_sync.connectors.catalog import Catalog, create_catalog_client
from inventory_sync.connectors.database import Database
from inventory_sync.connectors.inventory import InventoryStore
from inventory_sync.core.engine import (
    NoSyncInProgressError,
    SyncEngine,
    SyncInProgressError,
)
from inventory_sync.core.state import MemoryStateRepository, StateConflictError
from inventory_sync.core.sync_log import SyncLog
from inventory_sync.utils.logger import get_logger


logger = get_logger(__name__)

SESSION_COOKIE = "inventory_sync_session"

router = APIRouter()


# =============================================================================
# Schemas
# =============================================================================
class SyncRequest(BaseModel):
    full_sync: bool = Field(default=False, description="Refresh catalog fields of existing items")
    continuation_token: str | None = Field(
        default=None, description="Token returned by the previous call"
    )


class SyncResponse(BaseModel):
    status: str
    added_count: int
    updated_count: int
    errors: list[str]
    warnings: list[str]
    is_complete: bool
    continuation_token: str | None
    processed_count: int
    total_count: int
    progress_percent: int


class ProgressResponse(BaseModel):
    in_progress: bool
    percent: int
    processed: int
    total: int
    added: int
    updated: int
    page: int
    last_count: int


class LogEntryResponse(BaseModel):
    id: int | None
    timestamp: str
    products_added: int
    products_updated: int
    status: str
    details: str


class InventoryItemResponse(BaseModel):
    local_id: int | None
    external_id: int
    title: str
    sku: str
    category: str
    price: float
    stock: int
    low_stock_threshold: int
    is_low_stock: bool
    image_url: str
    notes: str
    created_at: str
    last_updated: str


class InventoryStatsResponse(BaseModel):
    total_items: int
    total_value: float
    low_stock_count: int


class StockUpdate(BaseModel):
    stock: int | None = Field(default=None, ge=0)
    low_stock_threshold: int | None = Field(default=None, ge=0)


# =============================================================================
# Dependencies
# =============================================================================
def get_session_key(request: Request, response: Response) -> str:
    """Session key from the cookie, issuing a new one when absent."""
    session = request.cookies.get(SESSION_COOKIE)
    if not session:
        session = uuid.uuid4().hex
        response.set_cookie(SESSION_COOKIE, session, httponly=True, samesite="lax")
    return session


def get_engine(request: Request) -> SyncEngine:
    return request.app.state.engine


def get_store(request: Request) -> InventoryStore:
    return request.app.state.store


def get_sync_log(request: Request) -> SyncLog:
    return request.app.state.sync_log


# =============================================================================
# Sync endpoints
# =============================================================================
@router.post("/sync", response_model=SyncResponse, tags=["sync"])
def run_sync(
    body: SyncRequest | None = None,
    session: str = Depends(get_session_key),
    engine: SyncEngine = Depends(get_engine),
) -> dict[str, Any]:
    """
    Process one catalog page.

    Starts a run when none is in progress, otherwise continues it. Call
    again until is_complete is true.
    """
    body = body or SyncRequest()
    if engine.get_state(session).in_progress:
        result = engine.continue_sync(session, body.continuation_token)
    else:
        result = engine.start(session, full_sync=body.full_sync)
    return result.to_dict()


@router.get("/sync/progress", response_model=ProgressResponse, tags=["sync"])
def sync_progress(
    session: str = Depends(get_session_key),
    engine: SyncEngine = Depends(get_engine),
) -> dict[str, Any]:
    return asdict(engine.progress(session))


@router.post("/sync/reset", tags=["sync"])
def reset_sync(
    session: str = Depends(get_session_key),
    engine: SyncEngine = Depends(get_engine),
) -> dict[str, str]:
    engine.reset(session)
    return {"status": "reset"}


@router.get("/sync/logs", response_model=list[LogEntryResponse], tags=["sync"])
def sync_logs(
    limit: int = Query(10, ge=1, le=100, description="Number of entries to return"),
    sync_log: SyncLog = Depends(get_sync_log),
) -> list[dict[str, Any]]:
    return [asdict(entry) for entry in sync_log.recent(limit)]


# =============================================================================
# Inventory endpoints
# =============================================================================
@router.get("/inventory", response_model=list[InventoryItemResponse], tags=["inventory"])
def list_inventory(
    search: str | None = Query(None, description="Search by title or SKU"),
    limit: int = Query(20, ge=1, le=200, description="Number of items to return"),
    store: InventoryStore = Depends(get_store),
) -> list[dict[str, Any]]:
    items = store.search(search, limit) if search else store.list_items(limit)
    return [asdict(item) for item in items]


@router.get(
    "/inventory/low-stock",
    response_model=list[InventoryItemResponse],
    tags=["inventory"],
)
def low_stock(
    limit: int = Query(20, ge=1, le=200),
    store: InventoryStore = Depends(get_store),
) -> list[dict[str, Any]]:
    return [asdict(item) for item in store.list_low_stock(limit)]


@router.get(
    "/inventory/recent",
    response_model=list[InventoryItemResponse],
    tags=["inventory"],
)
def recently_updated(
    limit: int = Query(20, ge=1, le=100),
    store: InventoryStore = Depends(get_store),
) -> list[dict[str, Any]]:
    return [asdict(item) for item in store.recently_updated(limit)]


@router.get("/inventory/stats", response_model=InventoryStatsResponse, tags=["inventory"])
def inventory_stats(store: InventoryStore = Depends(get_store)) -> dict[str, Any]:
    return {
        "total_items": store.count(),
        "total_value": store.total_value(),
        "low_stock_count": store.low_stock_count(),
    }


@router.get(
    "/inventory/sku/{sku}",
    response_model=InventoryItemResponse,
    tags=["inventory"],
)
def item_by_sku(sku: str, store: InventoryStore = Depends(get_store)) -> dict[str, Any]:
    item = store.find_by_sku(sku)
    if item is None:
        raise HTTPException(status_code=404, detail=f"No item with SKU {sku!r}")
    return asdict(item)


@router.patch(
    "/inventory/{local_id}",
    response_model=InventoryItemResponse,
    tags=["inventory"],
)
def update_item(
    local_id: int,
    body: StockUpdate,
    store: InventoryStore = Depends(get_store),
) -> dict[str, Any]:
    """Edit the physical stock count or low-stock threshold of an item."""
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if not store.update(local_id, **fields):
        raise HTTPException(status_code=404, detail=f"Item {local_id} not found")
    return asdict(store.get(local_id))


# =============================================================================
# Application factory
# =============================================================================
def _conflict(request: Request, exc: Exception) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=409, content={"detail": str(exc)})


def create_app(
    settings: Settings | None = None,
    catalog: Catalog | None = None,
    database: Database | None = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings (default: loaded from env / .env)
        catalog: Catalog to sync from (default: client built from settings)
        database: Inventory database (default: settings.database.path)
    """
    settings = settings or load_settings()
    owned: list[Any] = []

    if database is None:
        database = Database(settings.database.path)
        owned.append(database)
    if catalog is None:
        catalog = create_catalog_client(settings)
        owned.append(catalog)

    store = InventoryStore(database)
    sync_log = SyncLog(database)
    engine = SyncEngine(
        catalog,
        store,
        sync_log,
        states=MemoryStateRepository(),
        options=settings.sync,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        for resource in owned:
            resource.close()

    app = FastAPI(title="Inventory Sync", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.store = store
    app.state.sync_log = sync_log

    app.add_exception_handler(StateConflictError, _conflict)
    app.add_exception_handler(SyncInProgressError, _conflict)
    app.add_exception_handler(NoSyncInProgressError, _conflict)

    app.include_router(router)
    return app
