"""
Remote Catalog REST API Client.

Wraps the store's paginated product/variation endpoints:
- Paged product listing and per-product variation listing
- Connectivity pre-flight check
- Rate limiting and transport retry
- Typed fetch results instead of "empty list on error"
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from inventory_sync.config import CatalogOptions, Settings
from inventory_sync.models import PUBLISH_STATUS, RemoteProduct, RemoteVariation
from inventory_sync.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class CatalogError(Exception):
    """Base exception for catalog API errors."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class ConnectivityError(CatalogError):
    """Raised when the pre-flight connectivity check fails."""


class TransportError(CatalogError):
    """A single catalog call failed (network, timeout, HTTP error, bad JSON)."""


class ProductValidationError(CatalogError):
    """A catalog item is missing required fields (id, name)."""


class FetchStatus(str, Enum):
    """Outcome of a catalog fetch."""

    OK = "ok"
    END_OF_DATA = "end_of_data"
    ERROR = "error"


@dataclass
class FetchResult(Generic[T]):
    """
    Tagged result of a catalog fetch.

    A transient failure (ERROR) is distinguishable from legitimate
    pagination exhaustion (END_OF_DATA).
    """

    status: FetchStatus
    items: list[T] = field(default_factory=list)
    error: str | None = None
    invalid: list[str] = field(default_factory=list)

    @classmethod
    def ok(cls, items: list[T], invalid: list[str] | None = None) -> "FetchResult[T]":
        if not items and not invalid:
            return cls.end_of_data()
        return cls(FetchStatus.OK, items=items, invalid=invalid or [])

    @classmethod
    def end_of_data(cls) -> "FetchResult[T]":
        return cls(FetchStatus.END_OF_DATA)

    @classmethod
    def err(cls, reason: str) -> "FetchResult[T]":
        return cls(FetchStatus.ERROR, error=reason)

    @property
    def is_error(self) -> bool:
        return self.status == FetchStatus.ERROR

    @property
    def is_end(self) -> bool:
        return self.status == FetchStatus.END_OF_DATA

    @property
    def raw_count(self) -> int:
        """Number of entries the catalog returned, valid or not."""
        return len(self.items) + len(self.invalid)


class Catalog(Protocol):
    """What the sync engine needs from a catalog."""

    def fetch_products_page(
        self,
        page_size: int,
        page: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteProduct]: ...

    def fetch_variations(
        self,
        product_id: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteVariation]: ...

    def test_connectivity(self) -> tuple[bool, str]: ...


class CatalogClient:
    """
    Store REST API client.

    Example:
        client = CatalogClient(
            store_url="https://shop.example.com",
            consumer_key="ck_...",
            consumer_secret="cs_...",
        )

        ok, message = client.test_connectivity()
        result = client.fetch_products_page(page_size=20, page=1)
        if result.is_error:
            ...
    """

    def __init__(
        self,
        store_url: str,
        consumer_key: str,
        consumer_secret: str,
        api_version: str = "wc/v3",
        options: CatalogOptions | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize catalog client.

        Args:
            store_url: Store base URL (without /wp-json)
            consumer_key: REST API consumer key
            consumer_secret: REST API consumer secret
            api_version: REST namespace, e.g. "wc/v3"
            options: Timeouts, retries and filters (optional, uses defaults)
            transport: Custom httpx transport (used by tests)
        """
        self.store_url = store_url.rstrip("/")
        self.api_version = api_version
        self.options = options or CatalogOptions()
        self._credentials = (consumer_key, consumer_secret)
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def api_url(self) -> str:
        return f"{self.store_url}/wp-json/{self.api_version}"

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            kwargs: dict[str, Any] = {
                "headers": {"Accept": "application/json"},
                "timeout": httpx.Timeout(
                    self.options.timeout_seconds,
                    connect=10.0,
                ),
                "verify": self.options.verify_ssl,
            }
            if not self.options.query_string_auth:
                kwargs["auth"] = httpx.BasicAuth(*self._credentials)
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.Client(**kwargs)
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "CatalogClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _auth_params(self) -> dict[str, str]:
        if self.options.query_string_auth:
            key, secret = self._credentials
            return {"consumer_key": key, "consumer_secret": secret}
        return {}

    def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        GET an endpoint and return the decoded JSON body.

        Retries rate limiting (429) and transport errors. Raises
        TransportError for anything that does not yield a JSON body.
        """
        client = self._get_client()
        url = f"{self.api_url}/{path.lstrip('/')}"
        query = {**(params or {}), **self._auth_params()}
        max_retries = self.options.max_retries
        retry_delay = self.options.retry_delay_seconds

        for attempt in range(max_retries):
            try:
                response = client.get(url, params=query)
            except httpx.TransportError as e:
                if attempt < max_retries - 1:
                    logger.debug(f"Transport error on {path} (attempt {attempt + 1}): {e}")
                    time.sleep(retry_delay * (attempt + 1))
                    continue
                raise TransportError(f"Connection error on {path}: {e}") from e

            if response.status_code == 429:
                if attempt < max_retries - 1:
                    retry_after = response.headers.get("Retry-After", "")
                    delay = float(retry_after) if retry_after.isdigit() else retry_delay * (attempt + 1)
                    time.sleep(delay)
                    continue
                raise TransportError(f"Rate limit exceeded on {path}", status=429)

            if response.status_code >= 400:
                raise TransportError(
                    f"HTTP {response.status_code} on {path}: {response.text[:200]}",
                    status=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise TransportError(
                    f"Invalid JSON response on {path}: {response.text[:200]}",
                    status=response.status_code,
                ) from e

        raise TransportError(f"Max retries exceeded on {path}")

    def _fetch_list(
        self,
        path: str,
        params: dict[str, Any],
        model: type[T],
    ) -> FetchResult[T]:
        try:
            payload = self._request(path, params)
        except TransportError as e:
            logger.error(f"Catalog request failed: {e}")
            return FetchResult.err(str(e))

        if not isinstance(payload, list):
            logger.error(f"Unexpected payload on {path}: expected a list")
            return FetchResult.err(f"Malformed payload on {path}")

        items: list[T] = []
        invalid: list[str] = []
        for raw in payload:
            try:
                items.append(self._parse_item(raw, model))
            except ProductValidationError as e:
                logger.warning(str(e))
                invalid.append(str(e))

        return FetchResult.ok(items, invalid)

    @staticmethod
    def _parse_item(raw: Any, model: type[T]) -> T:
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            ident = raw.get("id", "?") if isinstance(raw, dict) else "?"
            fields = ", ".join(
                ".".join(str(p) for p in err["loc"]) for err in e.errors()
            )
            raise ProductValidationError(
                f"Invalid {model.__name__} data received (id={ident}): {fields}"
            ) from e

    def _status_filter(self, filters: dict[str, Any] | None) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.options.publish_only:
            params["status"] = PUBLISH_STATUS
        params.update(filters or {})
        return params

    def fetch_products_page(
        self,
        page_size: int,
        page: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteProduct]:
        """
        Fetch one page of top-level products.

        Args:
            page_size: per_page value
            page: 1-based page number
            filters: Extra query parameters (override defaults)

        Returns:
            FetchResult with the products on the page
        """
        params = {"per_page": page_size, "page": page, **self._status_filter(filters)}
        return self._fetch_list("products", params, RemoteProduct)

    def fetch_variations(
        self,
        product_id: int,
        filters: dict[str, Any] | None = None,
    ) -> FetchResult[RemoteVariation]:
        """Fetch the variations of a variable product."""
        params = {
            "per_page": self.options.variations_per_page,
            **self._status_filter(filters),
        }
        return self._fetch_list(f"products/{product_id}/variations", params, RemoteVariation)

    def fetch_product(self, product_id: int) -> RemoteProduct | None:
        """Fetch a single product by id, or None on any failure."""
        try:
            return self._parse_item(self._request(f"products/{product_id}"), RemoteProduct)
        except CatalogError as e:
            logger.error(f"Could not fetch product {product_id}: {e}")
            return None

    def fetch_variation(self, product_id: int, variation_id: int) -> RemoteVariation | None:
        """Fetch a single variation by id, or None on any failure."""
        try:
            payload = self._request(f"products/{product_id}/variations/{variation_id}")
            return self._parse_item(payload, RemoteVariation)
        except CatalogError as e:
            logger.error(f"Could not fetch variation {variation_id}: {e}")
            return None

    def test_connectivity(self) -> tuple[bool, str]:
        """
        Check the store is reachable and the credentials are accepted.

        Returns:
            (ok, message)
        """
        client = self._get_client()
        try:
            response = client.get(f"{self.store_url}/wp-json/")
        except httpx.HTTPError as e:
            return False, f"Connection error: {e}"
        if response.status_code >= 400:
            return False, f"HTTP Error {response.status_code}: {response.text[:200]}"

        try:
            self._request("products", {"per_page": 1})
        except TransportError as e:
            return False, f"API authentication failed: {e}"

        return True, "Connection successful"


def create_catalog_client(
    settings: Settings,
    transport: httpx.BaseTransport | None = None,
) -> CatalogClient:
    """Create a CatalogClient from settings."""
    return CatalogClient(
        store_url=settings.store_url,
        consumer_key=settings.consumer_key,
        consumer_secret=settings.consumer_secret.get_secret_value(),
        api_version=settings.api_version,
        options=settings.catalog,
        transport=transport,
    )
