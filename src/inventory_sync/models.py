"""
Data models for Inventory Sync.

Remote catalog entities are Pydantic models with explicit optional fields,
so a payload missing categories, images or attributes still validates.
Local records are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


PUBLISH_STATUS = "publish"


class ProductType(str, Enum):
    """Top-level product types the sync distinguishes."""

    SIMPLE = "simple"
    VARIABLE = "variable"


class Provenance(str, Enum):
    """Provenance tags stored in InventoryItem.notes."""

    STANDALONE = "standalone"
    VARIABLE_PARENT = "variable-parent"
    VARIATION = "variation-of"


def variation_note(parent_id: int) -> str:
    """Provenance note for a variation of the given parent."""
    return f"{Provenance.VARIATION.value}:{parent_id}"


def parse_variation_note(notes: str) -> int | None:
    """Return the parent id encoded in a variation note, or None."""
    prefix = f"{Provenance.VARIATION.value}:"
    if not notes.startswith(prefix):
        return None
    try:
        return int(notes[len(prefix):])
    except ValueError:
        return None


def _coerce_price(value: Any) -> float:
    # The catalog sends prices as strings, and "" for unpriced items
    if value in (None, ""):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class RemoteCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    name: str = ""


class RemoteImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    src: str = ""


class RemoteAttribute(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    option: str | None = None


class RemoteProduct(BaseModel):
    """A top-level product as returned by the catalog."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = Field(min_length=1)
    type: str = ProductType.SIMPLE.value
    sku: str = ""
    price: float = 0.0
    categories: list[RemoteCategory] = Field(default_factory=list)
    images: list[RemoteImage] = Field(default_factory=list)
    status: str = PUBLISH_STATUS

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v: Any) -> float:
        return _coerce_price(v)

    @field_validator("sku", mode="before")
    @classmethod
    def blank_sku(cls, v: Any) -> str:
        return v or ""

    @property
    def is_variable(self) -> bool:
        return self.type == ProductType.VARIABLE.value

    @property
    def category_name(self) -> str:
        """Name of the primary category, or empty string."""
        if self.categories:
            return self.categories[0].name
        return ""

    @property
    def image_url(self) -> str:
        """URL of the featured image, or empty string."""
        if self.images:
            return self.images[0].src
        return ""


class RemoteVariation(BaseModel):
    """One purchasable variant of a variable product."""

    model_config = ConfigDict(extra="ignore")

    id: int
    sku: str = ""
    price: float = 0.0
    attributes: list[RemoteAttribute] = Field(default_factory=list)
    image: RemoteImage | None = None
    status: str = PUBLISH_STATUS
    visible: bool | None = None

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v: Any) -> float:
        return _coerce_price(v)

    @field_validator("sku", mode="before")
    @classmethod
    def blank_sku(cls, v: Any) -> str:
        return v or ""

    @field_validator("image", mode="before")
    @classmethod
    def empty_image(cls, v: Any) -> Any:
        # Variations without an image come back as [] or {}
        if not v:
            return None
        return v

    @property
    def is_published(self) -> bool:
        """True unless the variation is a ghost (unpublished or hidden)."""
        if self.status != PUBLISH_STATUS:
            return False
        return self.visible is not False

    @property
    def options_label(self) -> str:
        """Attribute options joined for display, e.g. "Red, XL"."""
        return ", ".join(a.option for a in self.attributes if a.option)

    def title_for(self, parent: RemoteProduct) -> str:
        label = self.options_label
        if label:
            return f"{parent.name} - {label}"
        return parent.name

    def image_url_for(self, parent: RemoteProduct) -> str:
        if self.image and self.image.src:
            return self.image.src
        return parent.image_url


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class InventoryItem:
    """A row of the local physical inventory."""

    external_id: int
    title: str
    sku: str = ""
    category: str = ""
    price: float = 0.0
    stock: int = 0
    low_stock_threshold: int = 5
    image_url: str = ""
    notes: str = Provenance.STANDALONE.value
    local_id: int | None = None
    is_low_stock: bool = False
    created_at: str = ""
    last_updated: str = ""

    def __post_init__(self) -> None:
        self.is_low_stock = self.stock <= self.low_stock_threshold

    @property
    def parent_external_id(self) -> int | None:
        return parse_variation_note(self.notes)

    def catalog_fields(self) -> dict[str, Any]:
        """Fields owned by the remote catalog (refreshed on full sync)."""
        return {
            "title": self.title,
            "sku": self.sku,
            "category": self.category,
            "price": self.price,
            "image_url": self.image_url,
        }

    @classmethod
    def from_product(
        cls,
        product: RemoteProduct,
        low_stock_threshold: int = 5,
    ) -> "InventoryItem":
        notes = (
            Provenance.VARIABLE_PARENT.value
            if product.is_variable
            else Provenance.STANDALONE.value
        )
        return cls(
            external_id=product.id,
            title=product.name,
            sku=product.sku,
            category=product.category_name,
            price=product.price,
            stock=0,
            low_stock_threshold=low_stock_threshold,
            image_url=product.image_url,
            notes=notes,
        )

    @classmethod
    def from_variation(
        cls,
        parent: RemoteProduct,
        variation: RemoteVariation,
        low_stock_threshold: int = 5,
    ) -> "InventoryItem":
        return cls(
            external_id=variation.id,
            title=variation.title_for(parent),
            sku=variation.sku,
            category=parent.category_name,
            price=variation.price,
            stock=0,
            low_stock_threshold=low_stock_threshold,
            image_url=variation.image_url_for(parent),
            notes=variation_note(parent.id),
        )


@dataclass(frozen=True)
class SyncLogEntry:
    """Outcome of one sync run. Immutable once written."""

    timestamp: str
    products_added: int
    products_updated: int
    status: str  # success or error
    details: str = ""
    id: int | None = None
