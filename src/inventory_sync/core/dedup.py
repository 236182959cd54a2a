"""
Variation Deduplication Filter.

The catalog has been observed to return:
- the same variation id twice in one response
- the same variation id again when a parent is fetched a second time
- the same variation id under two different parents
- unpublished or hidden ("ghost") variations

All of that is removed here, once, before anything reaches the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from inventory_sync.models import RemoteProduct, RemoteVariation
from inventory_sync.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class Collision:
    """A variation id reported under more than one parent."""

    variation_id: int
    first_parent_id: int
    second_parent_id: int

    def __str__(self) -> str:
        return (
            f"Variation {self.variation_id} appears under parents "
            f"{self.first_parent_id} and {self.second_parent_id}; "
            f"kept under {self.first_parent_id}"
        )


@dataclass
class DedupStats:
    """Counters for one filter instance."""

    total_seen: int = 0
    unique_kept: int = 0
    duplicates_dropped: int = 0
    ghosts_dropped: int = 0
    collisions: list[Collision] = field(default_factory=list)

    def merge(self, other: "DedupStats") -> None:
        self.total_seen += other.total_seen
        self.unique_kept += other.unique_kept
        self.duplicates_dropped += other.duplicates_dropped
        self.ghosts_dropped += other.ghosts_dropped
        self.collisions.extend(other.collisions)


class VariationFilter:
    """
    Deduplicates and status-filters variations across one sync run.

    Example:
        variation_filter = VariationFilter()
        for parent in variable_products:
            pairs = variation_filter.filter(parent, fetched_variations)
            for parent, variation in pairs:
                ...
        print(variation_filter.stats.duplicates_dropped)
    """

    def __init__(
        self,
        check_status: bool = True,
        global_dedup: bool = True,
        seen: dict[int, int] | None = None,
    ) -> None:
        """
        Initialize the filter.

        Args:
            check_status: Drop variations that are not published and visible
            global_dedup: Track ids across parents for the whole run
            seen: Previously kept variation id -> parent id (to resume a run)
        """
        self.check_status = check_status
        self.global_dedup = global_dedup
        self.seen: dict[int, int] = dict(seen or {})
        self.stats = DedupStats()

    def filter(
        self,
        parent: RemoteProduct,
        variations: list[RemoteVariation],
    ) -> list[tuple[RemoteProduct, RemoteVariation]]:
        """
        Filter one parent's fetched variations.

        Returns:
            (parent, variation) pairs that should reach the store, in
            catalog order
        """
        kept: list[tuple[RemoteProduct, RemoteVariation]] = []
        fetch_seen: set[int] = set()
        stats = DedupStats()

        for variation in variations:
            stats.total_seen += 1

            if variation.id in fetch_seen:
                stats.duplicates_dropped += 1
                logger.debug(f"Duplicate variation {variation.id} in fetch of {parent.id}")
                continue
            fetch_seen.add(variation.id)

            if self.check_status and not variation.is_published:
                stats.ghosts_dropped += 1
                logger.debug(
                    f"Ghost variation {variation.id} of {parent.id} "
                    f"(status={variation.status}, visible={variation.visible})"
                )
                continue

            if self.global_dedup:
                owner = self.seen.get(variation.id)
                if owner is not None:
                    stats.duplicates_dropped += 1
                    if owner != parent.id:
                        collision = Collision(variation.id, owner, parent.id)
                        stats.collisions.append(collision)
                        logger.warning(str(collision))
                    continue
                self.seen[variation.id] = parent.id

            stats.unique_kept += 1
            kept.append((parent, variation))

        self.stats.merge(stats)
        return kept
