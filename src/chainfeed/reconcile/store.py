"""
Reconciliation store: the authoritative, deduplicated item collection.

Why a Store?
------------
Items arrive from three independent sources: the poll loop, the push
subscription and parent backfill. They overlap, repeat, and arrive out of
order. Renderers need one consistent view: no duplicate (hash, type) pairs,
sorted by height, bounded in size.

How It Works
------------
Every mutation goes through `insert()`, which runs as one step:

1. Dedup each candidate against the collection (and the batch itself)
2. Attach late inclusion links to existing uncles and workshares
3. Append new items and re-sort by ascending height (stable)
4. Detect parents missing from the collection and record them in the
   missing-parent ledger, returning them as gaps for the resolver
5. Apply the retention policy

The store builds the new collection on the side and swaps it in at the end.
Readers holding a snapshot never see a partial update.

The Ledger
----------
A hash enters the ledger the moment its gap is detected, before any fetch
begins, and leaves it only on reset. This is fetch-at-most-once per session,
not a cache: a failed backfill leaves a permanent gap unless the same block
later arrives directly.
"""

from __future__ import annotations

import logging
from collections.abc import Container, Iterable, Iterator
from dataclasses import dataclass, field

from chainfeed.items import Item, ItemKey, ItemType
from chainfeed.types import is_zero_hash

from .eviction import RetentionPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParentGap:
    """A parent referenced by a newly inserted item but absent from the store."""

    parent_hash: str
    """Hash to backfill."""

    item_type: ItemType
    """Representation whose link is missing."""

    child_hash: str
    """Item that referenced the parent."""

    chain_name: str | None = None
    """Sub-network that produced the child, used to route the lookup."""


@dataclass(slots=True)
class InsertOutcome:
    """Result of one insertion batch."""

    items: tuple[Item, ...]
    """Committed collection after the batch, in display order."""

    added: list[Item] = field(default_factory=list)
    """Genuinely new items."""

    updated: list[Item] = field(default_factory=list)
    """Existing items that gained an inclusion link."""

    duplicates: int = 0
    """Candidates absorbed as duplicates."""

    gaps: list[ParentGap] = field(default_factory=list)
    """Missing parents newly recorded in the ledger."""

    evicted: int = 0
    """Items dropped by the retention policy after this batch."""

    @property
    def changed(self) -> bool:
        """Whether the batch mutated the store."""
        return bool(self.added or self.updated or self.evicted)


@dataclass(slots=True)
class ItemStore:
    """
    Deduplicated, height-sorted, bounded collection of Items.

    Also owns the missing-parent ledger and the max-height counter.
    """

    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    """Retention cap applied after every batch and on the periodic timer."""

    _items: tuple[Item, ...] = field(default=())
    """Committed collection, ascending by height."""

    _positions: dict[ItemKey, int] = field(default_factory=dict)
    """Key to index in `_items`."""

    _missing_parents: set[str] = field(default_factory=set)
    """Ledger of parent hashes whose backfill was initiated or suppressed."""

    _max_height: int = field(default=0)
    """Highest height ever inserted. Never decreases, even across evictions."""

    def __len__(self) -> int:
        """Return the number of stored items."""
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        """Check if an item with this (hash, type) key is stored."""
        return key in self._positions

    def __iter__(self) -> Iterator[Item]:
        """Iterate over items in display order."""
        return iter(self._items)

    def get(self, key: ItemKey) -> Item | None:
        """
        Get a stored item by key.

        Args:
            key: (full hash, item type).

        Returns:
            The Item if found, None otherwise.
        """
        position = self._positions.get(key)
        return self._items[position] if position is not None else None

    def snapshot(self) -> tuple[Item, ...]:
        """Read-only view of the committed collection."""
        return self._items

    @property
    def max_height(self) -> int:
        """Highest height seen this session."""
        return self._max_height

    @property
    def missing_parents(self) -> frozenset[str]:
        """Hashes recorded in the missing-parent ledger."""
        return frozenset(self._missing_parents)

    def in_ledger(self, parent_hash: str) -> bool:
        """Check if a hash has already been recorded as a missing parent."""
        return parent_hash in self._missing_parents

    def mark_missing(self, hashes: Iterable[str | None]) -> int:
        """
        Record hashes in the ledger without triggering a fetch.

        Used to cap backfill at one hop: a fetched block's own parents are
        recorded so their later discovery does not start another fetch.
        The sentinel hash is never recorded.

        Returns:
            Number of hashes newly recorded.
        """
        added = 0
        for parent_hash in hashes:
            if is_zero_hash(parent_hash) or parent_hash in self._missing_parents:
                continue
            assert parent_hash is not None
            self._missing_parents.add(parent_hash)
            added += 1
        return added

    def insert(
        self,
        candidates: Iterable[Item],
        *,
        in_flight: Container[str] = frozenset(),
    ) -> InsertOutcome:
        """
        Insert a batch of candidate items.

        Args:
            candidates: Items produced by expansion.
            in_flight: Hashes currently being fetched. A gap on one of these
                is not recorded again.

        Returns:
            The committed collection plus what changed.
        """
        items = list(self._items)
        positions = dict(self._positions)
        added_keys: list[ItemKey] = []
        updated_keys: list[ItemKey] = []
        duplicates = 0

        for candidate in candidates:
            position = positions.get(candidate.key)

            # New (hash, type) pair: append.
            if position is None:
                positions[candidate.key] = len(items)
                items.append(candidate)
                added_keys.append(candidate.key)
                continue

            # Known pair: the only permitted change is a first inclusion link.
            existing = items[position]
            if (
                candidate.item_type.accepts_inclusion
                and candidate.included_in is not None
                and existing.included_in is None
            ):
                items[position] = existing.model_copy(
                    update={"included_in": candidate.included_in}
                )
                if candidate.key not in added_keys:
                    updated_keys.append(candidate.key)
                continue

            duplicates += 1

        if not added_keys and not updated_keys:
            return InsertOutcome(items=self._items, duplicates=duplicates)

        # Display order: ascending height, unknown as zero, ties by insertion.
        items.sort(key=lambda item: item.sort_height)
        positions = {item.key: index for index, item in enumerate(items)}

        added = [items[positions[key]] for key in added_keys]
        updated = [items[positions[key]] for key in updated_keys]

        for item in added:
            if item.number is not None and item.number > self._max_height:
                self._max_height = item.number

        gaps = self._detect_gaps(added, positions, in_flight)

        kept = self.retention.apply(items)
        evicted = len(items) - len(kept)

        self._commit(kept)

        if evicted:
            logger.debug(
                "Evicted %d items after insert (cap %d)", evicted, self.retention.max_items
            )

        return InsertOutcome(
            items=self._items,
            added=added,
            updated=updated,
            duplicates=duplicates,
            gaps=gaps,
            evicted=evicted,
        )

    def _detect_gaps(
        self,
        added: list[Item],
        positions: dict[ItemKey, int],
        in_flight: Container[str],
    ) -> list[ParentGap]:
        """Record and return parents of new items that are absent from the batch result."""
        gaps: list[ParentGap] = []

        for item in added:
            parent_key = item.parent_key
            if parent_key is None or parent_key in positions:
                continue

            parent_hash = parent_key[0]
            if parent_hash in self._missing_parents or parent_hash in in_flight:
                continue

            # Record before any fetch starts so a second insertion cannot
            # trigger the same backfill.
            self._missing_parents.add(parent_hash)
            gaps.append(
                ParentGap(
                    parent_hash=parent_hash,
                    item_type=item.item_type,
                    child_hash=item.full_hash,
                    chain_name=item.chain_name,
                )
            )

        return gaps

    def evict(self) -> int:
        """
        Apply the retention policy outside an insertion.

        Run on a timer as a safety net, and to pick up a changed cap.

        Returns:
            Number of items evicted.
        """
        kept = self.retention.apply(self._items)
        evicted = len(self._items) - len(kept)
        if evicted:
            self._commit(kept)
        return evicted

    def set_max_items(self, max_items: int) -> None:
        """Change the retention cap. Takes effect on the next eviction pass."""
        self.retention.set_max_items(max_items)

    def reset(self) -> None:
        """Clear items, the ledger and the height counter."""
        self._commit([])
        self._missing_parents.clear()
        self._max_height = 0

    def _commit(self, items: list[Item]) -> None:
        """Swap in a new collection and rebuild the key index."""
        self._items = tuple(items)
        self._positions = {item.key: index for index, item in enumerate(self._items)}
