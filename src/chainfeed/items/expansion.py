"""
Expansion of raw notifications into canonical Items.

Hierarchy Rule
--------------
A block's consensus order decides how many hierarchy levels it appears at:

::

    order 0 (prime)   -> PrimeBlock + RegionBlock + ZoneBlock
    order 1 (region)  -> RegionBlock + ZoneBlock
    order >= 2 (zone) -> ZoneBlock

All representations share the block hash. Each links to the parent at its
own level, so the three resulting chains can be drawn independently.

In multi-network mode the producing chain's role replaces the order rule:
a prime endpoint emits all three levels, a region endpoint two, a zone
endpoint one. Header parents that the chain does not report fall back to the
zone parent so that every level still gets a link.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Container
from dataclasses import dataclass, field

from chainfeed.types import decode_quantity, short_hash

from .item import Item, ItemKey
from .raw import RawBlock, RawSideItem, RawUncle
from .types import ChainRole, ItemType


@dataclass(slots=True)
class ItemFactory:
    """
    Builds Items with unique ids and non-decreasing timestamps.

    Ids combine the type, short hash, insertion time and a counter. The
    counter keeps ids unique even when one block expands into several
    representations within the same millisecond.
    """

    time_fn: Callable[[], float] = field(default=time.time)
    """Time source (injectable for deterministic testing)."""

    _counter: int = field(default=0, init=False)
    """Disambiguating counter. Never reset, so ids are never reused."""

    _last_timestamp: float = field(default=0.0, init=False)
    """Latest timestamp handed out."""

    def now(self) -> float:
        """Current insertion time, clamped so it never goes backwards."""
        self._last_timestamp = max(float(self.time_fn()), self._last_timestamp)
        return self._last_timestamp

    def create(
        self,
        item_type: ItemType,
        full_hash: str,
        parent_hash: str | None,
        number: int | None,
        order: str | None = None,
        included_in: str | None = None,
        chain_name: str | None = None,
    ) -> Item:
        """Create one Item stamped with the current insertion time."""
        timestamp = self.now()
        display_hash = short_hash(full_hash)
        assert display_hash is not None

        item_id = f"{item_type}-{display_hash}-{int(timestamp * 1000)}-{self._counter}"
        self._counter += 1

        return Item(
            id=item_id,
            item_type=item_type,
            full_hash=full_hash,
            short_hash=display_hash,
            full_parent_hash=parent_hash,
            short_parent_hash=short_hash(parent_hash),
            number=number,
            order=order,
            timestamp=timestamp,
            included_in=included_in,
            chain_name=chain_name,
        )


def block_representations(
    raw: RawBlock,
    role: ChainRole | None = None,
) -> list[tuple[ItemType, str | None]]:
    """
    Decide which representations a block produces and their parents.

    Args:
        raw: The parsed block.
        role: Role of the producing chain, when known.

    Returns:
        (item type, parent hash) pairs, highest level first.
    """
    zone = (ItemType.ZONE_BLOCK, raw.zone_parent_hash)

    if role is not None:
        prime_parent = raw.prime_parent_hash or raw.zone_parent_hash
        region_parent = (
            raw.region_parent_hash or raw.prime_parent_hash or raw.zone_parent_hash
        )
        match role:
            case ChainRole.PRIME:
                return [
                    (ItemType.PRIME_BLOCK, prime_parent),
                    (ItemType.REGION_BLOCK, raw.region_parent_hash or raw.zone_parent_hash),
                    zone,
                ]
            case ChainRole.REGION:
                return [(ItemType.REGION_BLOCK, region_parent), zone]
            case ChainRole.ZONE:
                return [zone]

    order = decode_quantity(raw.order_hex)
    if order == 0:
        return [
            (ItemType.PRIME_BLOCK, raw.prime_parent_hash),
            (ItemType.REGION_BLOCK, raw.region_parent_hash),
            zone,
        ]
    if order == 1:
        return [
            (ItemType.REGION_BLOCK, raw.region_parent_hash or raw.prime_parent_hash),
            zone,
        ]
    return [zone]


def expand_block(
    raw: RawBlock,
    factory: ItemFactory,
    *,
    known: Container[ItemKey] = (),
    chain_name: str | None = None,
    role: ChainRole | None = None,
) -> list[Item]:
    """
    Expand a raw block into its hierarchy representations.

    Representations already present in `known` are skipped, so re-ingesting
    the same block is a no-op. An empty result is not an error.

    Args:
        raw: The parsed block.
        factory: Item factory that stamps ids and timestamps.
        known: Keys already held by the store.
        chain_name: Producing sub-network, if any.
        role: Role of the producing chain, if known.

    Returns:
        The new Items, highest hierarchy level first.
    """
    number = decode_quantity(raw.number_hex)
    items: list[Item] = []

    for item_type, parent in block_representations(raw, role):
        if (raw.hash, item_type) in known:
            continue
        items.append(
            factory.create(
                item_type=item_type,
                full_hash=raw.hash,
                parent_hash=parent,
                number=number,
                order=raw.order_hex,
                chain_name=chain_name,
            )
        )

    return items


def expand_side_item(
    raw: RawSideItem,
    factory: ItemFactory,
    *,
    chain_name: str | None = None,
) -> Item:
    """
    Turn an uncle or workshare summary into its single Item.

    Dedup and the inclusion update are the store's job: the same summary
    seen again is handed to the store, which either absorbs it or attaches
    a newly learned including block.
    """
    item_type = ItemType.UNCLE if isinstance(raw, RawUncle) else ItemType.WORKSHARE
    return factory.create(
        item_type=item_type,
        full_hash=raw.hash,
        parent_hash=raw.parent_hash,
        number=decode_quantity(raw.number_hex),
        included_in=raw.including_block_hash,
        chain_name=chain_name,
    )
