"""Item kinds and chain hierarchy roles."""

from __future__ import annotations

from enum import StrEnum


class ItemType(StrEnum):
    """
    Kind of displayable record held in the store.

    One physical block expands into up to three block representations, one
    per hierarchy level. Uncles and workshares are always single records.
    """

    PRIME_BLOCK = "primeBlock"
    """Prime-level representation of a block."""

    REGION_BLOCK = "regionBlock"
    """Region-level representation of a block."""

    ZONE_BLOCK = "zoneBlock"
    """Zone-level representation of a block. Every block has one."""

    UNCLE = "uncle"
    """A block that lost the race but was referenced by a later zone block."""

    WORKSHARE = "workshare"
    """A sub-threshold proof of work reported by the node."""

    @property
    def is_block(self) -> bool:
        """Whether this is one of the three block representations."""
        return self in _BLOCK_TYPES

    @property
    def accepts_inclusion(self) -> bool:
        """Whether records of this kind can later be marked as included."""
        return not self.is_block


_BLOCK_TYPES: frozenset[ItemType] = frozenset(
    {ItemType.PRIME_BLOCK, ItemType.REGION_BLOCK, ItemType.ZONE_BLOCK}
)


class ChainRole(StrEnum):
    """Hierarchy level of the chain an endpoint serves."""

    PRIME = "prime"
    REGION = "region"
    ZONE = "zone"
