"""The canonical Item record consumed by renderers."""

from __future__ import annotations

from pydantic import Field

from chainfeed.types import StrictBaseModel, is_zero_hash

from .types import ItemType

ItemKey = tuple[str, ItemType]
"""Identity of an item inside the store: (full hash, item type)."""


class Item(StrictBaseModel):
    """
    One displayable representation of a block, uncle or workshare.

    Items are immutable. The single permitted mutation, attaching the
    including block of an uncle or workshare, replaces the stored record with
    a copy that keeps the same id and position.
    """

    id: str
    """Unique id generated at insertion time. Never reused within a session."""

    item_type: ItemType
    """Which representation this record is."""

    full_hash: str
    """Hash of the block, uncle or workshare."""

    short_hash: str
    """Display truncation of `full_hash`."""

    full_parent_hash: str | None = None
    """Causal predecessor at the same hierarchy level, or the producing parent."""

    short_parent_hash: str | None = None
    """Display truncation of `full_parent_hash`."""

    number: int | None = None
    """Block height. None when not yet known; zero is a real height."""

    order: str | None = None
    """Raw consensus order value, kept for diagnostics."""

    timestamp: float = Field(ge=0)
    """Insertion time in seconds. Drives eviction recency, not causality."""

    included_in: str | None = None
    """Hash of the zone block that reported this uncle or workshare."""

    chain_name: str | None = None
    """Logical sub-network that produced the item (multi-network mode)."""

    @property
    def key(self) -> ItemKey:
        """Store identity of this item."""
        return (self.full_hash, self.item_type)

    @property
    def parent_key(self) -> ItemKey | None:
        """Identity the parent must have to be linked, or None for genesis."""
        if is_zero_hash(self.full_parent_hash):
            return None
        assert self.full_parent_hash is not None
        return (self.full_parent_hash, self.item_type)

    @property
    def sort_height(self) -> int:
        """Height used for display ordering. Unknown heights sort as zero."""
        return self.number if self.number is not None else 0
