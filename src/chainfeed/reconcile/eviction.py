"""
Retention policy for the item store.

Renderers only need recent history. Eviction keeps the store under a cap by
ranking items by arrival recency (newest first) with height as tie-break and
dropping the tail. This ranking is deliberately different from the display
order, which sorts by ascending height.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from chainfeed.items import Item

from .config import DEFAULT_MAX_ITEMS


def relevance_key(item: Item) -> tuple[float, int]:
    """Sort key for render relevance: recency first, then height."""
    return (item.timestamp, item.sort_height)


def evict(items: Sequence[Item], max_items: int) -> list[Item]:
    """
    Keep the `max_items` most render-relevant items.

    Args:
        items: The current collection in display order.
        max_items: Retention cap.

    Returns:
        The input unchanged (as a list) when within the cap, otherwise the
        kept items in their original relative order.
    """
    if len(items) <= max_items:
        return list(items)

    ranked = sorted(items, key=relevance_key, reverse=True)
    kept_ids = {item.id for item in ranked[:max_items]}

    # Preserve display order of the survivors.
    return [item for item in items if item.id in kept_ids]


@dataclass(slots=True)
class RetentionPolicy:
    """
    Runtime-adjustable retention cap.

    A new cap is picked up by the next eviction pass. Nothing is evicted
    at the moment the cap changes.
    """

    max_items: int = DEFAULT_MAX_ITEMS
    """Maximum number of items kept after an eviction pass."""

    def __post_init__(self) -> None:
        """Validate the initial cap."""
        self.set_max_items(self.max_items)

    def set_max_items(self, max_items: int) -> None:
        """
        Change the cap.

        Raises:
            ValueError: If the cap is not a positive integer.
        """
        if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 1:
            raise ValueError(f"max_items must be a positive integer, got {max_items!r}")
        self.max_items = max_items

    def apply(self, items: Sequence[Item]) -> list[Item]:
        """Evict down to the current cap."""
        return evict(items, self.max_items)
