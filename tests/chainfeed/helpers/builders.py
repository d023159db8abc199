"""Builders for node payloads, raw notifications and items."""

from __future__ import annotations

from typing import Any

from chainfeed.items import Item, ItemType, RawBlock, parse_block
from chainfeed.types import short_hash


def make_hash(n: int) -> str:
    """Deterministic full-length hash for index `n`. Index 0 is the sentinel."""
    return "0x" + f"{n:064x}"


def block_payload(
    block_hash: str,
    zone_parent: str | None,
    number: int | None = None,
    order: int | None = 2,
    prime_parent: str | None = None,
    region_parent: str | None = None,
    uncles: list[dict[str, Any]] | None = None,
    workshares: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a block result as returned by the node."""
    wo_header: dict[str, Any] = {"parentHash": zone_parent}
    if number is not None:
        wo_header["number"] = hex(number)

    payload: dict[str, Any] = {"hash": block_hash, "woHeader": wo_header}
    if order is not None:
        payload["order"] = hex(order)

    header_parents = [p for p in (prime_parent, region_parent) if p is not None]
    if header_parents:
        payload["header"] = {"parentHash": header_parents}
    if uncles is not None:
        payload["uncles"] = uncles
    if workshares is not None:
        payload["workshares"] = workshares
    return payload


def raw_block(
    block_hash: str,
    zone_parent: str | None,
    number: int | None = None,
    order: int | None = 2,
    prime_parent: str | None = None,
    region_parent: str | None = None,
    uncles: list[dict[str, Any]] | None = None,
    workshares: list[dict[str, Any]] | None = None,
) -> RawBlock:
    """Build and parse a block result."""
    return parse_block(
        block_payload(
            block_hash,
            zone_parent,
            number=number,
            order=order,
            prime_parent=prime_parent,
            region_parent=region_parent,
            uncles=uncles,
            workshares=workshares,
        )
    )


def make_item(
    n: int,
    item_type: ItemType = ItemType.ZONE_BLOCK,
    parent: int | None = None,
    number: int | None = None,
    timestamp: float = 1.0,
    included_in: str | None = None,
) -> Item:
    """Build an Item directly, bypassing expansion."""
    full_hash = make_hash(n)
    parent_hash = make_hash(parent) if parent is not None else None
    return Item(
        id=f"{item_type}-{n}-{timestamp}",
        item_type=item_type,
        full_hash=full_hash,
        short_hash=short_hash(full_hash) or "",
        full_parent_hash=parent_hash,
        short_parent_hash=short_hash(parent_hash),
        number=number,
        timestamp=timestamp,
        included_in=included_in,
    )
