"""
Item model and expansion.

Turns one raw node notification into canonical Items: a block becomes one to
three hierarchy representations, an uncle or workshare becomes one record.
"""

from .expansion import ItemFactory, block_representations, expand_block, expand_side_item
from .item import Item, ItemKey
from .raw import (
    ParseError,
    RawBlock,
    RawNotification,
    RawSideItem,
    RawUncle,
    RawWorkshare,
    parse_block,
    parse_side_items,
    parse_subscription_message,
)
from .types import ChainRole, ItemType

__all__ = [
    "ChainRole",
    "Item",
    "ItemFactory",
    "ItemKey",
    "ItemType",
    "ParseError",
    "RawBlock",
    "RawNotification",
    "RawSideItem",
    "RawUncle",
    "RawWorkshare",
    "block_representations",
    "expand_block",
    "expand_side_item",
    "parse_block",
    "parse_side_items",
    "parse_subscription_message",
]
