"""
Typed raw notifications and the parse step that produces them.

The node delivers loosely shaped JSON. Everything downstream of this module
works with validated `RawBlock`, `RawUncle` and `RawWorkshare` records, so a
malformed payload is a single well-defined branch: `parse_*` raises
`ParseError` and the caller drops that one notification.

Node Payload Shapes
-------------------
Block (poll response or point lookup)::

    {
        "hash": "0x..",
        "order": "0x2",
        "woHeader": {"parentHash": "0x..", "number": "0x1a"},
        "header": {"parentHash": ["0x<prime>", "0x<region>", ...]},
        "uncles": [{"hash": "0x..", "parentHash": "0x..", "number": "0x19"}],
        "workshares": [...]
    }

Subscription push::

    {
        "method": "quai_subscription",
        "params": {"result": {"type": "workshare", "hash": .., "parentHash": ..,
                              "number": ..}}
    }
"""

from __future__ import annotations

import logging
from typing import Any, Final

from pydantic import Field, ValidationError, field_validator

from chainfeed.types import HashHex, StrictBaseModel

logger = logging.getLogger(__name__)

SUBSCRIPTION_METHOD: Final[str] = "quai_subscription"
"""JSON-RPC method name carried by every subscription push message."""

WORKSHARE_DISCRIMINATOR: Final[str] = "workshare"
"""Value of `type` identifying a pushed workshare."""


class ParseError(ValueError):
    """A node payload is missing required fields or carries invalid values."""


class RawSideItem(StrictBaseModel):
    """Fields shared by uncle and workshare summaries."""

    hash: HashHex
    """Hash of the uncle or workshare."""

    parent_hash: HashHex
    """Chain parent that produced it (not the including block)."""

    number_hex: str | None = Field(default=None, alias="number")
    """Hex height, when the node reports one."""

    including_block_hash: HashHex | None = None
    """Zone block that reported this record, when known."""

    @field_validator("number_hex")
    @classmethod
    def validate_number_hex(cls, value: str | None) -> str | None:
        """Reject heights that are not hexadecimal."""
        if value is not None:
            int(value, 16)
        return value


class RawUncle(RawSideItem):
    """An uncle summary reported inside a block."""


class RawWorkshare(RawSideItem):
    """A workshare summary, reported inside a block or pushed on its own."""


class RawBlock(StrictBaseModel):
    """A block header summary from a poll response or point lookup."""

    hash: HashHex
    """Hash of the block."""

    zone_parent_hash: HashHex | None = None
    """Parent at zone level (`woHeader.parentHash`)."""

    number_hex: str | None = None
    """Hex zone height (`woHeader.number`)."""

    order_hex: str | None = None
    """Hex consensus order: 0 prime, 1 region, 2 or more zone."""

    prime_parent_hash: HashHex | None = None
    """Prime-level parent (`header.parentHash[0]`)."""

    region_parent_hash: HashHex | None = None
    """Region-level parent (`header.parentHash[1]`)."""

    uncles: tuple[RawUncle, ...] = ()
    """Well-formed uncle summaries carried by the block."""

    workshares: tuple[RawWorkshare, ...] = ()
    """Well-formed workshare summaries carried by the block."""

    @field_validator("number_hex", "order_hex")
    @classmethod
    def validate_hex_quantity(cls, value: str | None) -> str | None:
        """Reject height and order values that are not hexadecimal."""
        if value is not None:
            int(value, 16)
        return value

    def parent_hashes(self) -> list[str]:
        """All parent hashes referenced by the header, zone parent first."""
        hashes = [self.zone_parent_hash, self.prime_parent_hash, self.region_parent_hash]
        return [h for h in hashes if h is not None]


RawNotification = RawBlock | RawUncle | RawWorkshare
"""Every typed notification the ingestion path accepts."""


def _side_item(
    cls: type[RawSideItem],
    payload: Any,
    including_block_hash: str | None,
) -> RawSideItem:
    if not isinstance(payload, dict):
        raise ParseError(f"{cls.__name__} payload is not an object")
    if not payload.get("hash") or not payload.get("parentHash"):
        raise ParseError(f"{cls.__name__} payload lacks hash or parentHash")
    try:
        return cls.model_validate(
            {
                "hash": payload["hash"],
                "parent_hash": payload["parentHash"],
                "number": payload.get("number"),
                "including_block_hash": including_block_hash,
            }
        )
    except ValidationError as exc:
        raise ParseError(f"invalid {cls.__name__}: {exc}") from exc


def parse_side_items(
    cls: type[RawSideItem],
    payloads: Any,
    including_block_hash: str | None,
) -> list[RawSideItem]:
    """
    Parse a list of uncle or workshare summaries.

    Each entry is parsed on its own. A malformed entry is logged and dropped
    while its siblings are kept.
    """
    if not payloads:
        return []
    if not isinstance(payloads, list):
        logger.warning("Ignoring non-list %s field", cls.__name__)
        return []

    parsed: list[RawSideItem] = []
    for payload in payloads:
        try:
            parsed.append(_side_item(cls, payload, including_block_hash))
        except ParseError as exc:
            logger.warning("Dropping malformed %s: %s", cls.__name__, exc)
    return parsed


def parse_block(result: Any) -> RawBlock:
    """
    Parse a block result from `quai_getBlockByNumber` or `quai_getBlockByHash`.

    Uncles and workshares are tagged with this block's hash as their
    including block.

    Raises:
        ParseError: If the result lacks `hash` or `woHeader`, or carries
            invalid values.
    """
    if not isinstance(result, dict):
        raise ParseError("block result is not an object")

    block_hash = result.get("hash")
    wo_header = result.get("woHeader")
    if not block_hash or not isinstance(wo_header, dict):
        raise ParseError("block result lacks hash or woHeader")

    # Header parents are positional: prime first, then region.
    header = result.get("header")
    header_parents = header.get("parentHash") if isinstance(header, dict) else None
    if not isinstance(header_parents, list):
        header_parents = []

    try:
        return RawBlock.model_validate(
            {
                "hash": block_hash,
                "zone_parent_hash": wo_header.get("parentHash"),
                "number_hex": wo_header.get("number"),
                "order_hex": result.get("order"),
                "prime_parent_hash": header_parents[0] if len(header_parents) > 0 else None,
                "region_parent_hash": header_parents[1] if len(header_parents) > 1 else None,
                "uncles": tuple(parse_side_items(RawUncle, result.get("uncles"), block_hash)),
                "workshares": tuple(
                    parse_side_items(RawWorkshare, result.get("workshares"), block_hash)
                ),
            }
        )
    except ValidationError as exc:
        raise ParseError(f"invalid block {block_hash}: {exc}") from exc


def parse_subscription_message(message: Any) -> RawWorkshare | None:
    """
    Parse a WebSocket message into a pushed workshare.

    Returns:
        The workshare, or None when the message is not a workshare
        subscription event (acknowledgements, other subscriptions).

    Raises:
        ParseError: If the message is a workshare event with invalid values.
    """
    if not isinstance(message, dict) or message.get("method") != SUBSCRIPTION_METHOD:
        return None

    params = message.get("params")
    result = params.get("result") if isinstance(params, dict) else None
    if not isinstance(result, dict):
        return None

    # A pushed workshare must carry all of its identifying fields.
    if result.get("type") != WORKSHARE_DISCRIMINATOR:
        return None
    if not (result.get("hash") and result.get("parentHash") and result.get("number")):
        return None

    workshare = _side_item(RawWorkshare, result, None)
    assert isinstance(workshare, RawWorkshare)
    return workshare
