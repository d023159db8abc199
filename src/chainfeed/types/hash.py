"""Hash and hex-quantity helpers for node payloads."""

from __future__ import annotations

from typing import Final

from pydantic import Field
from typing_extensions import Annotated

HashHex = Annotated[
    str,
    Field(
        pattern=r"^0x[0-9a-fA-F]+$",
        description="A 0x-prefixed hexadecimal hash.",
    ),
]
"""A hash as delivered by the node: fixed-length, 0x-prefixed hex."""

ZERO_HASH: Final[str] = "0x" + "0" * 64
"""The all-zero sentinel hash denoting "no parent" (genesis)."""

SHORT_HASH_LENGTH: Final[int] = 8
"""Number of leading characters kept for display."""


def is_zero_hash(value: str | None) -> bool:
    """
    Check whether a hash is absent or the all-zero sentinel.

    Any 0x-prefixed run of zeros counts, so the short form "0x0" is the
    sentinel too. Neither case may ever trigger a backfill.
    """
    if value is None:
        return True
    if value[:2] not in ("0x", "0X"):
        return False
    digits = value[2:]
    return bool(digits) and not digits.strip("0")


def short_hash(value: str | None) -> str | None:
    """Truncate a hash for display. Not an identity."""
    if value is None:
        return None
    return value[:SHORT_HASH_LENGTH]


def decode_quantity(value: str | None) -> int | None:
    """
    Decode a hexadecimal numeric string.

    A missing value decodes to None, never to zero: zero is a legitimate
    genesis height and must stay distinguishable from "unknown".

    Args:
        value: Hex string such as "0x1a" (the prefix is optional).

    Returns:
        The decoded integer, or None when the value is absent or empty.

    Raises:
        ValueError: If the value is present but not hexadecimal.
    """
    if value is None or value == "":
        return None
    return int(value, 16)
