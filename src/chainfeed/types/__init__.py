"""Shared base models and primitive helpers."""

from .base import CamelModel, StrictBaseModel
from .hash import (
    SHORT_HASH_LENGTH,
    ZERO_HASH,
    HashHex,
    decode_quantity,
    is_zero_hash,
    short_hash,
)

__all__ = [
    "CamelModel",
    "HashHex",
    "SHORT_HASH_LENGTH",
    "StrictBaseModel",
    "ZERO_HASH",
    "decode_quantity",
    "is_zero_hash",
    "short_hash",
]
