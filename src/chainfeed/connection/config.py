"""
Connection lifecycle configuration.

Poll cadence and reconnect timing for the event sources.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

POLL_INTERVAL: Final[float] = 1.0
"""Seconds between latest-block polls on the mainnet view."""

RECONNECT_DELAY: Final[float] = 5.0
"""Fixed delay before reopening a closed push connection. Not exponential."""


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Runtime timing for the connection manager."""

    poll_interval: float = POLL_INTERVAL
    """Seconds between polls on each chain."""

    reconnect_delay: float = RECONNECT_DELAY
    """Seconds to wait before reconnecting after an unexpected close."""
