"""
Feed service: wires the store, the resolver and the event sources.

All notifications enter through `FeedService`, which serializes insertion
and owns the session lifecycle.
"""

from .config import FeedConfig
from .service import ChangeListener, FeedProgress, FeedService

__all__ = [
    "ChangeListener",
    "FeedConfig",
    "FeedProgress",
    "FeedService",
]
