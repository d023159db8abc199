"""Feed node: wires the services of one topology and runs them."""

from .node import FeedNode, NodeConfig

__all__ = ["FeedNode", "NodeConfig"]
