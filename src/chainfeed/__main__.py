"""
Chain feed CLI entry point.

Observe a Quai network and serve the reconciled block, uncle and workshare
feed to renderers.

Usage::

    python -m chainfeed
    python -m chainfeed --network 2x2 --max-items 1000
    python -m chainfeed --topology ./topology.yaml --api-port 9000

Options:
    --network      Built-in topology: mainnet (default) or 2x2
    --topology     Path to a topology YAML file (overrides --network)
    --max-items    Initial retention cap (default: topology value, 500)
    --api-host     Address the API server binds to (default: 0.0.0.0)
    --api-port     Port the API server listens on (default: 8547)
    --no-api       Run without the API server
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from chainfeed.api import ApiServerConfig
from chainfeed.feed import FeedConfig
from chainfeed.networks import BUILTIN_TOPOLOGIES, NetworkTopology, TopologyError
from chainfeed.node import FeedNode, NodeConfig

logger = logging.getLogger(__name__)


class ColoredFormatter(logging.Formatter):
    """Logging formatter with ANSI colors per level."""

    # ANSI color codes
    GREY = "\x1b[38;5;244m"
    BLUE = "\x1b[38;5;39m"
    GREEN = "\x1b[38;5;40m"
    YELLOW = "\x1b[38;5;220m"
    RED = "\x1b[38;5;196m"
    BOLD_RED = "\x1b[38;5;196;1m"
    CYAN = "\x1b[38;5;51m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)

        timestamp = self.formatTime(record, self.datefmt)
        colored_time = f"{self.CYAN}{timestamp}{self.RESET}"
        levelname = f"{color}{record.levelname:8}{self.RESET}"
        name = f"{self.BLUE}{record.name}{self.RESET}"

        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"

        return f"{colored_time} {levelname} {name}: {message}"


def setup_logging(verbose: bool = False, no_color: bool = False) -> None:
    """Configure logging for the feed with optional colors."""
    level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)

    # Use colored formatter unless disabled
    if no_color:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = ColoredFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)


def load_topology(network: str, topology_path: Path | None) -> NetworkTopology:
    """
    Select the topology to observe.

    A topology file takes precedence over the built-in network name.

    Raises:
        TopologyError: If the file is unreadable or invalid.
    """
    if topology_path is not None:
        return NetworkTopology.from_yaml_file(topology_path)
    return BUILTIN_TOPOLOGIES[network]


async def run_feed(
    topology: NetworkTopology,
    max_items: int | None = None,
    api_config: ApiServerConfig | None = None,
) -> None:
    """
    Run the feed node until interrupted.

    Args:
        topology: Chains to observe.
        max_items: Retention cap override. Defaults to the topology's.
        api_config: API server configuration, or None to disable it.
    """
    feed_config = FeedConfig(max_items=max_items if max_items is not None else topology.max_items)
    node = FeedNode.from_config(
        NodeConfig(topology=topology, feed=feed_config, api_config=api_config)
    )

    logger.info(
        "Observing %s: %d chains, poll every %.1fs, retention %d items",
        topology.name,
        len(topology.chains),
        topology.poll_interval,
        feed_config.max_items,
    )
    await node.run()


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Quai block, uncle and workshare feed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--network",
        choices=sorted(BUILTIN_TOPOLOGIES),
        default="mainnet",
        help="Built-in topology to observe (default: mainnet)",
    )
    parser.add_argument(
        "--topology",
        type=Path,
        default=None,
        help="Path to a topology YAML file (overrides --network)",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=None,
        help="Initial retention cap (default: topology value)",
    )
    parser.add_argument(
        "--api-host",
        default="0.0.0.0",
        help="Address the API server binds to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--api-port",
        type=int,
        default=8547,
        help="Port the API server listens on (default: 8547)",
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Run without the API server",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored logging output",
    )

    args = parser.parse_args()

    setup_logging(args.verbose, args.no_color)

    if args.max_items is not None and args.max_items < 1:
        parser.error("--max-items must be a positive integer")

    try:
        topology = load_topology(args.network, args.topology)
    except TopologyError as exc:
        parser.error(str(exc))

    api_config = None if args.no_api else ApiServerConfig(host=args.api_host, port=args.api_port)

    try:
        asyncio.run(run_feed(topology, args.max_items, api_config))
    except KeyboardInterrupt:
        # asyncio.run() handles task cancellation, but we log for clarity.
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
