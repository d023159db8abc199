"""
Logical network topologies.

A topology lists the node endpoints one visualization session reads from.
The mainnet view reads a single zone chain. The 2x2 demo reads a full
hierarchy: one prime chain, two regions, two zones per region. Every
endpoint feeds the same reconciliation store, tagged with its chain name.

Topologies can be loaded from YAML::

    POLL_INTERVAL: 2.0
    MAX_ITEMS: 500
    CHAINS:
    - name: Prime
      role: prime
      ws_url: ws://demo.rpc.quai.network:8001
      http_url: http://demo.rpc.quai.network:9001
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, model_validator

from chainfeed.items import ChainRole
from chainfeed.reconcile.config import DEFAULT_MAX_ITEMS
from chainfeed.types import StrictBaseModel


class TopologyError(ValueError):
    """A topology definition is invalid or cannot be read."""


class ChainEndpoint(StrictBaseModel):
    """One node endpoint serving one chain of the hierarchy."""

    name: str = Field(min_length=1)
    """Chain label, stamped on every item this endpoint produces."""

    role: ChainRole
    """Hierarchy level of the chain."""

    ws_url: str
    """WebSocket URL for the workshare subscription."""

    http_url: str
    """HTTP URL for polling and point lookups."""


class NetworkTopology(StrictBaseModel):
    """The set of chains observed by one feed session."""

    name: str = "custom"
    """Topology label for logs."""

    chains: tuple[ChainEndpoint, ...] = Field(alias="CHAINS", min_length=1)
    """Endpoints, the first one being the fallback for unrouted lookups."""

    poll_interval: float = Field(default=1.0, alias="POLL_INTERVAL", gt=0)
    """Seconds between latest-block polls on each chain."""

    max_items: int = Field(default=DEFAULT_MAX_ITEMS, alias="MAX_ITEMS", ge=1)
    """Initial retention cap."""

    tag_chain_names: bool = Field(default=True, alias="TAG_CHAIN_NAMES")
    """Whether items carry chain names and expand by chain role."""

    @model_validator(mode="after")
    def check_unique_names(self) -> NetworkTopology:
        """Chain names are routing keys and must be unique."""
        names = [chain.name for chain in self.chains]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate chain names: {names}")
        return self

    @property
    def default_chain(self) -> ChainEndpoint:
        """Endpoint used when no chain name routes a request."""
        return self.chains[0]

    def chain(self, name: str | None) -> ChainEndpoint | None:
        """Look up an endpoint by chain name."""
        for chain in self.chains:
            if chain.name == name:
                return chain
        return None

    @classmethod
    def from_mapping(cls, data: Any) -> NetworkTopology:
        """
        Build a topology from parsed YAML or JSON data.

        Raises:
            TopologyError: If the data does not describe a valid topology.
        """
        if not isinstance(data, dict):
            raise TopologyError("topology must be a mapping")

        # YAML carries plain strings; convert roles before strict validation.
        chains = data.get("CHAINS", data.get("chains"))
        if isinstance(chains, list):
            converted = []
            for chain in chains:
                if isinstance(chain, dict) and isinstance(chain.get("role"), str):
                    try:
                        chain = {**chain, "role": ChainRole(chain["role"].lower())}
                    except ValueError as exc:
                        raise TopologyError(f"unknown chain role {chain['role']!r}") from exc
                try:
                    converted.append(ChainEndpoint.model_validate(chain))
                except ValidationError as exc:
                    raise TopologyError(f"invalid chain entry: {exc}") from exc
            data = {k: v for k, v in data.items() if k != "chains"}
            data["CHAINS"] = tuple(converted)

        interval = data.get("POLL_INTERVAL")
        if isinstance(interval, int) and not isinstance(interval, bool):
            data = {**data, "POLL_INTERVAL": float(interval)}

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise TopologyError(f"invalid topology: {exc}") from exc

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> NetworkTopology:
        """
        Load a topology from a YAML file.

        Raises:
            TopologyError: If the file cannot be read or is invalid.
        """
        try:
            with Path(path).open() as handle:
                data = yaml.safe_load(handle)
        except (OSError, yaml.YAMLError) as exc:
            raise TopologyError(f"cannot read topology {path}: {exc}") from exc
        return cls.from_mapping(data)


MAINNET = NetworkTopology(
    name="mainnet",
    chains=(
        ChainEndpoint(
            name="Cyprus-1",
            role=ChainRole.ZONE,
            ws_url="wss://debug.rpc.quai.network/cyprus1",
            http_url="https://debug.rpc.quai.network/cyprus1",
        ),
    ),
    poll_interval=1.0,
    tag_chain_names=False,
)
"""Single-zone mainnet view. Expansion follows each block's order."""


def _demo_chain(name: str, role: ChainRole, ws_port: int, http_port: int) -> ChainEndpoint:
    return ChainEndpoint(
        name=name,
        role=role,
        ws_url=f"ws://demo.rpc.quai.network:{ws_port}",
        http_url=f"http://demo.rpc.quai.network:{http_port}",
    )


DEMO_2X2 = NetworkTopology(
    name="2x2",
    chains=(
        _demo_chain("Prime", ChainRole.PRIME, 8001, 9001),
        _demo_chain("Region-0", ChainRole.REGION, 8002, 9002),
        _demo_chain("Region-1", ChainRole.REGION, 8003, 9003),
        _demo_chain("Zone-0-0", ChainRole.ZONE, 8200, 9200),
        _demo_chain("Zone-0-1", ChainRole.ZONE, 8201, 9201),
        _demo_chain("Zone-1-0", ChainRole.ZONE, 8220, 9220),
        _demo_chain("Zone-1-1", ChainRole.ZONE, 8221, 9221),
    ),
    poll_interval=2.0,
)
"""Two regions with two zones each, all fed into one store."""

BUILTIN_TOPOLOGIES: dict[str, NetworkTopology] = {
    MAINNET.name: MAINNET,
    DEMO_2X2.name: DEMO_2X2,
}
"""Topologies selectable by name on the command line."""
