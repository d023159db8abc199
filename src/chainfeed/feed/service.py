"""
Feed service: the single mutation entry point of the reconciliation core.

Three independent sources produce notifications:

1. **Poll**: the latest block of each chain, with its uncles and workshares
2. **Push**: workshares delivered by the subscription socket
3. **Backfill**: parent blocks fetched by the resolver

All of them end in `_submit()`, which holds one lock across the store's
insert and the scheduling of the gaps it reports. Backfills are queued, never
awaited, so an insertion returns as soon as it is committed.

Sessions
--------
Every enable or disable starts a new session. Backfill requests carry the
session that issued them, and a result from an older session is dropped
instead of repopulating a store that was just cleared.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from chainfeed import metrics
from chainfeed.items import (
    ChainRole,
    Item,
    ItemFactory,
    RawBlock,
    RawWorkshare,
    expand_block,
    expand_side_item,
)
from chainfeed.networks import NetworkTopology
from chainfeed.reconcile import (
    BackfillRequest,
    BlockSource,
    InsertOutcome,
    ItemStore,
    ParentResolver,
    RetentionPolicy,
)
from chainfeed.types import decode_quantity, is_zero_hash

from .config import FeedConfig

logger = logging.getLogger(__name__)

ChangeListener = Callable[[tuple[Item, ...]], None]
"""Receives the committed collection after every change."""


@dataclass(slots=True)
class FeedProgress:
    """
    Current feed state.

    Provides a snapshot for renderers, logging and the status endpoint.
    """

    enabled: bool
    """Whether the data source is enabled."""

    session: int
    """Current session number."""

    item_count: int = 0
    """Items held by the store."""

    max_items: int = 0
    """Current retention cap."""

    max_height: int = 0
    """Highest height seen this session."""

    tip_height: int = 0
    """Height of the latest polled block."""

    missing_parents: int = 0
    """Ledger size."""

    in_flight: int = 0
    """Backfills queued or being fetched."""


@dataclass(slots=True)
class FeedService:
    """
    Owns the store and the resolver for one logical network.

    Nothing else mutates them. The connection manager feeds notifications in
    and renderers read snapshots out.
    """

    topology: NetworkTopology
    """Chains feeding this store. Supplies chain roles for expansion."""

    source: BlockSource
    """Point lookups for backfill."""

    config: FeedConfig = field(default_factory=FeedConfig)
    """Core tunables."""

    factory: ItemFactory = field(default_factory=ItemFactory)
    """Stamps ids and insertion times."""

    on_change: ChangeListener | None = field(default=None)
    """Optional callback invoked with each newly committed collection."""

    store: ItemStore = field(init=False)
    """The reconciliation store."""

    resolver: ParentResolver = field(init=False)
    """The missing-parent resolver."""

    _enabled: bool = field(default=False, init=False)
    """Whether notifications are accepted."""

    _session: int = field(default=0, init=False)
    """Incremented on every enable and disable."""

    _tip_height: int = field(default=0, init=False)
    """Height of the latest polled block."""

    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)
    """Serializes insert-and-schedule steps."""

    def __post_init__(self) -> None:
        """Create the store and its resolver."""
        self.store = ItemStore(retention=RetentionPolicy(self.config.max_items))
        self.resolver = ParentResolver(
            store=self.store,
            source=self.source,
            on_fetched=self._on_backfill,
            timeout=self.config.request_timeout,
            max_hops=self.config.max_backfill_hops,
            concurrency=self.config.backfill_concurrency,
            is_current=self._is_current,
            current_session=lambda: self._session,
        )

    @property
    def enabled(self) -> bool:
        """Whether the data source is enabled."""
        return self._enabled

    @property
    def session(self) -> int:
        """Current session number."""
        return self._session

    @property
    def items(self) -> tuple[Item, ...]:
        """Read-only snapshot of the committed collection."""
        return self.store.snapshot()

    @property
    def max_height(self) -> int:
        """Highest height seen this session. Survives eviction."""
        return self.store.max_height

    @property
    def tip_height(self) -> int:
        """Height of the latest polled block."""
        return self._tip_height

    @property
    def max_items(self) -> int:
        """Current retention cap."""
        return self.store.retention.max_items

    def get_progress(self) -> FeedProgress:
        """
        Get current feed progress.

        Returns:
            Snapshot of feed state for monitoring.
        """
        return FeedProgress(
            enabled=self._enabled,
            session=self._session,
            item_count=len(self.store),
            max_items=self.max_items,
            max_height=self.store.max_height,
            tip_height=self._tip_height,
            missing_parents=len(self.store.missing_parents),
            in_flight=len(self.resolver.in_flight),
        )

    async def set_enabled(self, enabled: bool) -> None:
        """
        Enable or disable the feed.

        Disabling is a hard cancellation boundary: backfill workers are
        cancelled and the store, both hash sets and the height counters are
        cleared.
        """
        if enabled == self._enabled:
            return

        self._session += 1
        self._enabled = enabled

        if enabled:
            self.resolver.start()
            logger.info("Feed enabled (session %d)", self._session)
            return

        await self.resolver.stop()
        self.reset()
        logger.info("Feed disabled, session state cleared")

    def reset(self) -> None:
        """Clear all session state."""
        self.store.reset()
        self.resolver.reset()
        self._tip_height = 0

        metrics.items_stored.set(0)
        metrics.max_height.set(0)
        metrics.tip_height.set(0)
        metrics.missing_parents.set(0)

        self._notify()

    async def on_poll_result(
        self,
        raw: RawBlock,
        chain_name: str | None = None,
    ) -> InsertOutcome | None:
        """
        Ingest the latest block of a chain with its uncles and workshares.

        The block and its side records go through the store as one batch.

        Returns:
            The insertion outcome, or None while disabled.
        """
        if not self._enabled:
            logger.debug("Ignoring poll result while disabled")
            return None

        name, role = self._chain_context(chain_name)
        candidates = expand_block(raw, self.factory, known=self.store, chain_name=name, role=role)
        candidates.extend(
            expand_side_item(side, self.factory, chain_name=name)
            for side in (*raw.uncles, *raw.workshares)
        )

        number = decode_quantity(raw.number_hex)
        if number is not None:
            self._tip_height = number
            metrics.tip_height.set(number)

        return await self._submit(candidates, hop=1)

    async def ingest_block(
        self,
        raw: RawBlock,
        chain_name: str | None = None,
    ) -> InsertOutcome | None:
        """
        Ingest a block without its side records.

        Returns:
            The insertion outcome, or None while disabled.
        """
        if not self._enabled:
            return None

        name, role = self._chain_context(chain_name)
        candidates = expand_block(raw, self.factory, known=self.store, chain_name=name, role=role)
        return await self._submit(candidates, hop=1)

    async def on_push_message(
        self,
        raw: RawWorkshare,
        chain_name: str | None = None,
    ) -> InsertOutcome | None:
        """
        Ingest one pushed workshare.

        Returns:
            The insertion outcome, or None while disabled.
        """
        if not self._enabled:
            logger.debug("Ignoring pushed workshare %s while disabled", raw.hash[:10])
            return None

        name, _ = self._chain_context(chain_name)
        item = expand_side_item(raw, self.factory, chain_name=name)
        return await self._submit([item], hop=1)

    def request_parent(self, parent_hash: str, chain_name: str | None = None) -> bool:
        """
        Ask for a block on behalf of a renderer.

        Goes through the same ledger and in-flight guards as gaps found by
        insertion.

        Returns:
            True if a fetch was scheduled.
        """
        if not self._wants_parent(parent_hash):
            return False

        name, _ = self._chain_context(chain_name)
        self.store.mark_missing([parent_hash])
        metrics.missing_parents.set(len(self.store.missing_parents))
        return self.resolver.schedule(
            BackfillRequest(parent_hash=parent_hash, chain_name=name, session=self._session)
        )

    async def fetch_and_insert_parent(
        self,
        parent_hash: str,
        chain_name: str | None = None,
    ) -> bool:
        """
        Fetch a block and insert it before returning.

        Applies the same guards as `request_parent()`, then awaits the lookup
        instead of queueing it. The fetched block's own parents are ledgered,
        not fetched.

        Returns:
            True if a fetch was issued.
        """
        if not self._wants_parent(parent_hash):
            return False

        name, _ = self._chain_context(chain_name)
        await self.resolver.fetch_and_insert_parent(parent_hash, name)
        return True

    def _wants_parent(self, parent_hash: str) -> bool:
        """Whether a renderer request for this hash should reach the node."""
        if not self._enabled or is_zero_hash(parent_hash):
            return False
        if any(item.full_hash == parent_hash for item in self.store):
            return False
        return not (self.store.in_ledger(parent_hash) or self.resolver.is_fetching(parent_hash))

    def evict(self) -> int:
        """
        Run a retention pass outside insertion.

        Returns:
            Number of items evicted.
        """
        evicted = self.store.evict()
        if evicted:
            metrics.items_evicted.inc(evicted)
            metrics.items_stored.set(len(self.store))
            logger.debug("Periodic eviction dropped %d items", evicted)
            self._notify()
        return evicted

    def set_max_items(self, max_items: int) -> None:
        """
        Change the retention cap.

        Takes effect on the next eviction pass.

        Raises:
            ValueError: If the cap is not a positive integer.
        """
        self.store.set_max_items(max_items)
        logger.info("Retention cap set to %d", max_items)

    def _chain_context(self, chain_name: str | None) -> tuple[str | None, ChainRole | None]:
        """Chain name to stamp on items and the role driving expansion."""
        if chain_name is None or not self.topology.tag_chain_names:
            return None, None
        endpoint = self.topology.chain(chain_name)
        return chain_name, endpoint.role if endpoint is not None else None

    def _is_current(self, request: BackfillRequest) -> bool:
        return self._enabled and request.session == self._session

    async def _on_backfill(self, raw: RawBlock, request: BackfillRequest) -> None:
        """Insert a fetched parent. Its own gaps are one hop further out."""
        if not self._is_current(request):
            logger.debug("Discarding stale backfill of %s", request.parent_hash[:10])
            return

        name, role = self._chain_context(request.chain_name)
        candidates = expand_block(raw, self.factory, known=self.store, chain_name=name, role=role)
        if not candidates:
            logger.debug("Backfilled block %s already stored", raw.hash[:10])
            return

        await self._submit(candidates, hop=request.hop + 1)

    async def _submit(self, candidates: Iterable[Item], *, hop: int) -> InsertOutcome:
        """Insert one batch and queue fetches for the gaps it reveals."""
        async with self._lock:
            outcome = self.store.insert(candidates, in_flight=self.resolver.in_flight)
            for gap in outcome.gaps:
                logger.debug(
                    "%s %s references missing parent %s (hop %d)",
                    gap.item_type,
                    gap.child_hash[:10],
                    gap.parent_hash[:10],
                    hop,
                )
                self.resolver.schedule(
                    BackfillRequest(
                        parent_hash=gap.parent_hash,
                        chain_name=gap.chain_name,
                        hop=hop,
                        session=self._session,
                    )
                )

        self._record(outcome)
        if outcome.changed:
            self._notify()
        return outcome

    def _record(self, outcome: InsertOutcome) -> None:
        for item in outcome.added:
            metrics.items_inserted.labels(item_type=item.item_type.value).inc()
        if outcome.duplicates:
            metrics.duplicates.inc(outcome.duplicates)
            logger.debug("Absorbed %d duplicate notifications", outcome.duplicates)
        if outcome.updated:
            metrics.inclusion_updates.inc(len(outcome.updated))
        if outcome.evicted:
            metrics.items_evicted.inc(outcome.evicted)

        metrics.items_stored.set(len(self.store))
        metrics.max_height.set(self.store.max_height)
        metrics.missing_parents.set(len(self.store.missing_parents))

        if outcome.added:
            logger.info(
                "Added %d items (%d stored, max height %d)",
                len(outcome.added),
                len(self.store),
                self.store.max_height,
            )

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self.store.snapshot())
