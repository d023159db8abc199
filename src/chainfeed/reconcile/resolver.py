"""
Missing-parent resolution (backfill).

When an inserted item links to a parent the store does not hold, the parent
block is fetched by hash and fed back through the normal insertion path.

One Hop Only
------------
Backfill is capped at one missing link per triggering event. Before the
fetched block is inserted, its own parents are written to the ledger without
being fetched. Unbounded ancestor walks under a fast-producing chain would
amplify requests without bound; a visually incomplete ancestry beyond one
link is the accepted cost.

The cap is enforced twice: by the ledger write, and structurally by the hop
counter on each request. A request beyond `max_hops` is never queued.

Two Hash Sets
-------------
- The store's ledger: hashes whose backfill was ever initiated. Permanent
  for the session.
- The resolver's in-flight set: hashes being fetched right now. Cleared in a
  `finally` block whatever the outcome, so a hung or failed fetch never pins
  an entry.

The in-flight set is strictly narrower than the ledger.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from chainfeed import metrics
from chainfeed.items import RawBlock

from .config import MAX_BACKFILL_HOPS, MAX_CONCURRENT_BACKFILLS, REQUEST_TIMEOUT
from .store import ItemStore

logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    """
    Point lookup of blocks by hash.

    Implementers may raise on transport or protocol errors; the resolver
    treats any exception as a failed fetch.
    """

    async def fetch_block_by_hash(
        self,
        block_hash: str,
        chain_name: str | None = None,
    ) -> RawBlock | None:
        """
        Fetch a block header summary by hash.

        Args:
            block_hash: Hash to look up.
            chain_name: Sub-network expected to hold the block, if known.

        Returns:
            The parsed block, or None if the node does not know it.
        """
        ...


@dataclass(frozen=True, slots=True)
class BackfillRequest:
    """A queued parent fetch."""

    parent_hash: str
    """Hash to fetch."""

    chain_name: str | None = None
    """Sub-network to route the lookup to."""

    hop: int = 1
    """Distance from the triggering event. Direct gaps are hop 1."""

    session: int = 0
    """Feed session that issued the request. Stale sessions are discarded."""


BackfillHandler = Callable[[RawBlock, BackfillRequest], Awaitable[None]]
"""Receives a fetched block for insertion."""


def _always_current(_request: BackfillRequest) -> bool:
    return True


def _no_session() -> int:
    return 0


@dataclass(slots=True)
class ParentResolver:
    """
    Fetches missing parents through a bounded work queue.

    `schedule()` is synchronous and never blocks the insertion that found the
    gap. Worker tasks drain the queue, fetch with a timeout, ledger the
    fetched block's own parents, and hand the block to `on_fetched`.
    """

    store: ItemStore
    """Store whose ledger records the fetched block's parents."""

    source: BlockSource
    """Point-lookup interface."""

    on_fetched: BackfillHandler
    """Callback submitting a fetched block to the serialized insert path."""

    timeout: float = REQUEST_TIMEOUT
    """Per-fetch timeout in seconds."""

    max_hops: int = MAX_BACKFILL_HOPS
    """Requests further than this from their trigger are not fetched."""

    concurrency: int = MAX_CONCURRENT_BACKFILLS
    """Number of worker tasks."""

    is_current: Callable[[BackfillRequest], bool] = field(default=_always_current)
    """Whether a request still belongs to the live session."""

    current_session: Callable[[], int] = field(default=_no_session)
    """Session stamped on direct fetches. Supplied by the owning feed."""

    _in_flight: set[str] = field(default_factory=set)
    """Hashes queued or being fetched."""

    _queue: asyncio.Queue[BackfillRequest] = field(default_factory=asyncio.Queue)
    """Pending requests."""

    _workers: list[asyncio.Task[None]] = field(default_factory=list)
    """Running worker tasks."""

    _direct: set[asyncio.Task[None]] = field(default_factory=set)
    """Outstanding direct fetches."""

    @property
    def in_flight(self) -> frozenset[str]:
        """Hashes currently being fetched."""
        return frozenset(self._in_flight)

    def is_fetching(self, parent_hash: str) -> bool:
        """Check if a fetch for this hash is outstanding."""
        return parent_hash in self._in_flight

    @property
    def is_running(self) -> bool:
        """Whether worker tasks are active."""
        return any(not task.done() for task in self._workers)

    def schedule(self, request: BackfillRequest) -> bool:
        """
        Queue a parent fetch.

        Returns:
            True if queued. False when beyond the hop limit or already being
            fetched.
        """
        if request.hop > self.max_hops:
            logger.debug(
                "Not fetching %s: hop %d exceeds limit %d",
                request.parent_hash[:10],
                request.hop,
                self.max_hops,
            )
            return False

        # At most one outstanding fetch per hash.
        if request.parent_hash in self._in_flight:
            return False

        self._in_flight.add(request.parent_hash)
        self._queue.put_nowait(request)
        metrics.backfill_requests.inc()
        metrics.backfills_in_flight.set(len(self._in_flight))
        logger.info("Backfill scheduled for missing parent %s", request.parent_hash[:10])
        return True

    def start(self) -> None:
        """Start worker tasks. Must be called from a running event loop."""
        if self.is_running:
            return
        self._workers = [
            asyncio.create_task(self._worker(), name=f"backfill-worker-{index}")
            for index in range(self.concurrency)
        ]

    async def stop(self) -> None:
        """Cancel worker tasks and direct fetches, and wait for them to exit."""
        tasks = [*self._workers, *self._direct]
        self._workers = []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    async def fetch_and_insert_parent(
        self,
        parent_hash: str,
        chain_name: str | None = None,
    ) -> None:
        """
        Fetch one parent directly, bypassing the queue.

        The hash is ledgered before the lookup, so a failed fetch leaves the
        gap recorded. The request carries the owner's current session, and
        `stop()` cancels it along with the workers.

        A no-op if the same hash is already being fetched.
        """
        if parent_hash in self._in_flight:
            return

        self._in_flight.add(parent_hash)
        self.store.mark_missing([parent_hash])
        metrics.backfill_requests.inc()
        metrics.backfills_in_flight.set(len(self._in_flight))
        metrics.missing_parents.set(len(self.store.missing_parents))

        request = BackfillRequest(
            parent_hash=parent_hash,
            chain_name=chain_name,
            session=self.current_session(),
        )
        task = asyncio.create_task(self._resolve(request), name=f"backfill-{parent_hash[:10]}")
        self._direct.add(task)
        try:
            await task
        except asyncio.CancelledError:
            # Re-raise only if the caller itself is being cancelled.
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug("Direct fetch of %s cancelled", parent_hash[:10])
        finally:
            self._direct.discard(task)
            self._release(parent_hash)

    def reset(self) -> None:
        """Drop queued requests and forget in-flight hashes."""
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
        self._in_flight.clear()
        metrics.backfills_in_flight.set(0)

    async def _worker(self) -> None:
        """Drain the request queue until cancelled."""
        while True:
            request = await self._queue.get()
            try:
                await self._resolve(request)
            except Exception:
                logger.exception("Inserting backfilled block %s failed", request.parent_hash[:10])
            finally:
                # Cleanup runs on success, failure, timeout and cancellation.
                self._release(request.parent_hash)
                self._queue.task_done()

    def _release(self, parent_hash: str) -> None:
        self._in_flight.discard(parent_hash)
        metrics.backfills_in_flight.set(len(self._in_flight))

    async def _resolve(self, request: BackfillRequest) -> None:
        """Fetch one parent and submit it. Failures are logged, never raised."""
        try:
            raw = await asyncio.wait_for(
                self.source.fetch_block_by_hash(request.parent_hash, request.chain_name),
                timeout=self.timeout,
            )
        except TimeoutError:
            metrics.backfill_failures.inc()
            logger.warning(
                "Backfill of %s timed out after %.1fs", request.parent_hash[:10], self.timeout
            )
            return
        except Exception as exc:
            # Network or parse failure. Not retried; the ledger keeps the gap.
            metrics.backfill_failures.inc()
            logger.warning("Failed to fetch parent %s: %s", request.parent_hash[:10], exc)
            return

        if raw is None:
            logger.info("Parent %s unknown to the node", request.parent_hash[:10])
            return

        # Disabled since the request was issued: the ledger was cleared and
        # must not be repopulated.
        if not self.is_current(request):
            logger.debug("Discarding backfill of %s from an old session", request.parent_hash[:10])
            return

        # Cap recursion at one hop: remember the fetched block's own parents
        # without fetching them.
        self.store.mark_missing(raw.parent_hashes())
        metrics.missing_parents.set(len(self.store.missing_parents))

        await self.on_fetched(raw, request)
