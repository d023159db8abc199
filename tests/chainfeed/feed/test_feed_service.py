"""Tests for the feed service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator

import pytest

from chainfeed.feed import FeedService
from chainfeed.items import Item, ItemType, RawWorkshare
from tests.chainfeed.helpers import MockBlockSource, make_hash, raw_block

A, B, C, D = make_hash(0xA), make_hash(0xB), make_hash(0xC), make_hash(0xD)
P = make_hash(0x50)


@pytest.fixture
async def enabled_feed(feed: FeedService) -> AsyncGenerator[FeedService]:
    """Provide an enabled mainnet feed, disabled again on teardown."""
    await feed.set_enabled(True)
    yield feed
    await feed.set_enabled(False)


@pytest.fixture
async def enabled_feed_2x2(feed_2x2: FeedService) -> AsyncGenerator[FeedService]:
    """Provide an enabled 2x2 feed, disabled again on teardown."""
    await feed_2x2.set_enabled(True)
    yield feed_2x2
    await feed_2x2.set_enabled(False)


def hashes(items: tuple[Item, ...]) -> list[str]:
    """Full hashes in display order."""
    return [item.full_hash for item in items]


class TestIngestion:
    """Tests for the poll and push entry points."""

    async def test_ignored_while_disabled(self, feed: FeedService) -> None:
        """Notifications arriving while disabled are dropped."""
        assert await feed.on_poll_result(raw_block(B, A, number=1)) is None
        assert feed.items == ()
        assert feed.tip_height == 0

    async def test_poll_result_carries_side_records(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """The polled block, its uncles and its workshares land in one batch."""
        raw = raw_block(
            B,
            A,
            number=12,
            uncles=[{"hash": C, "parentHash": A, "number": hex(11)}],
            workshares=[{"hash": D, "parentHash": A, "number": hex(11)}],
        )

        outcome = await enabled_feed.on_poll_result(raw)

        assert outcome is not None
        assert {(item.full_hash, item.item_type) for item in outcome.added} == {
            (B, ItemType.ZONE_BLOCK),
            (C, ItemType.UNCLE),
            (D, ItemType.WORKSHARE),
        }
        uncle = next(item for item in enabled_feed.items if item.item_type is ItemType.UNCLE)
        assert uncle.included_in == B
        assert enabled_feed.tip_height == 12
        assert enabled_feed.max_height == 12

    async def test_pushed_workshare_gains_inclusion_later(
        self, enabled_feed: FeedService
    ) -> None:
        """A pushed workshare is linked once a polled block reports it."""
        await enabled_feed.on_push_message(RawWorkshare(hash=D, parent_hash=A))
        first = enabled_feed.items[0]
        assert first.included_in is None

        block = raw_block(B, A, number=5, workshares=[{"hash": D, "parentHash": A}])
        outcome = await enabled_feed.on_poll_result(block)

        assert outcome is not None
        assert [item.full_hash for item in outcome.updated] == [D]
        linked = next(item for item in enabled_feed.items if item.full_hash == D)
        assert linked.included_in == B
        assert linked.id == first.id

    async def test_reingesting_is_quiescent(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """Once resolved, repeating the same notification changes nothing."""
        source.add_block(raw_block(B, A, number=1))
        raw = raw_block(C, B, number=2)

        await enabled_feed.on_poll_result(raw)
        await enabled_feed.resolver.join()
        before = enabled_feed.items
        requests = list(source.request_log)

        outcome = await enabled_feed.on_poll_result(raw)
        await enabled_feed.resolver.join()

        assert outcome is not None
        assert not outcome.changed
        assert enabled_feed.items is before
        assert source.request_log == requests

    async def test_change_listener_sees_each_commit(self, feed: FeedService) -> None:
        """The listener receives the committed collection after changes only."""
        seen: list[tuple[Item, ...]] = []
        feed.on_change = seen.append
        await feed.set_enabled(True)
        try:
            await feed.on_poll_result(raw_block(B, make_hash(0), number=1))
            await feed.on_poll_result(raw_block(B, make_hash(0), number=1))
        finally:
            await feed.set_enabled(False)

        assert [hashes(snapshot) for snapshot in seen] == [[B], []]


class TestBackfill:
    """Tests for gap-driven parent fetching through the feed."""

    async def test_one_hop_backfill(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """C then gap B: B is fetched once, its parent A is ledgered only."""
        source.add_block(raw_block(B, A, number=1))

        await enabled_feed.on_poll_result(raw_block(C, B, number=2))
        await enabled_feed.resolver.join()

        assert hashes(enabled_feed.items) == [B, C]
        assert source.requested == [B]
        assert enabled_feed.store.missing_parents == {A, B}
        assert enabled_feed.resolver.in_flight == frozenset()

    async def test_concurrent_children_share_one_fetch(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """Children of one missing parent arriving together trigger one fetch."""
        source.add_block(raw_block(P, make_hash(0), number=1))
        source.delay = 0.05
        children = [raw_block(make_hash(0x60 + n), P, number=2) for n in range(4)]

        await asyncio.gather(*(enabled_feed.ingest_block(child) for child in children))
        await enabled_feed.resolver.join()

        assert source.requested == [P]
        assert len(enabled_feed.items) == 5

    async def test_failed_backfill_is_not_retried(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """A failed fetch leaves a permanent gap for the session."""
        source.should_fail = True

        await enabled_feed.on_poll_result(raw_block(C, B, number=2))
        await enabled_feed.resolver.join()
        await enabled_feed.on_poll_result(raw_block(D, B, number=2))
        await enabled_feed.resolver.join()

        assert source.requested == [B]
        assert enabled_feed.store.in_ledger(B)

    async def test_gap_filled_directly_later(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """A ledgered parent that later arrives directly is still inserted."""
        source.should_fail = True
        await enabled_feed.on_poll_result(raw_block(C, B, number=2))
        await enabled_feed.resolver.join()

        await enabled_feed.on_poll_result(raw_block(B, A, number=1))

        assert hashes(enabled_feed.items) == [B, C]

    async def test_renderer_request(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """Renderer requests share the ledger with insertion-driven gaps."""
        source.add_block(raw_block(B, A, number=1))

        assert enabled_feed.request_parent(B)
        assert not enabled_feed.request_parent(B)
        await enabled_feed.resolver.join()

        assert hashes(enabled_feed.items) == [B]
        assert not enabled_feed.request_parent(B)
        assert not enabled_feed.request_parent(make_hash(0))
        assert source.requested == [B]

    async def test_renderer_request_refused_while_disabled(self, feed: FeedService) -> None:
        """No fetch is scheduled while the source is disabled."""
        assert not feed.request_parent(B)
        assert feed.resolver.in_flight == frozenset()

    async def test_direct_fetch_inserts_before_returning(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """The awaited path stores the block in the live session."""
        source.add_block(raw_block(B, A, number=1))

        assert await enabled_feed.fetch_and_insert_parent(B)

        assert hashes(enabled_feed.items) == [B]
        assert source.requested == [B]
        assert enabled_feed.store.missing_parents == {A, B}
        assert not await enabled_feed.fetch_and_insert_parent(B)

    async def test_direct_fetch_failure_leaves_gap_ledgered(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """A failed awaited fetch is recorded and not repeated."""
        source.should_fail = True

        assert await enabled_feed.fetch_and_insert_parent(B)

        assert enabled_feed.store.in_ledger(B)
        assert enabled_feed.items == ()
        assert not enabled_feed.request_parent(B)
        assert source.requested == [B]

    async def test_disable_cancels_direct_fetch(
        self, feed: FeedService, source: MockBlockSource
    ) -> None:
        """Disabling while an awaited fetch is pending discards it."""
        source.add_block(raw_block(B, A, number=1))
        source.delay = 0.5
        await feed.set_enabled(True)

        pending = asyncio.create_task(feed.fetch_and_insert_parent(B))
        await asyncio.sleep(0.01)
        await feed.set_enabled(False)
        await pending

        assert feed.items == ()
        assert feed.store.missing_parents == frozenset()
        assert feed.resolver.in_flight == frozenset()

    async def test_gap_logged_with_child(
        self,
        enabled_feed: FeedService,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """The gap log names the representation and the child that found it."""
        with caplog.at_level(logging.DEBUG, logger="chainfeed.feed.service"):
            await enabled_feed.on_poll_result(raw_block(C, B, number=2))
            await enabled_feed.resolver.join()

        assert f"zoneBlock {C[:10]} references missing parent {B[:10]} (hop 1)" in caplog.text

    async def test_every_parent_linked_or_ledgered_at_quiescence(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """Once backfill settles, no stored item points at an unrecorded parent."""
        source.add_block(raw_block(B, A, number=1, prime_parent=P, region_parent=P))
        source.add_block(raw_block(make_hash(0x71), make_hash(0x70), number=5))
        notifications = [
            raw_block(C, B, number=2),
            raw_block(D, C, number=3, order=0),
            raw_block(make_hash(0x72), make_hash(0x71), number=6, order=1),
            raw_block(make_hash(0x80), make_hash(0x7F), number=9),
            raw_block(
                make_hash(0x90),
                make_hash(0x80),
                number=10,
                uncles=[{"hash": make_hash(0x91), "parentHash": make_hash(0x7E)}],
                workshares=[{"hash": make_hash(0x92), "parentHash": make_hash(0x80)}],
            ),
        ]

        for raw in notifications:
            await enabled_feed.on_poll_result(raw)
        await enabled_feed.resolver.join()

        assert enabled_feed.resolver.in_flight == frozenset()
        ledger = enabled_feed.store.missing_parents
        for item in enabled_feed.items:
            if item.parent_key is not None:
                assert item.parent_key in enabled_feed.store or item.parent_key[0] in ledger


class TestSessions:
    """Tests for enable and disable."""

    async def test_disable_clears_everything(
        self, feed: FeedService, source: MockBlockSource
    ) -> None:
        """Disabling mid-fetch leaves an empty store that stays empty."""
        source.add_block(raw_block(B, A, number=1))
        source.delay = 0.2
        await feed.set_enabled(True)
        await feed.on_poll_result(raw_block(C, B, number=2))
        await asyncio.sleep(0.01)
        assert feed.resolver.is_fetching(B)

        await feed.set_enabled(False)
        await asyncio.sleep(0.3)

        assert feed.items == ()
        assert feed.store.missing_parents == frozenset()
        assert feed.resolver.in_flight == frozenset()
        assert feed.max_height == 0
        assert feed.tip_height == 0
        assert not feed.resolver.is_running

    async def test_reenable_starts_fresh_session(
        self, feed: FeedService, source: MockBlockSource
    ) -> None:
        """After a disable the ledger is empty, so gaps are fetched again."""
        await feed.set_enabled(True)
        await feed.on_poll_result(raw_block(C, B, number=2))
        await feed.resolver.join()
        await feed.set_enabled(False)
        first_session = feed.session

        await feed.set_enabled(True)
        try:
            await feed.on_poll_result(raw_block(C, B, number=2))
            await feed.resolver.join()
        finally:
            await feed.set_enabled(False)

        assert feed.session > first_session
        assert source.requested == [B, B]

    async def test_enable_is_idempotent(self, feed: FeedService) -> None:
        """Repeating the current state does not start a session."""
        await feed.set_enabled(False)
        assert feed.session == 0

        await feed.set_enabled(True)
        await feed.set_enabled(True)
        try:
            assert feed.session == 1
        finally:
            await feed.set_enabled(False)


class TestMultiNetwork:
    """Tests for topologies with several chains."""

    async def test_items_tagged_and_expanded_by_role(
        self, enabled_feed_2x2: FeedService
    ) -> None:
        """A region endpoint emits region and zone items tagged with its name."""
        await enabled_feed_2x2.on_poll_result(raw_block(B, A, number=1), "Region-0")

        items = enabled_feed_2x2.items
        assert {item.item_type for item in items} == {
            ItemType.REGION_BLOCK,
            ItemType.ZONE_BLOCK,
        }
        assert {item.chain_name for item in items} == {"Region-0"}

    async def test_backfill_routed_to_producing_chain(
        self, enabled_feed_2x2: FeedService, source: MockBlockSource
    ) -> None:
        """Parent lookups go to the chain whose item revealed the gap."""
        await enabled_feed_2x2.on_poll_result(raw_block(C, B, number=2), "Zone-1-0")
        await enabled_feed_2x2.resolver.join()

        assert source.request_log == [(B, "Zone-1-0")]

    async def test_mainnet_items_untagged(self, enabled_feed: FeedService) -> None:
        """The single-zone view does not stamp chain names."""
        await enabled_feed.on_poll_result(raw_block(B, A, number=1), "Cyprus-1")

        assert [item.chain_name for item in enabled_feed.items] == [None]


class TestRetention:
    """Tests for the runtime cap."""

    async def test_lower_cap_applies_on_next_pass(self, enabled_feed: FeedService) -> None:
        """Changing the cap evicts nothing until the next pass."""
        for n in range(5):
            await enabled_feed.ingest_block(raw_block(make_hash(0x70 + n), make_hash(0), number=n))

        enabled_feed.set_max_items(2)
        assert len(enabled_feed.items) == 5

        assert enabled_feed.evict() == 3
        assert hashes(enabled_feed.items) == [make_hash(0x73), make_hash(0x74)]
        assert enabled_feed.max_height == 4

    def test_invalid_cap_rejected(self, feed: FeedService) -> None:
        """Caps must be positive integers."""
        with pytest.raises(ValueError):
            feed.set_max_items(0)
        assert feed.max_items == 500

    async def test_progress_snapshot(
        self, enabled_feed: FeedService, source: MockBlockSource
    ) -> None:
        """Progress reflects the store, ledger and resolver."""
        source.should_fail = True
        await enabled_feed.on_poll_result(raw_block(C, B, number=7))
        await enabled_feed.resolver.join()

        progress = enabled_feed.get_progress()

        assert progress.enabled
        assert progress.item_count == 1
        assert progress.max_items == 500
        assert progress.max_height == 7
        assert progress.tip_height == 7
        assert progress.missing_parents == 1
        assert progress.in_flight == 0
