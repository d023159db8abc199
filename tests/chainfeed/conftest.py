"""Shared fixtures for feed tests."""

from __future__ import annotations

import pytest

from chainfeed.feed import FeedConfig, FeedService
from chainfeed.items import ItemFactory
from chainfeed.networks import DEMO_2X2, MAINNET
from chainfeed.reconcile import ItemStore, RetentionPolicy
from tests.chainfeed.helpers import ManualClock, MockBlockSource


@pytest.fixture
def clock() -> ManualClock:
    """Provide a clock advancing one millisecond per read."""
    return ManualClock(step=0.001)


@pytest.fixture
def factory(clock: ManualClock) -> ItemFactory:
    """Provide an item factory on the manual clock."""
    return ItemFactory(time_fn=clock)


@pytest.fixture
def store() -> ItemStore:
    """Provide an empty store with the default cap."""
    return ItemStore()


@pytest.fixture
def small_store() -> ItemStore:
    """Provide an empty store capped at three items."""
    return ItemStore(retention=RetentionPolicy(max_items=3))


@pytest.fixture
def source() -> MockBlockSource:
    """Provide a mock block source."""
    return MockBlockSource()


@pytest.fixture
def feed(source: MockBlockSource, factory: ItemFactory) -> FeedService:
    """Provide a disabled mainnet feed backed by the mock source."""
    return FeedService(
        topology=MAINNET,
        source=source,
        config=FeedConfig(request_timeout=1.0),
        factory=factory,
    )


@pytest.fixture
def feed_2x2(source: MockBlockSource, factory: ItemFactory) -> FeedService:
    """Provide a disabled 2x2 feed backed by the mock source."""
    return FeedService(
        topology=DEMO_2X2,
        source=source,
        config=FeedConfig(request_timeout=1.0),
        factory=factory,
    )
