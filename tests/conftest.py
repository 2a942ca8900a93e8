"""
Pytest configuration for the price feed.
Provides an in-memory transport, deterministic time and client teardown.
"""

import os
import random
from typing import List, Optional

import pytest

from sandbox_feed.observability.metrics import get_registry
from sandbox_feed.services.backoff import RetryPolicy
from sandbox_feed.services.price_feed_ws import PriceFeedClient

from feed_fakes import FakeConnector

# Set deterministic seed for all tests
RNG_SEED = int(os.getenv("RNG_SEED", "1337"))
random.seed(RNG_SEED)


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
async def make_client(connector):
    """Factory for clients with short delays; every client is stopped on teardown."""
    created: List[PriceFeedClient] = []

    def factory(symbols=("BTC", "ETH"), *, conn: Optional[FakeConnector] = None, **kwargs) -> PriceFeedClient:
        kwargs.setdefault("policy", RetryPolicy(base_delay=0.01, max_delay=0.1, max_attempts=5))
        kwargs.setdefault("heartbeat_interval", 60.0)
        kwargs.setdefault("reconnect_grace", 0.01)
        client = PriceFeedClient("ws://feed.test/ws", symbols, connect=conn or connector, **kwargs)
        created.append(client)
        return client

    yield factory

    for client in created:
        await client.stop()


@pytest.fixture
def deterministic_time():
    """Provide deterministic time for tests."""
    from sandbox_feed.util.async_tools import get_deterministic_clock

    clock = get_deterministic_clock()
    clock.freeze()

    yield clock

    clock.unfreeze()


@pytest.fixture
def seeded_random():
    """Provide seeded random number generator."""
    random.seed(RNG_SEED)
    yield random


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; start every test from zero."""
    get_registry().reset()
    yield
    get_registry().reset()


@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["FEED_WS_URL"] = "ws://feed.test/ws"
    os.environ["FEED_REST_URL"] = ""

    yield

    for key in ["FEED_WS_URL", "FEED_REST_URL"]:
        os.environ.pop(key, None)


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with deterministic settings."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "deterministic: marks tests as deterministic")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        if "deterministic" in item.name:
            item.add_marker(pytest.mark.deterministic)
