"""
Subscription manager tests.
Declarative subscribe frames, resend on connect, no-op while disconnected.
"""

import pytest

from sandbox_feed.services.subscriptions import SubscriptionManager

from feed_fakes import FakeTransport


@pytest.mark.asyncio
class TestSubscriptionManager:
    """Desired set tracking."""

    async def test_set_while_disconnected_only_records(self):
        manager = SubscriptionManager(["BTC"])

        sent = await manager.set_desired_symbols(["btc", "eth"])

        assert sent is False
        assert manager.desired == frozenset({"BTC", "ETH"})
        assert manager.subscribes_sent == 0

    async def test_on_connected_sends_full_set_once(self):
        manager = SubscriptionManager(["ETH", "BTC"])
        transport = FakeTransport()

        assert await manager.on_connected(transport) is True

        assert transport.frames() == [{"type": "subscribe", "symbols": ["BTC", "ETH"]}]

    async def test_set_while_connected_sends_complete_set(self):
        manager = SubscriptionManager(["BTC", "ETH"])
        transport = FakeTransport()
        await manager.on_connected(transport)

        await manager.set_desired_symbols(["BTC", "ETH", "SOL"])
        await manager.set_desired_symbols(["SOL"])

        assert [f["symbols"] for f in transport.frames("subscribe")] == [
            ["BTC", "ETH"],
            ["BTC", "ETH", "SOL"],
            ["SOL"],
        ]
        assert manager.subscribes_sent == 3

    async def test_resend_on_every_connect(self):
        manager = SubscriptionManager(["BTC"])
        first, second = FakeTransport(), FakeTransport()

        await manager.on_connected(first)
        manager.on_disconnected()
        await manager.set_desired_symbols(["BTC", "ETH"])
        await manager.on_connected(second)

        assert first.frames() == [{"type": "subscribe", "symbols": ["BTC"]}]
        assert second.frames() == [{"type": "subscribe", "symbols": ["BTC", "ETH"]}]

    async def test_send_failure_is_reported_not_raised(self):
        errors = []
        manager = SubscriptionManager(["BTC"], on_error=errors.append)
        transport = FakeTransport()
        transport.closed = True

        assert await manager.on_connected(transport) is False

        assert manager.subscribes_sent == 0
        assert len(errors) == 1
        assert errors[0].startswith("subscribe failed")
