"""
Message dispatcher tests.
Malformed frames never reach the store; pongs only touch liveness diagnostics.
"""

import json

import pytest

from sandbox_feed.observability.metrics import get_registry
from sandbox_feed.services.dispatcher import LivenessDiagnostics, MessageDispatcher
from sandbox_feed.services.snapshot_store import SnapshotStore


def price_frame(*entries):
    return json.dumps({"type": "price_update", "data": list(entries)})


@pytest.mark.deterministic
class TestMessageDispatcher:
    """Routing of inbound frames."""

    def setup_method(self):
        self.store = SnapshotStore()
        self.updates = []
        self.errors = []
        self.dispatcher = MessageDispatcher(
            self.store,
            on_prices=self.updates.append,
            on_error=self.errors.append,
        )

    def test_price_updates_applied_in_receive_order(self):
        self.dispatcher.dispatch(price_frame({"symbol": "BTC", "price": 1, "timestamp": 1}))
        self.dispatcher.dispatch(price_frame({"symbol": "BTC", "price": 2, "timestamp": 2},
                                             {"symbol": "ETH", "price": 3, "timestamp": 2}))
        self.dispatcher.dispatch(price_frame({"symbol": "BTC", "price": 4, "timestamp": 3}))

        assert self.store.get("BTC").price == 4
        assert self.store.get("ETH").price == 3
        assert self.updates == [["BTC"], ["BTC", "ETH"], ["BTC"]]
        assert self.dispatcher.price_updates == 3

    def test_malformed_frames_dropped_without_touching_store(self):
        self.dispatcher.dispatch(price_frame({"symbol": "BTC", "price": 100, "timestamp": 1}))
        before = self.store.snapshot()

        for raw in ["{oops", "[]", '{"no": "type"}', '{"type": "price_update", "data": 5}']:
            self.dispatcher.dispatch(raw)

        assert self.store.snapshot() is before
        assert self.dispatcher.frames_dropped == 4
        assert self.dispatcher.frames_received == 5
        assert len(self.errors) == 4
        assert all(e.startswith("malformed frame") for e in self.errors)
        assert get_registry().get_counter("feed_frames_dropped", {"reason": "json"}) == 1

    def test_invalid_entries_skipped_valid_applied(self):
        self.dispatcher.dispatch(price_frame(
            {"symbol": "BTC", "price": 100, "timestamp": 1},
            {"symbol": "ETH", "price": "not-a-number"},
        ))

        assert self.store.get("BTC").price == 100
        assert self.store.get("ETH") is None
        assert self.dispatcher.entries_rejected == 1

    def test_pong_updates_liveness_only(self, deterministic_time):
        clock = deterministic_time
        liveness = LivenessDiagnostics()
        dispatcher = MessageDispatcher(self.store, liveness, clock=clock)

        liveness.ping_sent(clock.time())
        clock.advance(0.05)
        dispatcher.dispatch('{"type": "pong", "timestamp": 1}')

        assert liveness.pongs_received == 1
        assert liveness.outstanding_pings == 0
        assert liveness.last_pong_at == clock.time()
        assert liveness.last_rtt_ms == pytest.approx(50.0)
        assert len(self.store) == 0

    def test_pong_without_ping_has_no_rtt(self):
        self.dispatcher.dispatch('{"type": "pong"}')

        assert self.dispatcher.liveness.pongs_received == 1
        assert self.dispatcher.liveness.last_rtt_ms is None

    def test_unknown_kinds_counted_and_ignored(self):
        self.dispatcher.dispatch('{"type": "news", "headline": "x"}')
        self.dispatcher.dispatch('{"type": "news"}')
        self.dispatcher.dispatch('{"type": "welcome"}')

        assert self.dispatcher.unknown_kinds == {"news": 2, "welcome": 1}
        assert self.dispatcher.frames_dropped == 0
        assert self.errors == []
        assert len(self.store) == 0
        assert get_registry().get_counter("feed_messages", {"type": "unknown"}) == 3

    def test_stats(self):
        self.dispatcher.dispatch(price_frame({"symbol": "BTC", "price": 1}))
        self.dispatcher.dispatch("bad")

        stats = self.dispatcher.stats()
        assert stats["frames_received"] == 2
        assert stats["frames_dropped"] == 1
        assert stats["price_updates"] == 1
