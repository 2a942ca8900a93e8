"""
Observability metrics for the price feed.
Counts connection transitions, inbound message kinds and dropped frames.
"""

from fastapi import APIRouter, Response
from typing import Dict, List
import json


# Simple metrics tracking without Prometheus dependency
class SimpleMetrics:
    """Simple metrics tracking for observability."""

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self.histograms: Dict[str, List[float]] = {}

    @staticmethod
    def _key(name: str, labels: Dict[str, str] = None) -> str:
        return f"{name}_{json.dumps(labels or {}, sort_keys=True)}"

    def inc_counter(self, name: str, labels: Dict[str, str] = None):
        """Increment a counter."""
        key = self._key(name, labels)
        self.counters[key] = self.counters.get(key, 0) + 1

    def set_gauge(self, name: str, value: float, labels: Dict[str, str] = None):
        """Set a gauge value."""
        self.gauges[self._key(name, labels)] = value

    def observe_histogram(self, name: str, value: float, labels: Dict[str, str] = None):
        """Observe a histogram value."""
        key = self._key(name, labels)
        if key not in self.histograms:
            self.histograms[key] = []
        self.histograms[key].append(value)
        # Keep only last 1000 samples
        if len(self.histograms[key]) > 1000:
            self.histograms[key] = self.histograms[key][-1000:]

    def get_counter(self, name: str, labels: Dict[str, str] = None) -> int:
        return self.counters.get(self._key(name, labels), 0)

    def get_metrics(self) -> str:
        """Get metrics in text format."""
        lines = []
        for key, value in self.counters.items():
            lines.append(f"# TYPE {key.split('_')[0]} counter")
            lines.append(f"{key} {value}")
        for key, value in self.gauges.items():
            lines.append(f"# TYPE {key.split('_')[0]} gauge")
            lines.append(f"{key} {value}")
        for key, values in self.histograms.items():
            if values:
                lines.append(f"# TYPE {key.split('_')[0]} histogram")
                lines.append(f"{key}_count {len(values)}")
                lines.append(f"{key}_sum {sum(values)}")
                lines.append(f"{key}_avg {sum(values)/len(values)}")
        return "\n".join(lines)

    def reset(self):
        self.counters.clear()
        self.gauges.clear()
        self.histograms.clear()


# Global metrics instance
_metrics = SimpleMetrics()

_STATE_GAUGE = {"disconnected": 0.0, "connecting": 1.0, "connected": 2.0, "error": 3.0}


def get_registry() -> SimpleMetrics:
    return _metrics


def record_feed_state(state: str):
    """Record the current connection state as a gauge and a transition counter."""
    _metrics.inc_counter("feed_state_transitions", {"state": state})
    _metrics.set_gauge("feed_state", _STATE_GAUGE.get(state, -1.0))


def record_feed_reconnect(reason: str):
    """Record a scheduled reconnect attempt."""
    _metrics.inc_counter("feed_reconnects", {"reason": reason})


def record_feed_message(kind: str):
    """Record an inbound message by kind."""
    _metrics.inc_counter("feed_messages", {"type": kind})


def record_frame_dropped(reason: str):
    """Record a malformed frame."""
    _metrics.inc_counter("feed_frames_dropped", {"reason": reason})


def record_frame_sent(kind: str):
    """Record an outbound frame."""
    _metrics.inc_counter("feed_frames_sent", {"type": kind})


def record_heartbeat_rtt(rtt_ms: float):
    """Record ping/pong round trip."""
    _metrics.observe_histogram("feed_heartbeat_rtt_ms", rtt_ms)


def get_metrics() -> str:
    """Get metrics in text format."""
    return _metrics.get_metrics()


def create_metrics_router() -> APIRouter:
    """Create FastAPI router for metrics endpoint."""
    router = APIRouter()

    @router.get("/ops/metrics")
    def metrics():
        """Metrics endpoint."""
        return Response(get_metrics(), media_type="text/plain")

    return router
