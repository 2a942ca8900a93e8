"""
Wire codec for the price feed.
Text frames carry one tagged JSON object each; the ``type`` field selects the variant.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from sandbox_feed.errors import FrameDecodeError
from sandbox_feed.schemas.feed import PriceEntry

logger = logging.getLogger("price_feed.protocol")

PRICE_UPDATE = "price_update"
PONG = "pong"
SUBSCRIBE = "subscribe"
PING = "ping"


@dataclass(frozen=True)
class PriceUpdate:
    """Inbound batch of per-symbol price deltas."""
    entries: Tuple[PriceEntry, ...]
    rejected: int = 0


@dataclass(frozen=True)
class Pong:
    """Heartbeat acknowledgement."""
    timestamp: Optional[float] = None


@dataclass(frozen=True)
class Unknown:
    """Message kind this client does not handle."""
    kind: str
    raw: Dict[str, Any] = field(default_factory=dict)


InboundMessage = Union[PriceUpdate, Pong, Unknown]


@dataclass(frozen=True)
class Subscribe:
    symbols: frozenset


@dataclass(frozen=True)
class Ping:
    timestamp: int   # ms epoch


OutboundMessage = Union[Subscribe, Ping]


def normalize_symbols(symbols: Iterable[str]) -> frozenset:
    """Canonical symbol set: stripped, upper-cased, unique."""
    return frozenset(s.strip().upper() for s in symbols if isinstance(s, str) and s.strip())


def decode_frame(raw: Union[str, bytes]) -> InboundMessage:
    """
    Parse one inbound frame.

    Raises:
        FrameDecodeError: the frame is not a tagged message envelope
    """
    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FrameDecodeError(f"Frame is not valid JSON: {e}", details={"reason": "json"})

    if not isinstance(message, dict):
        raise FrameDecodeError("Frame is not a JSON object", details={"reason": "not_object"})

    kind = message.get("type")
    if not isinstance(kind, str) or not kind:
        raise FrameDecodeError("Frame has no message type", details={"reason": "no_type"})

    if kind == PRICE_UPDATE:
        return _decode_price_update(message)
    if kind == PONG:
        ts = message.get("timestamp")
        return Pong(timestamp=float(ts) if isinstance(ts, (int, float)) and not isinstance(ts, bool) else None)
    return Unknown(kind=kind, raw=message)


def _decode_price_update(message: Dict[str, Any]) -> PriceUpdate:
    data = message.get("data")
    if not isinstance(data, list):
        raise FrameDecodeError("price_update frame has no data list", details={"reason": "no_data"})

    entries: List[PriceEntry] = []
    rejected = 0
    for item in data:
        try:
            entries.append(PriceEntry.model_validate(item))
        except PydanticValidationError as e:
            rejected += 1
            logger.debug(f"[protocol] Rejected price entry {item!r}: {e.error_count()} errors")
    return PriceUpdate(entries=tuple(entries), rejected=rejected)


def encode(message: OutboundMessage) -> str:
    """Serialize an outbound message to a text frame."""
    if isinstance(message, Subscribe):
        return encode_subscribe(message.symbols)
    if isinstance(message, Ping):
        return encode_ping(message.timestamp)
    raise TypeError(f"Unsupported outbound message: {message!r}")


def encode_subscribe(symbols: Iterable[str]) -> str:
    # Each subscribe states the complete desired set
    return json.dumps({"type": SUBSCRIBE, "symbols": sorted(normalize_symbols(symbols))})


def encode_ping(timestamp_ms: int) -> str:
    return json.dumps({"type": PING, "timestamp": int(timestamp_ms)})
