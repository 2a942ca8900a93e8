"""
Price feed schemas using Pydantic for validation and serialization.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Any
from enum import Enum


class ConnectionState(str, Enum):
    """Feed connection state; exactly one value at any time."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERRORED = "error"


class PriceEntry(BaseModel):
    """Single per-symbol entry of a price_update frame."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    symbol: str = Field(min_length=1)
    price: float = Field(gt=0, allow_inf_nan=False)
    change_24h: float = Field(default=0.0, alias="change24h", allow_inf_nan=False)
    timestamp: Optional[float] = None   # ms epoch, set by the feed
    source: Optional[str] = None
    volume: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)

    @field_validator("symbol")
    @classmethod
    def _canonical_symbol(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("symbol is blank")
        return value

    @field_validator("change_24h", mode="before")
    @classmethod
    def _missing_change_is_zero(cls, value):
        return 0.0 if value is None else value


class SymbolsRequest(BaseModel):
    """Body of POST /feed/symbols."""
    symbols: List[str]


class PriceView(BaseModel):
    """Snapshot entry as served to HTTP consumers."""
    symbol: str
    price: float
    change24h: float
    observed_at: float         # epoch seconds
    source: str
    volume: Optional[float] = None


class FeedStatus(BaseModel):
    """Connection status for the dashboard indicator."""
    state: str                 # "disconnected" | "connecting" | "connected" | "error"
    status: str                # state, or "failed" once retries are exhausted
    last_error: Optional[str] = None
    retries_exhausted: bool
    symbols: List[str]
    retry: Dict[str, Any]
    diagnostics: Dict[str, Any] = Field(default_factory=dict)
