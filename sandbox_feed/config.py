# sandbox_feed/config.py
from dotenv import load_dotenv, find_dotenv
import os
import logging
from typing import List

from sandbox_feed.errors import ConfigurationError

# Load nearest .env from project tree, don't override existing process env
load_dotenv(find_dotenv(usecwd=True), override=False)

logger = logging.getLogger(__name__)


def _int_env(name: str, default: str) -> int:
    raw = (os.getenv(name) or default).strip()
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", details={"var": name})


def _float_env(name: str, default: str) -> float:
    raw = (os.getenv(name) or default).strip()
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", details={"var": name})


def symbols_from_csv(raw: str) -> List[str]:
    """Split a comma separated symbol list, dropping blanks."""
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


class Settings:
    """Price feed configuration read from the environment."""

    def __init__(self):
        # Feed endpoint
        self.FEED_WS_URL = (os.getenv("FEED_WS_URL") or "ws://localhost:8080").strip()
        self.FEED_SYMBOLS = (os.getenv("FEED_SYMBOLS") or "BTC,ETH,SOL").strip()
        self.FEED_CONNECT_TIMEOUT_S = _float_env("FEED_CONNECT_TIMEOUT_S", "10")

        # Reconnection configuration
        self.FEED_BASE_DELAY_MS = _int_env("FEED_BASE_DELAY_MS", "1000")  # First retry delay
        self.FEED_MAX_DELAY_MS = _int_env("FEED_MAX_DELAY_MS", "10000")  # Backoff cap
        self.FEED_MAX_ATTEMPTS = _int_env("FEED_MAX_ATTEMPTS", "5")  # Consecutive failures before giving up
        self.FEED_JITTER_MS = _int_env("FEED_JITTER_MS", "0")  # Random jitter range
        self.FEED_RECONNECT_GRACE_MS = _int_env("FEED_RECONNECT_GRACE_MS", "250")

        # Heartbeat configuration
        self.FEED_HEARTBEAT_S = _float_env("FEED_HEARTBEAT_S", "30")
        self.FEED_MAX_MISSED_PONGS = _int_env("FEED_MAX_MISSED_PONGS", "0")  # 0 = diagnostic only

        # Optional REST seeding of the snapshot
        self.FEED_REST_URL = (os.getenv("FEED_REST_URL") or "").strip()
        self.FEED_REST_TOKEN = (os.getenv("FEED_REST_TOKEN") or "").strip()

        self.FEED_LOG_DIR = (os.getenv("FEED_LOG_DIR") or ".run").strip()

        self._validate()

    def _validate(self) -> None:
        if self.FEED_BASE_DELAY_MS <= 0:
            raise ConfigurationError("FEED_BASE_DELAY_MS must be positive")
        if self.FEED_MAX_DELAY_MS < self.FEED_BASE_DELAY_MS:
            logger.warning("FEED_MAX_DELAY_MS below FEED_BASE_DELAY_MS, clamping to base delay")
            self.FEED_MAX_DELAY_MS = self.FEED_BASE_DELAY_MS
        if self.FEED_MAX_ATTEMPTS < 1:
            raise ConfigurationError("FEED_MAX_ATTEMPTS must be at least 1")
        if self.FEED_HEARTBEAT_S <= 0:
            raise ConfigurationError("FEED_HEARTBEAT_S must be positive")
        if not self.FEED_WS_URL.startswith(("ws://", "wss://")):
            raise ConfigurationError(f"FEED_WS_URL must be a ws:// or wss:// URL, got {self.FEED_WS_URL!r}")

    @property
    def symbols(self) -> List[str]:
        return symbols_from_csv(self.FEED_SYMBOLS)


def load_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()
