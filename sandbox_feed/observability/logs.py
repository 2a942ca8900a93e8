"""
Logging setup for the feed service.
Console output plus an optional daily-rotated file under the run directory.
"""

import os
import logging
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging for the service entry point."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(level)
    # websockets logs every frame at debug
    logging.getLogger("websockets").setLevel(logging.INFO)


def setup_log_rotation(log_dir: str = ".run", filename: str = "price_feed.log") -> Optional[TimedRotatingFileHandler]:
    """Setup log rotation for feed logs."""
    try:
        # Ensure log directory exists
        os.makedirs(log_dir, exist_ok=True)

        handler = TimedRotatingFileHandler(
            filename=os.path.join(log_dir, filename),
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        # Add to root logger
        logging.getLogger().addHandler(handler)

        logger.info("Log rotation configured (daily, keep 7 days)")
        return handler

    except OSError as e:
        logger.error(f"Failed to setup log rotation: {e}")
        return None
