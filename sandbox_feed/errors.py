"""
Centralized exceptions for the price feed client.
Network and protocol failures are absorbed by the client and surfaced as state;
these types carry the diagnostic and map onto HTTP responses at the API edge.
"""

import re
from typing import Dict, Any, Optional
from fastapi import HTTPException, status


class FeedError(Exception):
    """Base exception for the price feed."""

    def __init__(self, message: str, error_code: str = "UNKNOWN", details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ProtocolError(FeedError):
    """Inbound frame does not follow the feed protocol."""

    def __init__(self, message: str = "Protocol error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "PROTOCOL_ERROR", details)


class FrameDecodeError(ProtocolError):
    """Frame could not be parsed as a tagged message envelope."""


class RetriesExhaustedError(FeedError):
    """Automatic reconnection gave up after the configured attempts."""

    def __init__(self, message: str = "Max reconnection attempts reached", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "RETRIES_EXHAUSTED", details)


class FeedUnavailableError(FeedError):
    """No price feed client is running."""

    def __init__(self, message: str = "Price feed not running", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FEED_UNAVAILABLE", details)


class ValidationError(FeedError):
    """Request validation error."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "VALIDATION_ERROR", details)


class ConfigurationError(FeedError):
    """Configuration error."""

    def __init__(self, message: str = "Configuration error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIG_ERROR", details)


# Error mapping to HTTP responses
ERROR_TO_HTTP_STATUS = {
    ProtocolError: status.HTTP_502_BAD_GATEWAY,
    FrameDecodeError: status.HTTP_502_BAD_GATEWAY,
    RetriesExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
    FeedUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_http_exception(error: FeedError) -> HTTPException:
    """Convert FeedError to HTTPException with proper status code."""
    status_code = ERROR_TO_HTTP_STATUS.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail={
            "error": error.error_code,
            "message": sanitize_error_message(error.message),
            "details": error.details
        }
    )


_BEARER_RE = re.compile(r"(bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE)
_QUERY_SECRET_RE = re.compile(r"((?:token|key|secret|password)=)[^&\s]+", re.IGNORECASE)


def sanitize_error_message(message: str) -> str:
    """Strip credentials from messages before they reach logs or consumers."""
    sanitized = _BEARER_RE.sub(r"\1***", message)
    sanitized = _QUERY_SECRET_RE.sub(r"\1***", sanitized)
    return sanitized


def describe_error(error: BaseException) -> str:
    """Short, sanitized one-line description for last_error."""
    if isinstance(error, FeedError):
        text = error.message
    else:
        text = str(error) or type(error).__name__
    return sanitize_error_message(f"{type(error).__name__}: {text}")
