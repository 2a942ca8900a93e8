"""
Protocols - lightweight interfaces for decoupling consumers from the feed client.
"""

from .price_feed import PriceFeed

__all__ = [
    "PriceFeed",
]
