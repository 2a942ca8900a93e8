"""
Sandbox price feed - streaming market-data client for the trading-practice dashboard.
"""

__version__ = "1.0.0"
