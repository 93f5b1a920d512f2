"""
Alpha Vantage source adapter.

Company overviews, quotes and price series by ticker.
"""

__all__ = ["client", "metadata"]
