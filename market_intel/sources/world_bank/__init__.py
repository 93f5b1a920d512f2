"""
World Bank source adapter.

World Development Indicators via api.worldbank.org/v2.
"""

__all__ = ["client", "metadata"]
