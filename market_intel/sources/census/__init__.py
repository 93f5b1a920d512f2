"""
U.S. Census Bureau source adapter.

County Business Patterns, Economic Census and other api.census.gov datasets.
"""

__all__ = ["client", "metadata"]
