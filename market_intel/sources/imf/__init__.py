"""
IMF source adapter.

International Financial Statistics and other IMF dataflows over SDMX JSON.
"""

__all__ = ["client"]
