"""
OECD source adapter.

Key economic indicators and other OECD dataflows over SDMX REST.
"""

__all__ = ["client"]
