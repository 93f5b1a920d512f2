"""
BLS (Bureau of Labor Statistics) source adapter.

Employment, unemployment and price series via the public API v2.
"""

__all__ = ["client", "metadata"]
