"""
Nasdaq Data Link source adapter.

Time-series datasets (including mirrored FRED series).
"""

__all__ = ["client", "metadata"]
