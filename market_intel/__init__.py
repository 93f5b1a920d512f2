"""
Market intelligence engine.

Aggregates industry data from public statistical and market data APIs,
normalizes heterogeneous payloads into one observation shape, and
consolidates per-source results into ranked industry profiles.
"""

__version__ = "0.1.0"
