"""
FRED (Federal Reserve Economic Data) source adapter.

Series observations, including industrial production by industry.
"""

__all__ = ["client", "metadata"]
