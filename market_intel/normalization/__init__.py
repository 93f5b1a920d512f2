"""
Payload normalization: period parsing, SDMX-style structural parsers,
dimension key validation and industry name matching.
"""

from market_intel.normalization.sdmx import (
    NormalizedDataset,
    PayloadVariant,
    RawProviderResult,
    normalize,
    normalize_payload,
)
from market_intel.normalization.key_validator import KeyValidationResult, validate_key

__all__ = [
    "NormalizedDataset",
    "PayloadVariant",
    "RawProviderResult",
    "normalize",
    "normalize_payload",
    "KeyValidationResult",
    "validate_key",
]
