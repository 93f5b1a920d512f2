"""
Relevance scoring.

score = 0.40 * match          best match strength of any fragment
      + 0.20 * completeness   share of optional fields present
      + 0.15 * directness     most direct measurement among sources
      + 0.10 * recency        1 - (reference_year - year) / 10, clamped
      + 0.15 * corroboration  min(1, (sources - 1) / 3)

Every component of a merged industry is a max, a union or a count over
its fragments, so an industry never scores below any of its fragments.
Scores are rounded to 4 decimals.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from market_intel.core.schemas import IndustryBase, IndustryDTO, IndustryFragment
from market_intel.services.consolidation import IndustryGroup

logger = logging.getLogger(__name__)

WEIGHTS = {
    "match": 0.40,
    "completeness": 0.20,
    "directness": 0.15,
    "recency": 0.10,
    "corroboration": 0.15,
}

OPTIONAL_FIELDS = (
    "description",
    "classification_codes",
    "market_size_estimate",
    "growth_rate",
    "key_metrics",
    "geography",
    "last_updated",
)

RECENCY_HORIZON_YEARS = 10
CORROBORATION_SATURATION = 3


@dataclass(frozen=True)
class ScoreBreakdown:
    match: float
    completeness: float
    directness: float
    recency: float
    corroboration: float

    @property
    def total(self) -> float:
        return round(
            sum(WEIGHTS[name] * getattr(self, name) for name in WEIGHTS),
            4,
        )


def completeness(item: IndustryBase) -> float:
    present = 0
    for name in OPTIONAL_FIELDS:
        value = getattr(item, name)
        if value is None or value == [] or value == {} or value == "":
            continue
        present += 1
    return present / len(OPTIONAL_FIELDS)


def recency(last_updated: Optional[date], reference_year: Optional[int]) -> float:
    if last_updated is None or reference_year is None:
        return 0.0
    age = reference_year - last_updated.year
    return max(0.0, min(1.0, 1.0 - age / RECENCY_HORIZON_YEARS))


def corroboration(source_count: int) -> float:
    if source_count <= 1:
        return 0.0
    return min(1.0, (source_count - 1) / CORROBORATION_SATURATION)


def reference_year_of(fragments: Iterable[IndustryFragment]) -> Optional[int]:
    """Newest data year among the fragments of one search."""
    years = [f.last_updated.year for f in fragments if f.last_updated is not None]
    return max(years) if years else None


def fragment_breakdown(fragment: IndustryFragment, reference_year: Optional[int]) -> ScoreBreakdown:
    sources = {s.source_name for s in fragment.contributing_sources}
    return ScoreBreakdown(
        match=fragment.match_strength,
        completeness=completeness(fragment),
        directness=fragment.directness,
        recency=recency(fragment.last_updated, reference_year),
        corroboration=corroboration(len(sources)),
    )


def score_fragment(fragment: IndustryFragment, reference_year: Optional[int]) -> float:
    """Score of a single-source fragment."""
    return fragment_breakdown(fragment, reference_year).total


def industry_breakdown(group: IndustryGroup, reference_year: Optional[int]) -> ScoreBreakdown:
    fragments: Sequence[IndustryFragment] = group.fragments
    return ScoreBreakdown(
        match=max(f.match_strength for f in fragments),
        completeness=completeness(group.merged),
        directness=max(f.directness for f in fragments),
        recency=recency(group.merged.last_updated, reference_year),
        corroboration=corroboration(len(group.source_names)),
    )


def score_industry(group: IndustryGroup, reference_year: Optional[int]) -> IndustryDTO:
    """Final, immutable DTO for a consolidated industry."""
    breakdown = industry_breakdown(group, reference_year)
    merged = group.merged
    logger.debug(f"Scored {merged.industry_id}: {breakdown}")
    return IndustryDTO(
        **{name: getattr(merged, name) for name in IndustryBase.model_fields},
        relevance_score=breakdown.total,
    )
