"""
Fragment consolidation.

Groups per-source industry fragments that describe the same industry
and merges each group into one record:
- fragments sharing a classification code (system + code) are the same industry
- otherwise, names whose normalized similarity clears the threshold are,
  unless their NAICS codes disagree
- the highest-priority source provides the primary record; missing
  fields are filled from the others
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from market_intel.core.schemas import IndustryBase, IndustryFragment
from market_intel.normalization.name_matcher import IndustryNameMatcher

logger = logging.getLogger(__name__)


# Source priority for merging (higher = more authoritative)
SOURCE_PRIORITY = {
    "census": 5,            # Establishment-level census of the industry
    "bls": 4,               # Payroll survey by industry
    "fred": 4,              # Federal Reserve production indices
    "oecd": 3,              # Sector-level, harmonized
    "imf": 3,               # Sector-level, harmonized
    "world_bank": 3,        # Sector-level national accounts
    "nasdaq_data_link": 2,  # Mirrors of other sources
    "alpha_vantage": 2,     # Listed companies only
}

FILL_FIELDS = ("description", "market_size_estimate", "growth_rate", "geography")


@dataclass(frozen=True)
class IndustryGroup:
    """Fragments judged to describe one industry, and their merge."""
    merged: IndustryBase
    fragments: Sequence[IndustryFragment]

    @property
    def source_names(self) -> List[str]:
        return sorted({s.source_name for s in self.merged.contributing_sources})


def _source_of(fragment: IndustryFragment) -> str:
    if fragment.contributing_sources:
        return fragment.contributing_sources[0].source_name
    return ""


def primary_order(fragments: Sequence[IndustryFragment]) -> List[IndustryFragment]:
    """Fragments by source priority, then most recent data, then source name."""
    def sort_key(fragment: IndustryFragment):
        source = _source_of(fragment)
        updated = fragment.last_updated.toordinal() if fragment.last_updated else 0
        return (-SOURCE_PRIORITY.get(source, 0), -updated, source, fragment.industry_id)

    return sorted(fragments, key=sort_key)


class _DisjointSet:
    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Lower index stays root so group order follows input order
            self.parent[max(root_a, root_b)] = min(root_a, root_b)


class FragmentConsolidator:
    """
    Deduplicates and merges industry fragments from multiple sources.

    Key functions:
    - Group fragments by shared classification code or similar names
    - Merge each group using source priority
    """

    def __init__(
        self,
        similarity_threshold: float = 0.85,
        matcher: Optional[IndustryNameMatcher] = None,
    ):
        self.similarity_threshold = similarity_threshold
        self.matcher = matcher or IndustryNameMatcher()

    def same_industry(self, a: IndustryFragment, b: IndustryFragment) -> bool:
        if set(a.classification_codes) & set(b.classification_codes):
            return True
        naics_a, naics_b = set(a.codes_of("NAICS")), set(b.codes_of("NAICS"))
        if naics_a and naics_b and not naics_a & naics_b:
            return False
        return self.matcher.similarity(a.name, b.name) >= self.similarity_threshold

    def group(self, fragments: Sequence[IndustryFragment]) -> List[List[IndustryFragment]]:
        """Partition fragments into same-industry groups, in first-seen order."""
        sets = _DisjointSet(len(fragments))
        for i in range(len(fragments)):
            for j in range(i + 1, len(fragments)):
                if sets.find(i) != sets.find(j) and self.same_industry(fragments[i], fragments[j]):
                    sets.union(i, j)

        groups: Dict[int, List[IndustryFragment]] = {}
        for i, fragment in enumerate(fragments):
            groups.setdefault(sets.find(i), []).append(fragment)
        return [groups[root] for root in sorted(groups)]

    def merge(self, fragments: Sequence[IndustryFragment]) -> IndustryBase:
        """
        Merge fragments about the same industry.

        Uses source priority to determine which data to keep.
        """
        ordered = primary_order(fragments)
        primary = ordered[0]

        merged = {
            "industry_id": primary.industry_id,
            "name": primary.name,
        }
        for field_name in FILL_FIELDS:
            merged[field_name] = next(
                (getattr(f, field_name) for f in ordered if getattr(f, field_name) is not None),
                None,
            )

        # Primary wins on metric name collisions
        key_metrics: Dict[str, float] = {}
        for fragment in reversed(ordered):
            key_metrics.update(fragment.key_metrics)

        codes = {c for f in ordered for c in f.classification_codes}
        sources = {
            (s.source_name, s.raw_excerpt_ref): s
            for f in ordered
            for s in f.contributing_sources
        }
        dates = [f.last_updated for f in ordered if f.last_updated is not None]

        return IndustryBase(
            **merged,
            classification_codes=list(codes),
            key_metrics=dict(sorted(key_metrics.items())),
            contributing_sources=[sources[k] for k in sorted(sources)],
            last_updated=max(dates) if dates else None,
        )

    def consolidate(self, fragments: Sequence[IndustryFragment]) -> List[IndustryGroup]:
        groups = [
            IndustryGroup(merged=self.merge(group), fragments=tuple(group))
            for group in self.group(fragments)
        ]
        logger.info(f"Consolidated {len(fragments)} fragments into {len(groups)} industries")
        return groups


def consolidate_fragments(
    fragments: Sequence[IndustryFragment], similarity_threshold: float = 0.85
) -> List[IndustryGroup]:
    return FragmentConsolidator(similarity_threshold).consolidate(fragments)
