"""
Industry name comparison.

Sources label the same industry differently ("Pharmaceutical & Medicine
Mfg" at one, "Pharmaceutical and Medicine Manufacturing" at another).
Names are reduced to canonical tokens first and then compared by
normalized edit distance.
"""

import logging
import re
from typing import Dict, List

logger = logging.getLogger(__name__)

WORD = re.compile(r"[a-z0-9]+")


def levenshtein_distance(s1: str, s2: str) -> int:
    """Insertions, deletions and substitutions needed to turn s1 into s2."""
    if len(s2) > len(s1):
        s1, s2 = s2, s1
    row = list(range(len(s2) + 1))
    for i, a in enumerate(s1, start=1):
        diagonal, row[0] = row[0], i
        for j, b in enumerate(s2, start=1):
            above = row[j]
            row[j] = min(above + 1, row[j - 1] + 1, diagonal + (a != b))
            diagonal = above
    return row[-1]


def similarity_ratio(s1: str, s2: str) -> float:
    """1.0 for identical strings, 0.0 when one side is empty."""
    longest = max(len(s1), len(s2))
    if longest == 0:
        return 1.0
    if not (s1 and s2):
        return 0.0
    return 1.0 - levenshtein_distance(s1, s2) / longest


class IndustryNameMatcher:
    """
    Compares industry names after canonicalization.

    Canonical tokens are lower-case, singular, with abbreviations expanded
    and filler words ("and", "other", "industries", ...) dropped.
    """

    STOPWORDS = frozenset({
        "and", "of", "the", "other", "related", "for", "in", "industry",
        "industries", "sector", "activities", "all",
    })

    ABBREVIATIONS = {
        "mfg": "manufacturing",
        "mfr": "manufacturing",
        "manuf": "manufacturing",
        "svc": "service",
        "svcs": "service",
        "pharma": "pharmaceutical",
        "pharmaceuticals": "pharmaceutical",
        "tech": "technology",
        "intl": "international",
        "info": "information",
        "telecom": "telecommunication",
        "govt": "government",
        "equip": "equipment",
        "elec": "electric",
        "prod": "product",
        "dist": "distribution",
        "transp": "transportation",
    }

    def __init__(self):
        self._canonical: Dict[str, str] = {}

    @staticmethod
    def _singular(word: str) -> str:
        if len(word) > 4 and word.endswith("ies"):
            return word[:-3] + "y"
        if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
            return word[:-1]
        return word

    @classmethod
    def tokens(cls, text: str) -> List[str]:
        """Canonical tokens of a name or query."""
        raw = WORD.findall((text or "").lower().replace("&", " and "))
        expanded = (cls.ABBREVIATIONS.get(w, w) for w in raw)
        return [cls._singular(w) for w in expanded if w not in cls.STOPWORDS]

    def normalize(self, name: str) -> str:
        """Canonical form of a name: its tokens joined by single spaces."""
        cached = self._canonical.get(name)
        if cached is None:
            cached = self._canonical[name] = " ".join(self.tokens(name))
        return cached

    def similarity(self, name1: str, name2: str) -> float:
        return similarity_ratio(self.normalize(name1), self.normalize(name2))
