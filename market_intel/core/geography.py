"""
Country code normalization.

Providers disagree on country codes: IMF uses ISO alpha-2, World Bank
and OECD use ISO alpha-3. Queries may use either, or a plain name.
"""
from typing import Dict, Optional, Tuple

# alpha-2 -> (alpha-3, common names)
COUNTRIES: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "US": ("USA", ("united states", "united states of america", "usa", "america")),
    "CA": ("CAN", ("canada",)),
    "MX": ("MEX", ("mexico",)),
    "BR": ("BRA", ("brazil",)),
    "GB": ("GBR", ("united kingdom", "uk", "great britain", "britain")),
    "DE": ("DEU", ("germany",)),
    "FR": ("FRA", ("france",)),
    "IT": ("ITA", ("italy",)),
    "ES": ("ESP", ("spain",)),
    "NL": ("NLD", ("netherlands",)),
    "CH": ("CHE", ("switzerland",)),
    "SE": ("SWE", ("sweden",)),
    "IE": ("IRL", ("ireland",)),
    "JP": ("JPN", ("japan",)),
    "CN": ("CHN", ("china",)),
    "IN": ("IND", ("india",)),
    "KR": ("KOR", ("south korea", "korea")),
    "AU": ("AUS", ("australia",)),
    "SG": ("SGP", ("singapore",)),
    "ZA": ("ZAF", ("south africa",)),
}

GLOBAL_TOKENS = {"", "global", "world", "all", "worldwide", "wld"}

_ALPHA3_TO_ALPHA2 = {alpha3: alpha2 for alpha2, (alpha3, _) in COUNTRIES.items()}
_NAME_TO_ALPHA2 = {
    name: alpha2 for alpha2, (_, names) in COUNTRIES.items() for name in names
}


def is_global(geography: Optional[str]) -> bool:
    return geography is None or geography.strip().lower() in GLOBAL_TOKENS


def to_alpha2(geography: Optional[str]) -> Optional[str]:
    """Alpha-2 code for a code or name, None for global or unknown input."""
    if is_global(geography):
        return None
    text = geography.strip()
    upper = text.upper()
    if upper in COUNTRIES:
        return upper
    if upper in _ALPHA3_TO_ALPHA2:
        return _ALPHA3_TO_ALPHA2[upper]
    return _NAME_TO_ALPHA2.get(text.lower())


def to_alpha3(geography: Optional[str]) -> Optional[str]:
    alpha2 = to_alpha2(geography)
    return COUNTRIES[alpha2][0] if alpha2 else None
