"""
Industry reference catalog.

Maps free-text and classification-code queries onto NAICS industries and
carries, per industry, the series each source publishes for it:
- BLS CES "all employees" series
- FRED industrial production index
- representative tickers for Alpha Vantage company overviews

Sector-level hints (World Bank, OECD, IMF) are derived from the NAICS
sector, since those sources do not publish below sector level.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from market_intel.core.schemas import ClassificationCode
from market_intel.normalization.name_matcher import IndustryNameMatcher, similarity_ratio

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^\d{2,6}$")

# Canonical tokens shared by too many industries to identify one
GENERIC_TOKENS = frozenset({
    "manufacturing", "service", "product", "equipment", "store", "retail",
    "wholesale", "trade", "company", "market", "good", "supply", "general",
})


@dataclass(frozen=True)
class SectorHint:
    """Sector-level series published by multilateral sources."""
    name: str
    world_bank_indicator: str
    oecd_activity: Optional[str] = None  # ISIC rev.4 section for OECD DF_KEI
    imf_indicator: Optional[str] = None  # IFS indicator


SECTOR_HINTS: Dict[str, SectorHint] = {
    "agriculture": SectorHint("Agriculture, forestry and fishing", "NV.AGR.TOTL.CD"),
    "industry": SectorHint("Industry (mining, utilities, construction)", "NV.IND.TOTL.CD",
                           oecd_activity="BTE", imf_indicator="AIP_IX"),
    "manufacturing": SectorHint("Manufacturing", "NV.IND.MANF.CD",
                                oecd_activity="C", imf_indicator="AIPMA_IX"),
    "services": SectorHint("Services", "NV.SRV.TOTL.CD"),
}


def sector_for_naics(naics: str) -> SectorHint:
    prefix = naics[:2]
    if prefix == "11":
        return SECTOR_HINTS["agriculture"]
    if prefix in ("21", "22", "23"):
        return SECTOR_HINTS["industry"]
    if prefix in ("31", "32", "33"):
        return SECTOR_HINTS["manufacturing"]
    return SECTOR_HINTS["services"]


@dataclass(frozen=True)
class IndustryReference:
    """One catalog industry."""
    naics: str
    name: str
    description: str
    sic: Tuple[str, ...] = ()
    keywords: Tuple[str, ...] = ()
    bls_series: Optional[str] = None
    fred_series: Optional[str] = None
    tickers: Tuple[str, ...] = ()

    @property
    def industry_id(self) -> str:
        return f"naics-{self.naics}"

    @property
    def sector(self) -> SectorHint:
        return sector_for_naics(self.naics)

    def classification_codes(self) -> List[ClassificationCode]:
        codes = [ClassificationCode(system="NAICS", code=self.naics)]
        codes.extend(ClassificationCode(system="SIC", code=s) for s in self.sic)
        return codes


@dataclass(frozen=True)
class IndustryMatch:
    """A catalog industry with how strongly it matched a query."""
    industry: IndustryReference
    strength: float
    matched_on: str = "keyword"


def _ref(naics, name, description, sic=(), keywords=(), bls=None, fred=None, tickers=()):
    return IndustryReference(
        naics=naics,
        name=name,
        description=description,
        sic=tuple(sic),
        keywords=tuple(keywords),
        bls_series=bls,
        fred_series=fred,
        tickers=tuple(tickers),
    )


INDUSTRIES: Tuple[IndustryReference, ...] = (
    # Manufacturing
    _ref("3254", "Pharmaceutical and Medicine Manufacturing",
         "Manufacturing of biological and medicinal products and pharmaceutical preparations.",
         sic=("283",), keywords=("pharma", "drug manufacturing", "medicines", "biotech", "drugs"),
         bls="CES3232540001", fred="IPG3254S", tickers=("PFE", "MRK", "LLY")),
    _ref("325412", "Pharmaceutical Preparation Manufacturing",
         "Manufacturing of in-vivo diagnostic substances and pharmaceutical preparations.",
         sic=("2834",), keywords=("drug preparations", "generic drugs")),
    _ref("325414", "Biological Product Manufacturing",
         "Manufacturing of vaccines, toxoids, blood fractions and other biological products.",
         sic=("2836",), keywords=("vaccines", "biologics")),
    _ref("3241", "Petroleum and Coal Products Manufacturing",
         "Transformation of crude petroleum and coal into usable products.",
         sic=("291",), keywords=("oil refining", "refineries"), fred="IPG324S",
         tickers=("MPC", "VLO")),
    _ref("3121", "Beverage Manufacturing",
         "Manufacturing of soft drinks, ice, bottled water and alcoholic beverages.",
         sic=("208",), keywords=("beverages", "soft drinks", "brewing"), fred="IPG3121S",
         tickers=("KO", "PEP")),
    _ref("3341", "Computer and Peripheral Equipment Manufacturing",
         "Manufacturing of computers, storage devices and computer peripherals.",
         sic=("357",), keywords=("computer hardware", "computers"),
         bls="CES3133410001", fred="IPG3341S", tickers=("AAPL", "DELL")),
    _ref("3344", "Semiconductor and Other Electronic Component Manufacturing",
         "Manufacturing of semiconductors and other components for electronic applications.",
         sic=("367",), keywords=("semiconductors", "chips", "microchips", "electronic components"),
         bls="CES3133440001", fred="IPG3344S", tickers=("INTC", "NVDA", "TXN")),
    _ref("334413", "Semiconductor and Related Device Manufacturing",
         "Manufacturing of integrated circuits, memory chips, microprocessors and diodes.",
         sic=("3674",), keywords=("integrated circuits", "microprocessors")),
    _ref("3361", "Motor Vehicle Manufacturing",
         "Manufacturing of complete automobiles and light and heavy duty trucks.",
         sic=("371",), keywords=("automotive", "cars", "automobiles", "auto manufacturing"),
         bls="CES3133610001", fred="IPG3361T3S", tickers=("F", "GM", "TSLA")),
    _ref("3364", "Aerospace Product and Parts Manufacturing",
         "Manufacturing of aircraft, missiles, space vehicles and their engines and parts.",
         sic=("372",), keywords=("aerospace", "aircraft", "aviation manufacturing"),
         bls="CES3133640001", fred="IPG3364S", tickers=("BA", "LMT")),
    _ref("3391", "Medical Equipment and Supplies Manufacturing",
         "Manufacturing of medical equipment and supplies, including surgical instruments.",
         sic=("384",), keywords=("medical devices", "medtech", "surgical instruments"),
         bls="CES3133910001", fred="IPG3391S", tickers=("MDT", "ABT")),
    # Energy, utilities, construction
    _ref("2111", "Oil and Gas Extraction",
         "Operation and development of oil and gas field properties.",
         sic=("131",), keywords=("oil", "natural gas", "upstream oil", "petroleum extraction"),
         bls="CES1021100001", fred="IPG211S", tickers=("XOM", "COP")),
    _ref("2211", "Electric Power Generation, Transmission and Distribution",
         "Generation, transmission and distribution of electric power.",
         sic=("491",), keywords=("electric utilities", "power generation", "electricity"),
         bls="CES4422110001", fred="IPG2211S", tickers=("NEE", "DUK")),
    _ref("2362", "Nonresidential Building Construction",
         "Construction of commercial, institutional and industrial buildings.",
         sic=("154",), keywords=("commercial construction", "construction"),
         bls="CES2023620001"),
    # Trade and transportation
    _ref("4451", "Grocery Stores",
         "Retailing of a general line of food products.",
         sic=("541",), keywords=("grocery", "supermarkets", "food retail"),
         bls="CES4244510001", tickers=("KR",)),
    _ref("4541", "Electronic Shopping and Mail-Order Houses",
         "Retailing of merchandise through the internet and mail-order catalogs.",
         sic=("596",), keywords=("e-commerce", "ecommerce", "online retail", "online shopping"),
         bls="CES4245410001", tickers=("AMZN", "EBAY")),
    _ref("4811", "Scheduled Air Transportation",
         "Air transportation of passengers and cargo on regular routes and schedules.",
         sic=("451",), keywords=("airlines", "air travel"),
         bls="CES4348100001", tickers=("DAL", "UAL")),
    # Information
    _ref("5112", "Software Publishers",
         "Publishing of computer software, including design, documentation and support.",
         sic=("7372",), keywords=("software", "saas", "software publishing", "enterprise software"),
         bls="CES5051120001", tickers=("MSFT", "ORCL", "ADBE")),
    _ref("5171", "Wired Telecommunications Carriers",
         "Operation of transmission facilities for voice, data and video over wired networks.",
         sic=("481",), keywords=("telecommunications", "telecom", "broadband"),
         bls="CES5051700001", tickers=("T", "VZ")),
    _ref("5182", "Data Processing, Hosting, and Related Services",
         "Infrastructure for hosting and data processing services.",
         sic=("7374",), keywords=("cloud computing", "data centers", "hosting", "cloud"),
         bls="CES5051820001", tickers=("EQIX",)),
    # Finance
    _ref("5221", "Depository Credit Intermediation",
         "Accepting deposits and lending funds, including commercial banking.",
         sic=("602",), keywords=("banking", "banks", "commercial banking"),
         bls="CES5552210001", tickers=("JPM", "BAC")),
    _ref("5241", "Insurance Carriers",
         "Underwriting annuities and insurance policies.",
         sic=("631",), keywords=("insurance", "insurers"),
         bls="CES5552410001", tickers=("MET", "PGR")),
    # Professional services
    _ref("5415", "Computer Systems Design and Related Services",
         "Custom programming, systems integration and IT consulting services.",
         sic=("737",), keywords=("it services", "it consulting", "systems integration",
                                 "software development"),
         bls="CES6054150001", tickers=("ACN", "IBM")),
    _ref("541511", "Custom Computer Programming Services",
         "Writing, modifying and supporting software to meet the needs of a particular customer.",
         sic=("7371",), keywords=("custom software", "software development services")),
    _ref("541512", "Computer Systems Design Services",
         "Planning and designing computer systems that integrate hardware, software and communication.",
         sic=("7373",), keywords=("systems design",)),
    _ref("5416", "Management, Scientific, and Technical Consulting Services",
         "Advice and assistance to businesses on management, scientific and technical issues.",
         sic=("874",), keywords=("consulting", "management consulting"),
         bls="CES6054160001"),
    # Health and hospitality
    _ref("6221", "General Medical and Surgical Hospitals",
         "Diagnostic and medical treatment services for inpatients.",
         sic=("806",), keywords=("hospitals", "healthcare", "health care"),
         bls="CES6562200001", tickers=("HCA",)),
    _ref("7225", "Restaurants and Other Eating Places",
         "Food services to patrons who order and are served while seated or pay before eating.",
         sic=("581",), keywords=("restaurants", "food service", "fast food"),
         bls="CES7072250001", tickers=("MCD", "SBUX")),
)


class IndustryCatalog:
    """
    Resolves search queries into catalog industries.

    Match strength (0.0-1.0):
    - exact NAICS code 1.0, exact SIC 0.95
    - query code more specific than an industry 0.85, less specific 0.75
    - keyword phrase equal to a name or keyword 1.0
    - otherwise max(0.9 * token overlap, 0.95 * name similarity), provided
      a non-generic query word appears in the name or keywords; failing
      that, only name similarity of TYPO_SIMILARITY or more counts
    """

    SUB_INDUSTRY_FACTOR = 0.8
    TYPO_SIMILARITY = 0.8

    def __init__(
        self,
        industries: Iterable[IndustryReference] = INDUSTRIES,
        matcher: Optional[IndustryNameMatcher] = None,
    ):
        self.industries: Tuple[IndustryReference, ...] = tuple(industries)
        self._by_naics = {i.naics: i for i in self.industries}
        self.matcher = matcher or IndustryNameMatcher()

    def get(self, naics: str) -> Optional[IndustryReference]:
        return self._by_naics.get(naics)

    def sub_industries(self, naics: str) -> List[IndustryReference]:
        return [
            i for i in self.industries
            if i.naics != naics and i.naics.startswith(naics)
        ]

    def _code_strength(self, industry: IndustryReference, code: str) -> float:
        if industry.naics == code:
            return 1.0
        if code in industry.sic:
            return 0.95
        if code.startswith(industry.naics) or any(code.startswith(s) for s in industry.sic):
            return 0.85
        if industry.naics.startswith(code):
            return 0.75
        return 0.0

    def _keyword_strength(self, industry: IndustryReference, query_tokens: List[str]) -> float:
        if not query_tokens:
            return 0.0
        phrase = " ".join(query_tokens)
        phrases = [self.matcher.normalize(industry.name)] + [
            self.matcher.normalize(k) for k in industry.keywords
        ]
        if phrase in phrases:
            return 1.0

        vocabulary = set()
        for p in phrases:
            vocabulary.update(p.split())
        query_set = set(query_tokens)
        similarity = max(similarity_ratio(phrase, p) for p in phrases)
        distinctive = query_set - GENERIC_TOKENS
        if distinctive and not distinctive & vocabulary:
            # Only a shared generic word; accept near-spellings of a phrase
            return 0.95 * similarity if similarity >= self.TYPO_SIMILARITY else 0.0
        overlap = len(query_set & vocabulary) / len(query_set)
        return max(0.9 * overlap, 0.95 * similarity)

    def resolve(
        self,
        text: str = "",
        codes: Optional[Iterable[str]] = None,
        include_sub_industries: bool = False,
        min_strength: float = 0.5,
        max_candidates: int = 5,
    ) -> List[IndustryMatch]:
        """
        Find the industries a query refers to, strongest first.

        Args:
            text: Free-text query; bare 2-6 digit numbers count as codes
            codes: Explicit NAICS/SIC codes
            include_sub_industries: Also return NAICS descendants of matches
            min_strength: Drop matches weaker than this
            max_candidates: Cap on returned matches (sub-industries excluded)
        """
        code_list = [c.strip() for c in (codes or []) if c and c.strip()]
        words = []
        for token in (text or "").split():
            if CODE_PATTERN.match(token):
                code_list.append(token)
            else:
                words.append(token)
        query_tokens = self.matcher.tokens(" ".join(words))

        best: Dict[str, IndustryMatch] = {}
        for industry in self.industries:
            strength, matched_on = 0.0, "keyword"
            for code in code_list:
                s = self._code_strength(industry, code)
                if s > strength:
                    strength, matched_on = s, "classification_code"
            s = self._keyword_strength(industry, query_tokens)
            if s > strength:
                strength, matched_on = s, "keyword"
            # Detail (5-6 digit) industries need an exact code unless sub-industries are wanted
            if len(industry.naics) > 4 and not include_sub_industries and strength < 0.95:
                continue
            if strength >= min_strength:
                best[industry.naics] = IndustryMatch(industry, round(strength, 4), matched_on)

        ranked = sorted(best.values(), key=lambda m: (-m.strength, m.industry.naics))
        ranked = ranked[:max_candidates]

        if include_sub_industries:
            seen = {m.industry.naics for m in ranked}
            for match in list(ranked):
                for child in self.sub_industries(match.industry.naics):
                    if child.naics in seen:
                        continue
                    seen.add(child.naics)
                    ranked.append(
                        IndustryMatch(
                            child,
                            round(match.strength * self.SUB_INDUSTRY_FACTOR, 4),
                            match.matched_on,
                        )
                    )
            ranked.sort(key=lambda m: (-m.strength, m.industry.naics))

        logger.debug(
            f"Resolved {text!r} (codes={code_list}) to "
            f"{[m.industry.naics for m in ranked]}"
        )
        return ranked


SEARCH_TIPS = [
    "Try a broader term, e.g. 'software' instead of 'enterprise resource planning software'",
    "Search by NAICS code (e.g. 3254) or SIC code (e.g. 2834)",
    "Set include_sub_industries to also match more specific NAICS industries",
    "Leave geography empty or use 'US' - most industry series are US-only",
]
