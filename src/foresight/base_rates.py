"""
base_rates.py
~~~~~~~~~~~~~

The outside view of the forecasting workflow.

Given a question, this module picks a reference class of historically
comparable events and returns its base rate together with a citation, optional
dataset background and a reasoning string for the audit trail. Three modes are
supported:

* ``auto``   – ordered keyword rules; the first rule that fires wins.
* ``custom`` – live research: broad searches for a user-described class, every
  percentage / probability mention is pulled out of the snippets and the
  credibility-weighted median becomes the rate.
* ``manual`` – the caller supplies rate, label and citation directly.

No mode ever raises for lack of data; it falls back to the documented weak
prior instead.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from foresight.credibility import SourceCredibilityRater
from foresight.models import (
    BaseRateMode,
    DatasetMetadata,
    Domain,
    HistoricalExample,
    KeyStudy,
    Question,
    ReferenceClass,
)
from foresight.retrieval import EvidenceRetriever, SearchResult, safe_search
from foresight.utils import clamp_probability

logger = logging.getLogger(__name__)

FALLBACK_RATE = 0.45
PROBABILITY_BOOST = 1.5

DATASETS: Mapping[str, DatasetMetadata] = MappingProxyType(
    {
        "incumbent_reelection": DatasetMetadata(
            description="How often incumbent leaders or parties win when they stand for re-election.",
            sample_size="~2,400 national legislative and executive elections",
            time_period="1945–2023",
            geographic_scope="Global (154 countries)",
            methodology="Share of elections won by an incumbent out of all elections where one stood. "
            "Term-limited incumbents are excluded.",
            caveats=(
                "Lower (~55%) in new democracies",
                "Higher (~75%) in semi-authoritarian contexts",
                "Ignores electoral-system effects",
            ),
            key_studies=(
                KeyStudy(
                    title="The Incumbency Advantage in Elections",
                    authors="Gelman & King",
                    year="1990",
                    finding="Incumbents win 65–72% of the time in established democracies.",
                ),
                KeyStudy(
                    title="Archigos Dataset v4.1",
                    authors="Goemans, Gleditsch & Chiozza",
                    year="2009",
                    finding="Leaders seeking re-election win ~63% of the time.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="Modi, India 2019", outcome="YES"),
                HistoricalExample(event="Macron, France 2022", outcome="YES"),
                HistoricalExample(event="Trump, United States 2020", outcome="NO"),
            ),
        ),
        "snap_election": DatasetMetadata(
            description="How often parliamentary governments dissolve early and call a snap election.",
            sample_size="~890 parliamentary sessions",
            time_period="1946–2022",
            geographic_scope="Parliamentary democracies (68 countries)",
            methodology="Share of parliamentary sessions ending in early dissolution, per year.",
            caveats=(
                "Rises to ~30% when leader approval is below 30%",
                "Higher without fixed-term legislation",
            ),
            key_studies=(
                KeyStudy(
                    title="When Do Leaders Call Early Elections?",
                    authors="Smith, A.",
                    year="2004",
                    finding="18% of parliaments dissolve early in a given 12-month period.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="UK 2017 (May)", outcome="YES"),
                HistoricalExample(event="Japan 2021 (Kishida)", outcome="YES"),
            ),
        ),
        "coup_success": DatasetMetadata(
            description="Probability that a coup is attempted and succeeds within a 12-month window.",
            sample_size="486 coup attempts",
            time_period="1950–2022",
            geographic_scope="Global",
            methodology="Event probability for a state in a given year, adjusted down from the raw "
            "~47% conditional success rate.",
            caveats=(
                "Conditional success rate (~47%) is much higher",
                "Much higher for states with recent coups",
            ),
            key_studies=(
                KeyStudy(
                    title="Determinants of Coup Success",
                    authors="Powell, J. & Thyne, C.",
                    year="2011",
                    finding="~47% of attempts succeed; ~8% yearly chance of a coup in at-risk states.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="Myanmar 2021", outcome="YES"),
                HistoricalExample(event="Turkey 2016", outcome="NO"),
            ),
        ),
        "ceasefire": DatasetMetadata(
            description="How often signed ceasefires hold for at least 12 months.",
            sample_size="313 ceasefire agreements",
            time_period="1946–2020",
            geographic_scope="Global armed conflicts",
            methodology="Share of agreements without major violation for 12 months (UCDP).",
            caveats=("~55% for UN-mediated agreements", "~20% for bilateral agreements without enforcement"),
            key_studies=(
                KeyStudy(
                    title="UCDP Peace Agreement Dataset",
                    authors="Harbom, Högbladh & Wallensteen",
                    year="2006",
                    finding="~35% of ceasefires hold for a year or more.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="Colombia–FARC 2016", outcome="YES"),
                HistoricalExample(event="Minsk II 2015", outcome="NO"),
            ),
        ),
        "nuclear_test": DatasetMetadata(
            description="How often a nuclear-capable or aspirant state conducts a test in a 12-month window.",
            sample_size="2,056 tests globally; 6 DPRK tests since 2006",
            time_period="1945–2023",
            geographic_scope="Nuclear-capable or aspirant states",
            methodology="DPRK test frequency since 2006, adjusted for the post-2017 moratorium.",
            caveats=("Each year without a test lowers near-term probability",),
            key_studies=(
                KeyStudy(
                    title="SIPRI Nuclear Forces Data",
                    authors="SIPRI Yearbook",
                    year="2023",
                    finding="DPRK: 6 tests in 11 years, last in September 2017.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="DPRK test #6, 2017", outcome="YES"),
                HistoricalExample(event="DPRK speculation 2023", outcome="NO"),
            ),
        ),
        "sovereign_default": DatasetMetadata(
            description="How often sovereigns default on external debt.",
            sample_size="320+ default episodes",
            time_period="1800–2022",
            geographic_scope="Global sovereign borrowers",
            methodology="Unconditional annual default probability, adjusted for current stress.",
            caveats=("Ranges from <1% (AAA) to >30% (CCC)", "IMF programmes lower the probability"),
            key_studies=(
                KeyStudy(
                    title="This Time Is Different",
                    authors="Reinhart, C. & Rogoff, K.",
                    year="2009",
                    finding="B-rated sovereigns default at 8–15% a year.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="Sri Lanka 2022", outcome="YES"),
                HistoricalExample(event="Greece 2015", outcome="PARTIAL"),
            ),
        ),
        "military_action": DatasetMetadata(
            description="How often militarised interstate disputes escalate to use of force.",
            sample_size="2,332 MIDs",
            time_period="1816–2014",
            geographic_scope="Global interstate disputes",
            methodology="Share of threat/display-level MIDs reaching hostility level 4–5 within 12 months.",
            caveats=("~30% between contiguous states", "~8% under active nuclear deterrence"),
            key_studies=(
                KeyStudy(
                    title="Correlates of War MID Dataset v5",
                    authors="Palmer et al.",
                    year="2022",
                    finding="~15% of disputes with threats or displays of force escalate.",
                ),
            ),
            historical_examples=(
                HistoricalExample(event="Russia–Ukraine 2021–22", outcome="YES"),
                HistoricalExample(event="US–Iran 2019–20", outcome="NO"),
            ),
        ),
        "legislation_passes": DatasetMetadata(
            description="How often government-introduced bills become law.",
            sample_size="~12,000 bills across 40 legislatures",
            time_period="1990–2022",
            geographic_scope="OECD and major democracies",
            methodology="Share of government bills passed into law.",
            caveats=("~25% for opposition bills", "~80% for budget bills"),
            key_studies=(
                KeyStudy(
                    title="Veto Players",
                    authors="Tsebelis, G.",
                    year="2002",
                    finding="Majority-backed bills pass 55–65% of the time.",
                ),
            ),
            historical_examples=(HistoricalExample(event="US Inflation Reduction Act 2022", outcome="YES"),),
        ),
        "generic_political": DatasetMetadata(
            description="Weak prior for political events without a more specific reference class.",
            sample_size="~25,000 GJP tournament questions",
            time_period="2011–2015",
            geographic_scope="Global geopolitical events",
            methodology="Median YES-resolution rate of Good Judgment Project questions.",
            caveats=(
                "Weak prior: the inside view should dominate",
                "Tournament questions were designed to be uncertain",
            ),
            key_studies=(
                KeyStudy(
                    title="Superforecasting",
                    authors="Tetlock, P.E. & Gardner, D.",
                    year="2015",
                    finding="About 45% of GJP questions resolved YES.",
                ),
            ),
        ),
        "generic_sports": DatasetMetadata(
            description="Home-team win rate across major sports.",
            sample_size="~180,000 matches",
            time_period="1990–2023",
            geographic_scope="Global major leagues",
            methodology="Home win share across NFL, NBA, MLB, football, rugby and cricket.",
            caveats=("Smaller without crowds", "Smaller in playoffs", "~63% football, ~54% baseball"),
            key_studies=(
                KeyStudy(
                    title="Home Advantage in Sport",
                    authors="Courneya & Carron",
                    year="1992",
                    finding="Home teams win 58–62% of matches.",
                ),
            ),
        ),
    }
)


@dataclass(frozen=True)
class ReferenceClassRule:
    """Keyword rule mapping question text to a reference class.

    ``triggers`` is a tuple of keyword groups. The rule fires when every
    keyword of at least one group occurs in the lower-cased question.
    """

    key: str
    triggers: tuple[tuple[str, ...], ...]
    reference_class: ReferenceClass

    def match(self, text: str) -> tuple[str, ...] | None:
        q = text.lower()
        for group in self.triggers:
            if all(word in q for word in group):
                return group
        return None


def _rule(key: str, triggers: tuple[tuple[str, ...], ...], rate: float, label: str, source: str, dataset: str) -> ReferenceClassRule:
    return ReferenceClassRule(
        key=key,
        triggers=triggers,
        reference_class=ReferenceClass(rate=rate, label=label, source_citation=source, dataset=DATASETS[dataset]),
    )


# Order is priority: the first matching rule wins.
DEFAULT_RULES: tuple[ReferenceClassRule, ...] = (
    _rule(
        "incumbent_reelection",
        (("re-elect",), ("incumbent", "win")),
        0.65,
        "Incumbent wins re-election",
        "Gelman & King (1990); Archigos Dataset v4.1",
        "incumbent_reelection",
    ),
    _rule(
        "snap_election",
        (("snap election",), ("early election",), ("dissolve parliament",), ("early dissolution",)),
        0.18,
        "Snap/early election called",
        "Smith (2004); UCDP Parliamentary Dataset",
        "snap_election",
    ),
    _rule(
        "coup",
        (("coup",), ("overthrow",), ("military takeover",), ("junta",)),
        0.08,
        "Coup attempt succeeds (12-month window)",
        "Powell & Thyne Coup Dataset (2011, updated 2022)",
        "coup_success",
    ),
    _rule(
        "ceasefire",
        (("ceasefire",), ("peace deal",), ("peace agreement",), ("truce",)),
        0.35,
        "Ceasefire/peace deal holds 12+ months",
        "UCDP Peace Agreement Dataset; Harbom et al. (2006)",
        "ceasefire",
    ),
    _rule(
        "nuclear_test",
        (("nuclear",), ("weapons test",), ("dprk",), ("north korea",)),
        0.28,
        "Nuclear/missile test conducted (12-month window)",
        "SIPRI Nuclear Forces Data; 38North DPRK Assessment",
        "nuclear_test",
    ),
    _rule(
        "sovereign_default",
        (("default",), ("debt crisis",), ("sovereign debt",)),
        0.12,
        "Sovereign debt default",
        "Reinhart & Rogoff (2009); IMF Sovereign Default Dataset",
        "sovereign_default",
    ),
    _rule(
        "military_action",
        (("invasion",), ("military action",), ("military attack",), ("war",), ("strike",)),
        0.15,
        "Military action initiated",
        "Correlates of War MID Dataset v5 (Palmer et al., 2022)",
        "military_action",
    ),
    _rule(
        "legislation",
        (("pass",), ("legislation",), ("bill",), ("law",), ("reform",), ("act",)),
        0.55,
        "Government legislation passes",
        "Tsebelis (2002); Comparative Legislative Studies Dataset",
        "legislation_passes",
    ),
    _rule(
        "leader_exit",
        (("resign",), ("step down",), ("removed",)),
        0.22,
        "Leader resigns or is removed",
        "Archigos Dataset v4.1 (Goemans et al., 2009)",
        "incumbent_reelection",
    ),
    _rule(
        "election_win",
        (("win", "election"),),
        0.52,
        "Candidate wins election",
        "Aggregate election outcome data; GJP calibration",
        "generic_political",
    ),
)

SPORTS_CLASS = ReferenceClass(
    rate=0.58,
    label="Home team wins (generic sports)",
    source_citation="Courneya & Carron (1992); Multi-sport league data 1990–2023",
    dataset=DATASETS["generic_sports"],
)

FALLBACK_CLASS = ReferenceClass(
    rate=FALLBACK_RATE,
    label="Generic political event occurs",
    source_citation="Good Judgment Project tournament data (Tetlock & Gardner, 2015)",
    dataset=DATASETS["generic_political"],
)

# Broad framings for live research; {cls} is the user's class description.
CUSTOM_CLASS_QUERIES: tuple[str, ...] = (
    "{cls} historical base rate percentage academic study",
    "{cls} statistics dataset policy database",
    "{cls} forecast probability metaculus good judgment",
    "{cls} wikipedia history list of cases",
)

_PERCENT_RE = re.compile(r"(?<![\d.,])(\d{1,3}(?:\.\d+)?)\s*(?:%|percent\b|per cent\b)", re.IGNORECASE)
_DECIMAL_PROB_RE = re.compile(
    r"\b(?:probability|chance|likelihood|odds)\b[^.\d%]{0,30}?(0?\.\d+)(?!\d|\s*%)",
    re.IGNORECASE,
)
_PROBABILITY_CUES = ("probability", "chance", "likelihood", "odds", "likely", "base rate")
_CUE_WINDOW = 40


@dataclass(frozen=True)
class RateMention:
    value: float  # 0–1
    probability_phrased: bool
    url: str


def extract_mentions(text: str, url: str = "") -> list[RateMention]:
    """Find every percentage-like or probability-like number in *text*.

    Percentages count as probability-phrased when a cue word ("chance",
    "odds", ...) appears shortly before them. Bare decimals are only picked up
    after such a cue. Values outside the open interval (0, 1) are dropped.
    """
    mentions: list[RateMention] = []
    for m in _PERCENT_RE.finditer(text):
        value = float(m.group(1)) / 100
        if not 0 < value < 1:
            continue
        window = text[max(0, m.start() - _CUE_WINDOW) : m.start()].lower()
        phrased = any(cue in window for cue in _PROBABILITY_CUES)
        mentions.append(RateMention(value=value, probability_phrased=phrased, url=url))
    for m in _DECIMAL_PROB_RE.finditer(text):
        value = float(m.group(1))
        if 0 < value < 1:
            mentions.append(RateMention(value=value, probability_phrased=True, url=url))
    return mentions


def weighted_median(values: list[tuple[float, float]]) -> float:
    """Lower weighted median of ``(value, weight)`` pairs."""
    if not values:
        raise ValueError("weighted_median() needs at least one value")
    ordered = sorted(values)
    half = sum(w for _, w in ordered) / 2
    running = 0.0
    for value, weight in ordered:
        running += weight
        if running >= half:
            return value
    return ordered[-1][0]


class ReferenceClassSelector:
    """Choose the outside view for a question.

    Parameters
    ----------
    retriever :
        Search backend for custom-class research. Optional for the other modes.
    rater :
        Credibility rater used to weight research mentions.
    rules :
        Ordered keyword rules for auto mode.
    """

    def __init__(
        self,
        retriever: EvidenceRetriever | None = None,
        rater: SourceCredibilityRater | None = None,
        *,
        rules: tuple[ReferenceClassRule, ...] = DEFAULT_RULES,
        sports_class: ReferenceClass = SPORTS_CLASS,
        fallback_class: ReferenceClass = FALLBACK_CLASS,
        custom_queries: tuple[str, ...] = CUSTOM_CLASS_QUERIES,
        probability_boost: float = PROBABILITY_BOOST,
    ) -> None:
        self.retriever = retriever
        self.rater = rater or SourceCredibilityRater()
        self.rules = rules
        self.sports_class = sports_class
        self.fallback_class = fallback_class
        self.custom_queries = custom_queries
        self.probability_boost = probability_boost

    def select(self, question: Question) -> ReferenceClass:
        if question.mode is BaseRateMode.MANUAL:
            return self.manual(question.manual_rate or 0.0, question.manual_label, question.manual_source)
        if question.mode is BaseRateMode.CUSTOM:
            return self.custom(question.reference_class or "")
        return self.auto(question.text, question.domain)

    def auto(self, text: str, domain: Domain = Domain.POLITICS) -> ReferenceClass:
        if domain is Domain.SPORTS:
            return self.sports_class.model_copy(
                update={"reasoning": "Sports question: home-advantage reference class applies regardless of wording."}
            )
        for rule in self.rules:
            group = rule.match(text)
            if group is not None:
                logger.debug("Reference class rule %s matched on %s", rule.key, group)
                keywords = " + ".join(f"'{w}'" for w in group)
                return rule.reference_class.model_copy(
                    update={
                        "reasoning": f"Question mentions {keywords}; first matching rule is "
                        f"'{rule.key}' with a historical rate of {rule.reference_class.rate:.0%}."
                    }
                )
        return self.fallback_class.model_copy(
            update={
                "reasoning": "No specific reference class matched; using the generic weak prior of "
                f"{self.fallback_class.rate:.0%}."
            }
        )

    def manual(self, rate: float, label: str = "", source: str = "") -> ReferenceClass:
        clamped = clamp_probability(rate)
        reasoning = f"Manually entered base rate of {clamped:.1%}."
        if clamped != rate:
            reasoning += f" Entered value {rate} was clamped to [1%, 99%]."
        return ReferenceClass(
            rate=clamped,
            label=label.strip() or "Manual base rate",
            source_citation=source.strip() or "User supplied",
            reasoning=reasoning,
        )

    def _fallback(self, description: str, reasoning: str) -> ReferenceClass:
        return ReferenceClass(
            rate=FALLBACK_RATE,
            label=f"Custom: {description}",
            source_citation=self.fallback_class.source_citation,
            dataset=self.fallback_class.dataset,
            reasoning=reasoning,
        )

    def research(self, description: str) -> list[SearchResult]:
        """Run the broad, date-unconstrained query battery for *description*."""
        if self.retriever is None:
            return []
        results: list[SearchResult] = []
        for template in self.custom_queries:
            results.extend(safe_search(self.retriever, template.format(cls=description), None))
        return results

    def custom(self, description: str, results: list[SearchResult] | None = None) -> ReferenceClass:
        """Derive a base rate for a user-described class from live research.

        *results* may be supplied when the research was already run elsewhere
        (e.g. concurrently with factor retrieval).
        """
        description = description.strip()
        if results is None:
            results = self.research(description)

        if not results:
            return self._fallback(
                description,
                f"No search results for '{description}'; using the fallback weak prior of {FALLBACK_RATE:.0%}.",
            )

        mentions: list[RateMention] = []
        for r in results:
            mentions.extend(extract_mentions(f"{r.title} {r.description}", r.url))

        if not mentions:
            return self._fallback(
                description,
                f"Found {len(results)} sources for '{description}' but none quoted a rate; "
                f"using the fallback weak prior of {FALLBACK_RATE:.0%}.",
            )

        weighted = [
            (m.value, self.rater.rate(m.url) * (self.probability_boost if m.probability_phrased else 1.0))
            for m in mentions
        ]
        rate = clamp_probability(weighted_median(weighted))
        sources = list(dict.fromkeys(m.url for m in mentions))
        phrased = sum(m.probability_phrased for m in mentions)
        logger.info("Custom class %r: %s mentions from %s sources → %.3f", description, len(mentions), len(sources), rate)

        return ReferenceClass(
            rate=rate,
            label=f"Custom: {description}",
            source_citation=f"Live research: {len(sources)} sources",
            dataset=DatasetMetadata(
                description=f"Live web research for '{description}'.",
                sample_size=f"{len(mentions)} numeric mentions from {len(sources)} sources",
                time_period="Unconstrained",
                geographic_scope="As reported by sources",
                methodology="Credibility-weighted median of every percentage or probability quoted in "
                f"search snippets; probability-phrased mentions weighted ×{self.probability_boost}.",
                caveats=("Snippet numbers may describe related but different quantities",),
            ),
            reasoning=f"Credibility-weighted median of {len(mentions)} mentions across {len(sources)} sources "
            f"({phrased} probability-phrased): {rate:.1%}.",
        )
