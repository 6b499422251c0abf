"""Inside-view factor scoring.

Every domain has a fixed set of factors. For each factor the question is
searched with each of the factor's query suffixes; the merged documents are
scored with a simple keyword lexicon and the score is discounted (or boosted)
by the average credibility of the sources.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from foresight.credibility import SourceCredibilityRater, tier_label
from foresight.models import Domain, Evidence, Factor
from foresight.retrieval import EvidenceRetriever, SearchResult, safe_search
from foresight.utils import clamp

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 5.0
SENTIMENT_STEP = 0.4
MAX_EVIDENCE = 6
EXCERPT_CHARS = 220
DEFAULT_AVG_TIER = 0.5


@dataclass(frozen=True)
class FactorSpec:
    key: str
    label: str
    queries: tuple[str, ...]


DEFAULT_WEIGHTS: Mapping[Domain, Mapping[str, float]] = MappingProxyType(
    {
        Domain.POLITICS: MappingProxyType(
            {
                "polling_sentiment": 20,
                "political_stability": 20,
                "geopolitical_external": 20,
                "economic_indicators": 15,
                "expert_consensus": 15,
                "media_narrative": 10,
            }
        ),
        Domain.SPORTS: MappingProxyType(
            {
                "recent_form": 25,
                "head_to_head": 15,
                "home_away": 15,
                "player_availability": 20,
                "offensive_efficiency": 12.5,
                "defensive_efficiency": 12.5,
            }
        ),
    }
)

DOMAIN_FACTORS: Mapping[Domain, tuple[FactorSpec, ...]] = MappingProxyType(
    {
        Domain.POLITICS: (
            FactorSpec(
                "polling_sentiment",
                "Polling & Public Sentiment",
                ("poll survey approval rating public opinion", "polling data election sentiment"),
            ),
            FactorSpec(
                "political_stability",
                "Political Stability & Leadership",
                ("government stability opposition protests leadership crisis", "regime incumbent party strength"),
            ),
            FactorSpec(
                "geopolitical_external",
                "Geopolitical & External Pressure",
                (
                    "international pressure sanctions foreign policy diplomacy",
                    "external actors interference proxy influence",
                ),
            ),
            FactorSpec(
                "economic_indicators",
                "Economic Indicators & Coercion",
                (
                    "economy GDP inflation unemployment growth sanctions trade",
                    "economic coercion pressure aid conditionality",
                ),
            ),
            FactorSpec(
                "expert_consensus",
                "Expert Consensus & Prediction Markets",
                (
                    "prediction market forecast expert analysis odds analyst",
                    "think tank assessment intelligence forecast",
                ),
            ),
            FactorSpec(
                "media_narrative",
                "Media Narrative & Information Environment",
                (
                    "media coverage narrative propaganda information environment",
                    "news sentiment framing public discourse",
                ),
            ),
        ),
        Domain.SPORTS: (
            FactorSpec("recent_form", "Recent Form", ("recent form results last five matches", "winning streak form guide")),
            FactorSpec("head_to_head", "Head-to-Head Record", ("head to head record history", "previous meetings rivalry results")),
            FactorSpec("home_away", "Home/Away Advantage", ("home record away record venue", "home crowd advantage stadium")),
            FactorSpec(
                "player_availability",
                "Player Availability & Injuries",
                ("injury news team news suspension", "squad lineup fitness doubt"),
            ),
            FactorSpec(
                "offensive_efficiency",
                "Offensive Efficiency",
                ("attack scoring goals points per game", "offensive statistics efficiency"),
            ),
            FactorSpec(
                "defensive_efficiency",
                "Defensive Efficiency",
                ("defence conceded clean sheets points allowed", "defensive statistics record"),
            ),
        ),
    }
)

POSITIVE_WORDS: tuple[str, ...] = (
    "win", "lead", "ahead", "strong", "likely", "confident", "surge", "favor",
    "advantage", "growing", "stable", "secure", "support", "approval", "boost", "gain",
)
NEGATIVE_WORDS: tuple[str, ...] = (
    "lose", "behind", "weak", "unlikely", "crisis", "collapse", "scandal", "fail",
    "drop", "decline", "unstable", "risk", "threat", "protest", "opposition", "pressure",
)


def _lexicon_patterns(words: Sequence[str]) -> tuple[re.Pattern[str], ...]:
    # Word-boundary prefix only: "win" also counts "winning", "wins".
    return tuple(re.compile(r"\b" + re.escape(w), re.IGNORECASE) for w in words)


def resolve_weights(domain: Domain, *overrides: Mapping[str, float] | None) -> dict[str, float]:
    """Domain defaults overlaid with each override mapping in turn."""
    weights = dict(DEFAULT_WEIGHTS[domain])
    for override in overrides:
        if override:
            weights.update({k: float(v) for k, v in override.items()})
    return weights


def merge_results(batches: Sequence[Sequence[SearchResult]], limit: int = MAX_EVIDENCE) -> list[SearchResult]:
    """Concatenate result batches, drop repeated URLs, keep the first *limit*."""
    seen: set[str] = set()
    unique: list[SearchResult] = []
    for batch in batches:
        for r in batch:
            if r.url in seen:
                continue
            seen.add(r.url)
            unique.append(r)
    return unique[:limit]


class FactorScorer:
    """Score inside-view factors from retrieved documents.

    Parameters
    ----------
    retriever :
        Search backend; failures are absorbed as "no evidence".
    rater :
        Source credibility rater.
    positive_words / negative_words :
        Sentiment lexicons; each hit moves the score by ``step``.
    """

    def __init__(
        self,
        retriever: EvidenceRetriever,
        rater: SourceCredibilityRater | None = None,
        *,
        positive_words: Sequence[str] = POSITIVE_WORDS,
        negative_words: Sequence[str] = NEGATIVE_WORDS,
        step: float = SENTIMENT_STEP,
        max_evidence: int = MAX_EVIDENCE,
    ) -> None:
        self.retriever = retriever
        self.rater = rater or SourceCredibilityRater()
        self._positive = _lexicon_patterns(positive_words)
        self._negative = _lexicon_patterns(negative_words)
        self.step = step
        self.max_evidence = max_evidence

    def sentiment_score(self, texts: Sequence[str]) -> float:
        """Lexicon score on [1, 10]; no text at all is neutral."""
        if not texts:
            return NEUTRAL_SCORE
        combined = " ".join(texts)
        positive = sum(len(p.findall(combined)) for p in self._positive)
        negative = sum(len(p.findall(combined)) for p in self._negative)
        return clamp(NEUTRAL_SCORE + (positive - negative) * self.step, 1, 10)

    def to_evidence(self, result: SearchResult) -> Evidence:
        tier = self.rater.rate(result.url)
        return Evidence(
            title=result.title,
            url=result.url,
            excerpt=(result.description or "")[:EXCERPT_CHARS],
            credibility_tier=tier,
            tier_label=tier_label(tier),
        )

    def queries_for(self, spec: FactorSpec, question_text: str) -> list[str]:
        return [f"{question_text} {suffix}" for suffix in spec.queries]

    def retrieve(self, spec: FactorSpec, question_text: str, lookback_days: int) -> list[list[SearchResult]]:
        return [safe_search(self.retriever, q, lookback_days) for q in self.queries_for(spec, question_text)]

    def build_factor(self, spec: FactorSpec, weight: float, batches: Sequence[Sequence[SearchResult]]) -> Factor:
        """Turn the raw result batches for one factor into a scored ``Factor``."""
        unique = merge_results(batches, self.max_evidence)
        evidence = tuple(self.to_evidence(r) for r in unique)

        raw = self.sentiment_score([f"{r.title} {r.description}" for r in unique])
        avg_tier = sum(e.credibility_tier for e in evidence) / len(evidence) if evidence else DEFAULT_AVG_TIER
        adjusted = clamp(raw * (0.7 + avg_tier * 0.3), 1, 10)

        logger.debug("Factor %s: %s docs raw=%.2f tier=%.2f adjusted=%.2f", spec.key, len(unique), raw, avg_tier, adjusted)
        return Factor(
            key=spec.key,
            label=spec.label,
            weight=weight,
            raw_score=raw,
            adjusted_score=adjusted,
            evidence=evidence,
            article_count=len(unique),
            avg_tier=avg_tier,
        )

    def score(self, spec: FactorSpec, weight: float, question_text: str, lookback_days: int) -> Factor:
        """Retrieve and score a single factor."""
        return self.build_factor(spec, weight, self.retrieve(spec, question_text, lookback_days))
