"""Forecast aggregation workflow.

A run moves through five stages, each feeding the next:

1. Parse the question.
2. Outside view: base rate of the selected reference class.
3. Inside view: weighted factor scores from retrieved evidence.
4. Blend outside and inside views into the final probability.
5. Derive a confidence interval from the volume of evidence.

:func:`run_forecast` is a generator of :class:`~foresight.models.TraceEvent`
records so any transport (a list, a console, a server-sent-event stream) can
replay the arithmetic as it happens. The last event carries the
:class:`~foresight.models.ForecastResult`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from foresight.base_rates import ReferenceClassSelector
from foresight.config import settings
from foresight.credibility import SourceCredibilityRater
from foresight.factors import DOMAIN_FACTORS, FactorScorer, resolve_weights
from foresight.models import (
    BaseRateMode,
    BlendMode,
    Factor,
    ForecastResult,
    Question,
    ReferenceClass,
    TraceEvent,
    TraceKind,
)
from foresight.retrieval import EvidenceRetriever, SearchResult, safe_search
from foresight.utils import clamp_pct

logger = logging.getLogger(__name__)

HIGH_QUALITY_ARTICLES = 10
MEDIUM_QUALITY_ARTICLES = 5
CI_MARGINS: Mapping[str, float] = {"HIGH": 6, "MEDIUM": 9, "LOW": 13}
OUTSIDE_SHARE_BY_QUALITY: Mapping[str, float] = {"HIGH": 0.35, "MEDIUM": 0.45, "LOW": 0.55}


def key_entities(text: str, limit: int = 6) -> str:
    """First *limit* words longer than three characters. Display only."""
    return " ".join([w for w in text.split() if len(w) > 3][:limit])  # noqa: PLR2004


def outside_view_pct(reference_class: ReferenceClass) -> float:
    return reference_class.rate * 100


def factor_pct(factor: Factor) -> float:
    return (factor.adjusted_score / 10) * 100


def weighted_term(factor: Factor) -> float:
    return (factor.weight / 100) * factor_pct(factor)


def inside_view(factors: list[Factor]) -> tuple[float, float]:
    """Return ``(weighted_sum, display_average)`` for the inside view.

    The weighted sum feeds the blend; the simple average over factors is only
    reported.
    """
    weighted_sum = sum(weighted_term(f) for f in factors)
    average = weighted_sum / len(factors) if factors else 0.0
    return weighted_sum, average


def blend_n_plus_one(outside_pct: float, inside_weighted_sum: float, n_factors: int) -> float:
    """Treat the outside view as one more full-weight factor and divide by N + 1."""
    return clamp_pct((outside_pct + inside_weighted_sum) / (n_factors + 1))


def blend_volume_split(outside_pct: float, factors: list[Factor], quality: str) -> tuple[float, float, float]:
    """Split weight between outside and inside views by evidence volume.

    Returns ``(final_pct, outside_share, inside_pct)`` where the inside
    estimate is the weight-normalised factor average.
    """
    share = OUTSIDE_SHARE_BY_QUALITY[quality]
    total_weight = sum(f.weight for f in factors)
    if total_weight > 0:
        inside_pct = sum(weighted_term(f) for f in factors) * 100 / total_weight
    else:
        inside_pct = sum(factor_pct(f) for f in factors) / len(factors) if factors else 50.0
    final = clamp_pct(share * outside_pct + (1 - share) * inside_pct)
    return final, share, inside_pct


def evidence_quality(article_count: int) -> str:
    if article_count >= HIGH_QUALITY_ARTICLES:
        return "HIGH"
    if article_count >= MEDIUM_QUALITY_ARTICLES:
        return "MEDIUM"
    return "LOW"


def confidence_interval(final_pct: float, article_count: int) -> tuple[str, float, float, float]:
    """Return ``(quality, margin, low, high)``; fewer articles widen the band."""
    quality = evidence_quality(article_count)
    margin = CI_MARGINS[quality]
    return quality, margin, clamp_pct(final_pct - margin), clamp_pct(final_pct + margin)


def _info(message: str, **data: object) -> TraceEvent:
    return TraceEvent(kind=TraceKind.INFO, message=message, data=data)


def _event(kind: TraceKind, message: str, **data: object) -> TraceEvent:
    return TraceEvent(kind=kind, message=message, data=data)


def run_forecast(  # noqa: PLR0913, PLR0915
    question: Question,
    retriever: EvidenceRetriever,
    *,
    weights: Mapping[str, float] | None = None,
    blend: BlendMode = BlendMode.N_PLUS_ONE,
    rater: SourceCredibilityRater | None = None,
    selector: ReferenceClassSelector | None = None,
    scorer: FactorScorer | None = None,
    max_workers: int = settings.SEARCH_MAX_WORKERS,
) -> Iterator[TraceEvent]:
    """Run the forecasting workflow for a single question.

    Retrievals for every factor query (and the custom reference-class
    research, if any) are submitted to a bounded thread pool up front and
    joined in configuration order, so the trace is identical from run to run
    for identical search results. Closing the generator early cancels any
    retrieval that has not started.

    Args:
        question: Validated question.
        retriever: Search backend shared by the selector and the scorer.
        weights: Factor-weight overrides in percentage points, merged over the
            domain defaults.
        blend: Blend formula; N + 1 unless asked otherwise.
        rater / selector / scorer: Injected collaborators, built from
            *retriever* when omitted.
        max_workers: Concurrency cap for retrievals.

    Yields:
        Trace events; the final one has ``kind == TraceKind.FINAL`` and a
        ``result``.
    """
    rater = rater or SourceCredibilityRater()
    selector = selector or ReferenceClassSelector(retriever, rater)
    scorer = scorer or FactorScorer(retriever, rater)

    # 1. Parse
    logger.info("Forecasting %r (%s, %s days)", question.text, question.domain.value, question.news_window)
    yield _info("Parsing question...")
    yield _info(f"Key entities: {key_entities(question.text)}")
    yield _info(f"Domain: {question.domain.value} | News window: {question.news_window} days")

    specs = DOMAIN_FACTORS[question.domain]
    factor_weights = resolve_weights(question.domain, weights)
    weight_total = sum(factor_weights.get(s.key, 0.0) for s in specs)
    if abs(weight_total - 100) > 1e-9:  # noqa: PLR2004
        logger.warning("Factor weights for %s sum to %.2f, not 100", question.domain.value, weight_total)

    pool = ThreadPoolExecutor(max_workers=max(1, max_workers))
    try:
        research: Future[list[SearchResult]] | None = None
        if question.mode is BaseRateMode.CUSTOM:
            research = pool.submit(selector.research, question.reference_class or "")
        searches: dict[str, list[Future[list[SearchResult]]]] = {
            spec.key: [
                pool.submit(safe_search, scorer.retriever, q, question.news_window)
                for q in scorer.queries_for(spec, question.text)
            ]
            for spec in specs
        }

        # 2. Outside view
        if research is not None:
            yield _event(TraceKind.SEARCH, f"Researching reference class: {question.reference_class}...")
            reference_class = selector.custom(question.reference_class or "", research.result())
        else:
            reference_class = selector.select(question)
        outside_pct = outside_view_pct(reference_class)

        yield _event(TraceKind.BLEND, "── Outside View (Base Rate) ──")
        yield _event(TraceKind.BLEND, f'Reference class: "{reference_class.label}"')
        yield _event(TraceKind.BLEND, f"Dataset: {reference_class.source_citation}")
        yield _event(TraceKind.BLEND, f"Method: {reference_class.reasoning}")
        yield _event(
            TraceKind.BLEND,
            f"Base rate: {reference_class.rate:.4f} × 100 = {outside_pct:.2f}% outside view",
            rate=reference_class.rate,
            outside_view_pct=outside_pct,
        )

        # 3. Inside view
        factors: list[Factor] = []
        total_articles = 0
        for spec in specs:
            weight = factor_weights.get(spec.key, 0.0)
            yield _event(TraceKind.SEARCH, f"Searching: {spec.label} (weight: {weight:g}%)...")
            factor = scorer.build_factor(spec, weight, [f.result() for f in searches[spec.key]])
            total_articles += factor.article_count
            factors.append(factor)
            yield _event(TraceKind.SEARCH, f"  → {factor.article_count} articles found")
            yield _event(
                TraceKind.SCORE,
                f"  → Raw score: {factor.raw_score:.1f}/10 | Avg source tier: {factor.avg_tier:.2f} | "
                f"Tier-adjusted: {factor.raw_score:.1f} × (0.7 + {factor.avg_tier:.2f} × 0.3) = "
                f"{factor.adjusted_score:.2f}/10",
                factor=spec.key,
                raw_score=factor.raw_score,
                adjusted_score=factor.adjusted_score,
            )
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    yield _event(TraceKind.WEIGHT, "── Inside View — Factor Scores ──")
    for f in factors:
        yield _event(
            TraceKind.WEIGHT,
            f"  {f.label}: score {f.adjusted_score:.2f}/10 → {factor_pct(f):.1f}% × {f.weight:g}% weight = "
            f"{weighted_term(f):.2f}",
        )
    inside_sum, inside_avg = inside_view(factors)
    yield _event(TraceKind.WEIGHT, f"  Weighted inside sum: {inside_sum:.2f}%", inside_weighted_sum=inside_sum)

    # 4. Final blend
    n = len(factors)
    quality = evidence_quality(total_articles)
    yield _event(TraceKind.BLEND, "── Final Aggregation ──")
    if blend is BlendMode.VOLUME_SPLIT:
        final_pct, share, inside_pct = blend_volume_split(outside_pct, factors, quality)
        descriptor = f"Outside:{share:.0%} / Inside:{1 - share:.0%}"
        yield _event(TraceKind.BLEND, f"Formula: outside × {share:.2f} + inside × {1 - share:.2f} ({quality} evidence volume)")
        yield _event(TraceKind.BLEND, f"Inside (weight-normalised): {inside_pct:.2f}%")
        yield _event(
            TraceKind.BLEND,
            f"Final: {outside_pct:.2f} × {share:.2f} + {inside_pct:.2f} × {1 - share:.2f} = {final_pct:.2f}%",
            final_pct=final_pct,
        )
    else:
        numerator = outside_pct + inside_sum
        final_pct = blend_n_plus_one(outside_pct, inside_sum, n)
        descriptor = f"Outside:1 + Inside:{n} / {n + 1}"
        yield _event(TraceKind.BLEND, f"Formula: (Outside × 1) + (Σ inside factors × weight) ÷ ({n} factors + 1)")
        yield _event(TraceKind.BLEND, f"Numerator: {outside_pct:.2f} + {inside_sum:.2f} = {numerator:.2f}")
        yield _event(TraceKind.BLEND, f"Divisor: {n} inside factors + 1 outside = {n + 1}")
        yield _event(TraceKind.BLEND, f"Final: {numerator:.2f} ÷ {n + 1} = {final_pct:.2f}%", final_pct=final_pct)

    # 5. Confidence interval
    quality, margin, low, high = confidence_interval(final_pct, total_articles)
    yield _event(TraceKind.BLEND, f"News quality: {quality} ({total_articles} articles) → CI margin ±{margin:g}%")
    yield _event(TraceKind.BLEND, f"Confidence interval (90%): {low:.0f}% – {high:.0f}%")

    result = ForecastResult(
        final_probability=final_pct,
        confidence_low=low,
        confidence_high=high,
        outside_view_pct=outside_pct,
        inside_view_pct=inside_avg,
        blend_descriptor=descriptor,
        blend_mode=blend,
        factors=tuple(factors),
        reference_class=reference_class,
        total_article_count=total_articles,
        quality=quality,
    )
    logger.info("Forecast for %r: %.2f%% [%.0f, %.0f]", question.text, final_pct, low, high)
    yield TraceEvent(
        kind=TraceKind.FINAL,
        message=f"✓ RESULT: {final_pct:.1f}% | 90% CI: {low:.0f}%–{high:.0f}%",
        result=result,
    )


@dataclass
class ForecastRun:
    """A finished run: the result plus the full trace that produced it."""

    result: ForecastResult
    trace: list[TraceEvent] = field(default_factory=list)


def forecast(question: Question, retriever: EvidenceRetriever, **kwargs: object) -> ForecastRun:
    """Drain :func:`run_forecast` into a list and return the final result."""
    trace = list(run_forecast(question, retriever, **kwargs))  # type: ignore[arg-type]
    final = trace[-1]
    if final.result is None:  # pragma: no cover
        raise RuntimeError("forecast run ended without a result")
    return ForecastRun(result=final.result, trace=trace)
