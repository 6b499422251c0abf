from __future__ import annotations

import logging

import pytest

from foresight.factors import DOMAIN_FACTORS
from foresight.models import BaseRateMode, BlendMode, Domain, Question, TraceKind
from foresight.retrieval import SearchResult
from foresight.workflow import (
    blend_n_plus_one,
    confidence_interval,
    forecast,
    key_entities,
    run_forecast,
)

NEUTRAL_DOC = SearchResult(
    title="Officials meet in the capital",
    url="https://www.reuters.com/world/neutral",
    description="Talks continued on Tuesday.",
)
SNAP = Question(text="Will Japan hold a snap election before 2026?")


def test_key_entities() -> None:
    assert key_entities(SNAP.text) == "Will Japan hold snap election before"


def test_blend_n_plus_one_clamps() -> None:
    assert blend_n_plus_one(99, 1000, 0) == 99
    assert blend_n_plus_one(0, 0, 6) == 1
    assert blend_n_plus_one(40, 60, 1) == 50


@pytest.mark.parametrize(
    ("articles", "quality", "margin", "low", "high"),
    [
        (10, "HIGH", 6, 44, 56),
        (5, "MEDIUM", 9, 41, 59),
        (4, "LOW", 13, 37, 63),
    ],
)
def test_confidence_interval(articles: int, quality: str, margin: float, low: float, high: float) -> None:
    assert confidence_interval(50, articles) == (quality, margin, low, high)


def test_confidence_interval_clamped() -> None:
    _, _, low, high = confidence_interval(3, 0)
    assert low == 1
    assert high == 16


def test_end_to_end_neutral_evidence(neutral_retriever) -> None:
    run = forecast(SNAP, neutral_retriever)
    result = run.result

    assert result.outside_view_pct == pytest.approx(18)
    assert [f.key for f in result.factors] == [s.key for s in DOMAIN_FACTORS[Domain.POLITICS]]
    assert all(f.adjusted_score == pytest.approx(5.0) for f in result.factors)
    assert result.total_article_count == 6
    assert result.final_probability == pytest.approx(68 / 7)
    assert result.quality == "MEDIUM"
    assert result.confidence_low == 1
    assert result.confidence_high == pytest.approx(68 / 7 + 9)
    assert result.blend_descriptor == "Outside:1 + Inside:6 / 7"
    assert result.blend_mode is BlendMode.N_PLUS_ONE


def test_trace_shape(neutral_retriever) -> None:
    trace = list(run_forecast(SNAP, neutral_retriever))

    assert [e.message for e in trace[:3]] == [
        "Parsing question...",
        "Key entities: Will Japan hold snap election before",
        "Domain: POLITICS | News window: 14 days",
    ]
    assert trace[-1].kind is TraceKind.FINAL
    assert trace[-1].result is not None
    assert all(e.result is None for e in trace[:-1])
    assert sum(e.kind is TraceKind.SCORE for e in trace) == 6
    searching = [e.message for e in trace if e.message.startswith("Searching:")]
    assert searching[0] == "Searching: Polling & Public Sentiment (weight: 20%)..."
    assert any("Weighted inside sum: 50.00%" in e.message for e in trace)


def test_repeat_runs_are_identical(neutral_retriever) -> None:
    first = forecast(SNAP, neutral_retriever)
    second = forecast(SNAP, neutral_retriever)
    assert first.result == second.result
    assert [e.message for e in first.trace] == [e.message for e in second.trace]


def test_no_evidence_is_low_quality(empty_retriever) -> None:
    result = forecast(SNAP, empty_retriever).result
    assert all(f.adjusted_score == pytest.approx(4.25) for f in result.factors)
    assert result.total_article_count == 0
    assert result.quality == "LOW"
    assert result.final_probability == pytest.approx((18 + 42.5) / 7)
    assert result.confidence_high == pytest.approx((18 + 42.5) / 7 + 13)


def test_failing_retriever_still_finishes(make_retriever) -> None:
    def boom(query: str, lookback: int | None) -> list[SearchResult]:
        raise ConnectionError("offline")

    result = forecast(SNAP, make_retriever(boom)).result
    assert result.total_article_count == 0
    assert result.final_probability == pytest.approx((18 + 42.5) / 7)


def test_factor_queries_use_news_window(neutral_retriever) -> None:
    q = Question(text="Will Japan hold a snap election?", news_window=30)
    forecast(q, neutral_retriever)
    assert len(neutral_retriever.calls) == 12
    assert {lookback for _, lookback in neutral_retriever.calls} == {30}


def test_weight_overrides_and_warning(neutral_retriever, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="foresight.workflow"):
        result = forecast(SNAP, neutral_retriever, weights={"media_narrative": 30}).result
    assert result.factors[-1].weight == 30
    # Not renormalised: inside sum is 0.5 * 120
    assert result.final_probability == pytest.approx((18 + 60) / 7)
    assert "sum to 120.00" in caplog.text


def test_volume_split_blend(neutral_retriever) -> None:
    result = forecast(SNAP, neutral_retriever, blend=BlendMode.VOLUME_SPLIT).result
    # MEDIUM evidence: 45% outside, 55% inside
    assert result.final_probability == pytest.approx(0.45 * 18 + 0.55 * 50)
    assert result.blend_descriptor == "Outside:45% / Inside:55%"
    assert result.blend_mode is BlendMode.VOLUME_SPLIT


def test_manual_mode(neutral_retriever) -> None:
    q = Question(text=SNAP.text, mode=BaseRateMode.MANUAL, manual_rate=0.4, manual_label="Gut feel")
    result = forecast(q, neutral_retriever).result
    assert result.reference_class.label == "Gut feel"
    assert result.final_probability == pytest.approx((40 + 50) / 7)


def test_custom_mode_researches_concurrently(make_retriever) -> None:
    study = SearchResult("Study", "https://www.nature.com/s", "The probability is 25%.")

    def answer(query: str, lookback: int | None) -> list[SearchResult]:
        return [study] if lookback is None else [NEUTRAL_DOC]

    retriever = make_retriever(answer)
    q = Question(text=SNAP.text, mode=BaseRateMode.CUSTOM, reference_class="snap elections in Asia")
    run = forecast(q, retriever)

    assert run.result.reference_class.rate == pytest.approx(0.25)
    assert run.result.reference_class.label == "Custom: snap elections in Asia"
    assert run.result.final_probability == pytest.approx((25 + 50) / 7)
    assert any(e.message.startswith("Researching reference class") for e in run.trace)
    assert sum(lookback is None for _, lookback in retriever.calls) == 4


def test_sports_domain(neutral_retriever) -> None:
    q = Question(text="Will Arsenal beat Spurs on Sunday?", domain=Domain.SPORTS)
    result = forecast(q, neutral_retriever).result
    assert result.outside_view_pct == pytest.approx(58)
    assert [f.key for f in result.factors] == [s.key for s in DOMAIN_FACTORS[Domain.SPORTS]]
    assert result.final_probability == pytest.approx((58 + 50) / 7)


def test_closing_generator_early(neutral_retriever) -> None:
    events = run_forecast(SNAP, neutral_retriever)
    for event in events:
        if event.kind is TraceKind.SEARCH:
            break
    events.close()
    assert list(events) == []
