from __future__ import annotations

import pytest

from foresight.base_rates import (
    FALLBACK_RATE,
    ReferenceClassSelector,
    extract_mentions,
    weighted_median,
)
from foresight.models import BaseRateMode, Domain, Question
from foresight.retrieval import SearchResult


@pytest.mark.parametrize(
    ("text", "rate"),
    [
        ("Will the president be re-elected in 2028?", 0.65),
        ("Will the incumbent win the next vote?", 0.65),
        ("Will Japan hold a snap election before 2026?", 0.18),
        ("Will there be a coup in Niger this year?", 0.08),
        ("Will Russia and Ukraine agree a ceasefire by June?", 0.35),
        ("Will North Korea conduct a test before 2027?", 0.28),
        ("Will Argentina default on its bonds?", 0.12),
        ("Will the senate pass the budget bill?", 0.55),
        ("Will the prime minister resign?", 0.22),
        ("Will Labour win the election?", 0.52),
        ("Will it rain on the parade?", FALLBACK_RATE),
    ],
)
def test_auto_rules(text: str, rate: float) -> None:
    ref = ReferenceClassSelector().auto(text)
    assert ref.rate == rate
    assert ref.reasoning


@pytest.mark.parametrize(
    ("text", "rate", "rule"),
    [
        ("Will the incumbent win the election?", 0.65, "incumbent_reelection"),
        ("Will a coup force a snap election in Thailand?", 0.18, "snap_election"),
    ],
)
def test_auto_first_rule_wins(text: str, rate: float, rule: str) -> None:
    ref = ReferenceClassSelector().auto(text)
    assert ref.rate == rate
    assert f"'{rule}'" in ref.reasoning


def test_auto_sports_ignores_wording() -> None:
    ref = ReferenceClassSelector().auto("Will the coup happen?", Domain.SPORTS)
    assert ref.rate == 0.58
    assert ref.dataset is not None


def test_manual_clamps_and_defaults() -> None:
    selector = ReferenceClassSelector()
    ref = selector.manual(1.4)
    assert ref.rate == 0.99
    assert ref.label == "Manual base rate"
    assert ref.source_citation == "User supplied"
    assert "clamped" in ref.reasoning

    ref = selector.manual(0.3, "Hand-picked", "My notes")
    assert ref.rate == 0.3
    assert ref.label == "Hand-picked"
    assert ref.source_citation == "My notes"


def test_select_dispatches_by_mode() -> None:
    selector = ReferenceClassSelector()
    q = Question(text="Anything", mode=BaseRateMode.MANUAL, manual_rate=0.2)
    assert selector.select(q).rate == 0.2


def test_extract_mentions() -> None:
    text = "Analysts put the chance at 30% while 120% growth and 0% change are noise. Odds of 0.4 quoted."
    mentions = extract_mentions(text, "https://example.com")
    values = sorted(m.value for m in mentions)
    assert values == [0.3, 0.4]
    assert all(m.probability_phrased for m in mentions)


def test_extract_plain_percent_not_phrased() -> None:
    [m] = extract_mentions("Turnout reached 62 percent in the capital.")
    assert m.value == pytest.approx(0.62)
    assert not m.probability_phrased


@pytest.mark.parametrize("text", ["Growth hit 2023% records", "Up 1,250% since launch"])
def test_extract_ignores_tail_of_longer_number(text: str) -> None:
    assert extract_mentions(text) == []


def test_extract_keeps_whole_decimal_percent() -> None:
    [m] = extract_mentions("Rose 4.75% overall")
    assert m.value == pytest.approx(0.0475)


def test_weighted_median() -> None:
    assert weighted_median([(0.2, 1.0), (0.5, 1.0), (0.9, 1.0)]) == 0.5
    assert weighted_median([(0.2, 1.0), (0.9, 3.0)]) == 0.9
    # Exactly half the weight on each side: lower median
    assert weighted_median([(0.2, 1.0), (0.9, 1.0)]) == 0.2
    with pytest.raises(ValueError):
        weighted_median([])


def test_custom_without_results_falls_back(empty_retriever) -> None:
    selector = ReferenceClassSelector(empty_retriever)
    ref = selector.custom("island secession referendums")
    assert ref.rate == FALLBACK_RATE
    assert ref.label == "Custom: island secession referendums"
    assert "No search results" in ref.reasoning


def test_custom_without_numbers_falls_back(make_retriever) -> None:
    retriever = make_retriever(lambda q, d: [SearchResult("No figures here", "https://bbc.com/a", "Nothing numeric")])
    ref = ReferenceClassSelector(retriever).custom("island secession referendums")
    assert ref.rate == FALLBACK_RATE
    assert "none quoted a rate" in ref.reasoning


def test_custom_weighted_median_of_mentions(make_retriever) -> None:
    results = [
        SearchResult("Study", "https://www.nature.com/a", "The probability of success is 20%."),
        SearchResult("Blog", "https://someblog.net/b", "Around 80% of cases succeed."),
        SearchResult("Wire", "https://www.reuters.com/c", "Historically 30% of attempts succeed."),
    ]
    retriever = make_retriever(lambda q, d: results)
    selector = ReferenceClassSelector(retriever)
    ref = selector.custom("referendums", results)
    # weights: 0.2 -> 1.5*1.5, 0.3 -> 1.0, 0.8 -> 0.5
    assert ref.rate == pytest.approx(0.2)
    assert ref.source_citation == "Live research: 3 sources"
    assert ref.dataset is not None
    assert retriever.calls == []


def test_research_is_date_unconstrained(empty_retriever) -> None:
    retriever = empty_retriever
    ReferenceClassSelector(retriever).research("coups in West Africa")
    assert len(retriever.calls) == 4
    assert all(lookback is None for _, lookback in retriever.calls)
    assert all(q.startswith("coups in West Africa") for q, _ in retriever.calls)


def test_research_survives_failing_retriever(make_retriever) -> None:
    def boom(query: str, lookback: int | None) -> list[SearchResult]:
        raise RuntimeError("down")

    ref = ReferenceClassSelector(make_retriever(boom)).custom("anything")
    assert ref.rate == FALLBACK_RATE
