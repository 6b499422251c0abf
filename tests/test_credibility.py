from __future__ import annotations

import pytest

from foresight.credibility import DEFAULT_TIER, SourceCredibilityRater, tier_label


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.reuters.com/world/article", 1.0),
        ("https://edition.cnn.com/politics", 0.85),
        ("https://en.wikipedia.org/wiki/Coup", 0.75),
        ("https://www.nature.com/articles/x", 1.5),
        ("https://polisci.stanford.edu/paper.pdf", 1.5),
        ("https://www.state.gov/report", 1.5),
        ("https://www.brookings.edu/research", 0.85),
        ("https://random-blog.example.net/post", DEFAULT_TIER),
    ],
)
def test_rate_known_and_unknown_domains(url: str, expected: float) -> None:
    assert SourceCredibilityRater().rate(url) == expected


@pytest.mark.parametrize("url", ["", "not a url", "http://[::1", "mailto:someone"])
def test_rate_never_raises_on_garbage(url: str) -> None:
    assert SourceCredibilityRater().rate(url) == DEFAULT_TIER


def test_custom_table() -> None:
    rater = SourceCredibilityRater(tiers={"example.org": 0.9}, default_tier=0.3)
    assert rater.rate("https://news.example.org/a") == 0.9
    assert rater.rate("https://other.net") == 0.3


def test_tier_labels() -> None:
    assert tier_label(1.5) == "Premium/Tier 1"
    assert tier_label(1.0) == "Premium/Tier 1"
    assert tier_label(0.85) == "Tier 2"
    assert tier_label(0.75) == "Tier 3"
    assert tier_label(0.5) == "Tier 4/Unknown"
    assert SourceCredibilityRater().label("https://apnews.com/x") == "Premium/Tier 1"
