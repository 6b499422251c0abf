from __future__ import annotations

import pytest

from foresight.scoring import (
    calibration_buckets,
    calibration_error,
    mean_score,
    quadratic_score,
    score_label,
)


def test_quadratic_score() -> None:
    assert quadratic_score(0.7, 1) == pytest.approx(0.09)
    assert quadratic_score(0.7, 0) == pytest.approx(0.49)
    assert quadratic_score(0.5, 0) == pytest.approx(0.25)
    # Clamped away from certainty
    assert quadratic_score(1.0, 1) == pytest.approx(0.0001)
    assert quadratic_score(0.0, 1) == pytest.approx(0.9801)


@pytest.mark.parametrize("outcome", [2, -1, 0.5])
def test_quadratic_score_rejects_bad_outcome(outcome: float) -> None:
    with pytest.raises(ValueError):
        quadratic_score(0.5, outcome)  # type: ignore[arg-type]


def test_mean_score() -> None:
    assert mean_score([]) is None
    assert mean_score([None, None]) is None
    assert mean_score([0.1, None, 0.3]) == pytest.approx(0.2)


@pytest.mark.parametrize(
    ("average", "label"),
    [
        (None, "Unscored"),
        (0.05, "Superforecaster"),
        (0.10, "Very Good"),
        (0.19, "Very Good"),
        (0.20, "Average"),
        (0.25, "Needs Work"),
        (0.6, "Needs Work"),
    ],
)
def test_score_label(average: float | None, label: str) -> None:
    assert score_label(average) == label


def test_calibration_buckets() -> None:
    buckets = calibration_buckets([(0.05, 0), (0.15, 1), (0.72, 1), (0.78, 0)])
    assert [(b.lower, b.upper) for b in buckets] == [(0.0, 0.1), (0.1, 0.2), (0.7, 0.8)]
    assert [b.count for b in buckets] == [1, 1, 2]

    top = buckets[-1]
    assert top.hits == 1
    assert top.midpoint == pytest.approx(0.75)
    assert top.mean_forecast == pytest.approx(0.75)
    assert top.actual_frequency == pytest.approx(0.5)


def test_calibration_edges() -> None:
    assert calibration_buckets([]) == []
    [bucket] = calibration_buckets([(1.0, 1), (0.95, 1)])
    assert (bucket.lower, bucket.upper, bucket.count) == (0.9, 1.0, 2)


def test_calibration_error() -> None:
    assert calibration_error([]) is None
    buckets = calibration_buckets([(0.72, 1), (0.78, 0)])
    assert calibration_error(buckets) == pytest.approx(0.25)
