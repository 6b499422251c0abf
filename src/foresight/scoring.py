"""Quadratic (Brier) scoring and calibration analysis for resolved forecasts."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from foresight.models import CalibrationBucket
from foresight.utils import clamp_probability

N_BINS = 10
UNSCORED = "Unscored"

# (exclusive upper bound, label), checked in order
SCORE_BANDS: tuple[tuple[float, str], ...] = (
    (0.10, "Superforecaster"),
    (0.20, "Very Good"),
    (0.25, "Average"),
)
WORST_BAND = "Needs Work"


def _check_outcome(outcome: int) -> int:
    if outcome not in (0, 1):
        raise ValueError(f"Outcome must be 0 or 1, got {outcome!r}")
    return int(outcome)


def quadratic_score(probability: float, outcome: int) -> float:
    """Squared error between a stated probability and a 0/1 outcome.

    The probability is clamped to [0.01, 0.99] first, so the best achievable
    score is 0.0001 and the worst 0.9801.
    """
    outcome = _check_outcome(outcome)
    return (clamp_probability(probability) - outcome) ** 2


def mean_score(scores: Iterable[float | None]) -> float | None:
    """Arithmetic mean of the non-null scores; ``None`` if there are none."""
    values = [s for s in scores if s is not None]
    if not values:
        return None
    return sum(values) / len(values)


def score_label(average: float | None) -> str:
    """Band name for an average score."""
    if average is None:
        return UNSCORED
    for bound, label in SCORE_BANDS:
        if average < bound:
            return label
    return WORST_BAND


def calibration_buckets(
    forecasts: Sequence[tuple[float, int]],
    n_bins: int = N_BINS,
) -> list[CalibrationBucket]:
    """Reliability-diagram buckets for resolved ``(probability, outcome)`` pairs.

    Bins: [0.0-0.1), [0.1-0.2), ..., [0.9-1.0]. Empty bins are left out.
    """
    width = 1.0 / n_bins
    counts = [0] * n_bins
    hits = [0] * n_bins
    sums = [0.0] * n_bins

    for probability, outcome in forecasts:
        outcome = _check_outcome(outcome)
        idx = min(max(math.floor(probability * n_bins), 0), n_bins - 1)
        counts[idx] += 1
        hits[idx] += outcome
        sums[idx] += probability

    buckets: list[CalibrationBucket] = []
    for i in range(n_bins):
        if counts[i] == 0:
            continue
        lower = round(i * width, 10)
        upper = round((i + 1) * width, 10)
        buckets.append(
            CalibrationBucket(
                lower=lower,
                upper=upper,
                midpoint=round(lower + width / 2, 10),
                count=counts[i],
                hits=hits[i],
                mean_forecast=sums[i] / counts[i],
                actual_frequency=hits[i] / counts[i],
            )
        )
    return buckets


def calibration_error(buckets: Sequence[CalibrationBucket]) -> float | None:
    """Count-weighted mean |midpoint − actual frequency| across buckets."""
    total = sum(b.count for b in buckets)
    if total == 0:
        return None
    return sum(abs(b.midpoint - b.actual_frequency) * b.count for b in buckets) / total
