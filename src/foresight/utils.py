from __future__ import annotations

PROBABILITY_FLOOR = 0.01
PROBABILITY_CEILING = 0.99


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))


def clamp_probability(p: float) -> float:
    """Keep a 0–1 probability away from certainty."""
    return clamp(p, PROBABILITY_FLOOR, PROBABILITY_CEILING)


def clamp_pct(pct: float) -> float:
    """Percent counterpart of :func:`clamp_probability`."""
    return clamp(pct, PROBABILITY_FLOOR * 100, PROBABILITY_CEILING * 100)
