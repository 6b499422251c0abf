"""Public API for the foresight package."""

from .base_rates import ReferenceClassSelector
from .credibility import SourceCredibilityRater
from .factors import FactorScorer, resolve_weights
from .models import BaseRateMode, BlendMode, Domain, ForecastResult, Question, TraceEvent
from .retrieval import EvidenceRetriever, SearchResult
from .scoring import calibration_buckets, quadratic_score
from .workflow import ForecastRun, forecast, run_forecast

__all__ = [
    "Question",
    "Domain",
    "BaseRateMode",
    "BlendMode",
    "ForecastResult",
    "TraceEvent",
    "EvidenceRetriever",
    "SearchResult",
    "SourceCredibilityRater",
    "ReferenceClassSelector",
    "FactorScorer",
    "resolve_weights",
    "run_forecast",
    "forecast",
    "ForecastRun",
    "quadratic_score",
    "calibration_buckets",
]
