from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Domain(str, Enum):
    POLITICS = "POLITICS"
    SPORTS = "SPORTS"


class BaseRateMode(str, Enum):
    """How the outside view is chosen."""

    AUTO = "auto"
    CUSTOM = "custom"
    MANUAL = "manual"


class BlendMode(str, Enum):
    N_PLUS_ONE = "n-plus-one"
    VOLUME_SPLIT = "volume-split"


class ForecastStatus(str, Enum):
    ALL = "all"
    PENDING = "pending"
    RESOLVED = "resolved"


class Question(BaseModel):
    """Forecasting question as submitted by the caller.

    Only ``text`` is required. ``reference_class`` is the free-text class
    description used by ``BaseRateMode.CUSTOM``; ``manual_rate`` (0–1) together
    with ``manual_label`` / ``manual_source`` drive ``BaseRateMode.MANUAL``.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    domain: Domain = Domain.POLITICS
    mode: BaseRateMode = BaseRateMode.AUTO
    reference_class: str | None = None
    manual_rate: float | None = None
    manual_label: str = ""
    manual_source: str = ""
    news_window: int = Field(14, ge=7, le=90)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question text must not be empty")
        return value

    @model_validator(mode="after")
    def _mode_inputs_present(self) -> Question:
        if self.mode is BaseRateMode.CUSTOM and not (self.reference_class or "").strip():
            raise ValueError("custom base-rate mode needs a reference class description")
        if self.mode is BaseRateMode.MANUAL and self.manual_rate is None:
            raise ValueError("manual base-rate mode needs a manual_rate")
        return self


class KeyStudy(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    authors: str
    year: str
    finding: str


class HistoricalExample(BaseModel):
    model_config = ConfigDict(frozen=True)

    event: str
    outcome: str


class DatasetMetadata(BaseModel):
    """Descriptive background for a reference class. Never used in arithmetic."""

    model_config = ConfigDict(frozen=True)

    description: str
    sample_size: str
    time_period: str
    geographic_scope: str
    methodology: str
    caveats: tuple[str, ...] = ()
    key_studies: tuple[KeyStudy, ...] = ()
    historical_examples: tuple[HistoricalExample, ...] = ()


class ReferenceClass(BaseModel):
    model_config = ConfigDict(frozen=True)

    rate: float = Field(..., ge=0.0, le=1.0)
    label: str
    source_citation: str
    dataset: DatasetMetadata | None = None
    reasoning: str = ""


class Evidence(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    excerpt: str
    credibility_tier: float
    tier_label: str


class Factor(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    label: str
    weight: float  # percentage points
    raw_score: float  # 1–10
    adjusted_score: float  # 1–10
    evidence: tuple[Evidence, ...] = ()
    article_count: int = 0
    avg_tier: float = 0.5


class ForecastResult(BaseModel):
    """Final output of a forecast run. Percent values lie in [1, 99]."""

    model_config = ConfigDict(frozen=True)

    final_probability: float
    confidence_low: float
    confidence_high: float
    outside_view_pct: float
    inside_view_pct: float
    blend_descriptor: str
    blend_mode: BlendMode = BlendMode.N_PLUS_ONE
    factors: tuple[Factor, ...]
    reference_class: ReferenceClass
    total_article_count: int
    quality: str


class TraceKind(str, Enum):
    INFO = "info"
    SEARCH = "search"
    SCORE = "score"
    WEIGHT = "weight"
    BLEND = "blend"
    FINAL = "final"
    ERROR = "error"


class TraceEvent(BaseModel):
    """One line of the audit trail produced while a forecast runs."""

    model_config = ConfigDict(frozen=True)

    kind: TraceKind
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    result: ForecastResult | None = None


class CalibrationBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float
    midpoint: float
    count: int
    hits: int
    mean_forecast: float
    actual_frequency: float


class ForecasterStats(BaseModel):
    user_id: int
    username: str
    total: int
    resolved: int
    pending: int
    average_score: float | None
    label: str
