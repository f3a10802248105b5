from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class IntensityTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class EmotionTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class FrequencyTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Volatility(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PeriodStatistics(BaseModel):
    """Emotional statistics over one trailing window. Never persisted on its own."""
    message_count: int = Field(ge=0, default=0)
    average_intensity: float = 5.0
    emotion_distribution: Dict[str, float] = Field(default_factory=dict)
    negative_emotion_rate: float = Field(ge=0, le=1, default=0.0)
    high_intensity_rate: float = Field(ge=0, le=1, default=0.0)
    frequency: float = Field(ge=0, default=0.0)  # messages per day


class TrendFlags(BaseModel):
    intensity_trend: IntensityTrend = IntensityTrend.STABLE
    emotion_trend: EmotionTrend = EmotionTrend.STABLE
    frequency_trend: FrequencyTrend = FrequencyTrend.STABLE
    volatility: Volatility = Volatility.LOW
    rapid_decline: bool = False
    sustained_low: bool = False
    isolation: bool = False
    escalation: bool = False


class TrendAnalysis(BaseModel):
    """Result of ``TrendAnalyzer.analyze_trends``.

    ``periods`` is keyed by ``short`` / ``medium`` / ``long``. A failed analysis
    has no periods and ``trends=None`` so callers treat it as neutral.
    """
    periods: Dict[str, PeriodStatistics] = Field(default_factory=dict)
    trends: Optional[TrendFlags] = None
    risk_adjustment: float = 0.0
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def neutral(cls) -> "TrendAnalysis":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.periods and self.trends is None
