"""
Crisis Trend Analyzer
=====================

Compares a user's emotional statistics across three trailing windows
(7 / 30 / 90 days) and derives qualitative trend flags plus a numeric risk
adjustment for the risk evaluator.

A read failure yields a neutral result: trend analysis must never block
message processing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from statistics import pvariance
from typing import Callable, Dict, List, Optional, Sequence

from app.schemas.trend import (
    EmotionTrend,
    FrequencyTrend,
    IntensityTrend,
    PeriodStatistics,
    TrendAnalysis,
    TrendFlags,
    Volatility,
)
from app.services.interfaces import EmotionalSample, MessageStore
from app.utils.date_utils import utcnow
from app.utils.enums_mapping import NEGATIVE_EMOTIONS, normalize_emotion

logger = logging.getLogger(__name__)


# =============================================================================
# WINDOWS & THRESHOLDS
# =============================================================================

SHORT_TERM_DAYS = 7
MEDIUM_TERM_DAYS = 30
LONG_TERM_DAYS = 90

INTENSITY_CHANGE_THRESHOLD = 2.0
RAPID_DECLINE_THRESHOLD = INTENSITY_CHANGE_THRESHOLD * 1.5
EMOTION_CHANGE_THRESHOLD = 0.3
FREQUENCY_CHANGE_THRESHOLD = 0.5

HIGH_INTENSITY = 7
ESCALATION_INTENSITY = 7
SUSTAINED_LOW_INTENSITY = 4
SUSTAINED_LOW_NEGATIVE_RATE = 0.6
VOLATILITY_HIGH_VARIANCE = 4
VOLATILITY_MEDIUM_VARIANCE = 2

DEFAULT_INTENSITY = 5

TREND_RISK_FACTORS: Dict[str, float] = {
    "rapid_decline": 2.0,
    "sustained_low": 1.5,
    "volatility": 1.0,
    "isolation": 1.5,
    "escalation": 2.0,
}
IMPROVING_EMOTION_RELIEF = 0.5
INCREASING_FREQUENCY_RELIEF = 0.5

WARNING_MESSAGES: Dict[str, str] = {
    "rapid_decline": "Rapid emotional decline detected over the last few days",
    "sustained_low": "Sustained low emotional state over an extended period",
    "isolation": "Significant drop in communication frequency",
    "escalation": "Recent emotional escalation detected",
    "volatility": "High emotional volatility detected",
}


def _intensity(sample: EmotionalSample) -> int:
    return sample.intensity if sample.intensity is not None else DEFAULT_INTENSITY


def analyze_period(samples: Sequence[EmotionalSample], window_days: int) -> PeriodStatistics:
    """Compute PeriodStatistics for the samples of one window."""
    if not samples:
        return PeriodStatistics()

    count = len(samples)
    intensities = [_intensity(s) for s in samples]
    distribution: Dict[str, float] = {}
    negative = 0
    for s in samples:
        emotion = normalize_emotion(s.emotion) or "neutral"
        distribution[emotion] = distribution.get(emotion, 0) + 1
        if emotion in NEGATIVE_EMOTIONS:
            negative += 1

    return PeriodStatistics(
        message_count=count,
        average_intensity=sum(intensities) / count,
        emotion_distribution={k: v / count for k, v in distribution.items()},
        negative_emotion_rate=negative / count,
        high_intensity_rate=sum(1 for i in intensities if i >= HIGH_INTENSITY) / count,
        frequency=count / window_days,
    )


def detect_trends(
    short: PeriodStatistics,
    medium: PeriodStatistics,
    long: PeriodStatistics,
    short_intensities: Sequence[int] = (),
) -> TrendFlags:
    trends = TrendFlags()

    # Intensity
    if short.average_intensity < medium.average_intensity - INTENSITY_CHANGE_THRESHOLD:
        trends.intensity_trend = IntensityTrend.DECREASING
        if short.average_intensity < long.average_intensity - RAPID_DECLINE_THRESHOLD:
            trends.rapid_decline = True
    elif short.average_intensity > medium.average_intensity + INTENSITY_CHANGE_THRESHOLD:
        trends.intensity_trend = IntensityTrend.INCREASING
        if short.average_intensity >= ESCALATION_INTENSITY:
            trends.escalation = True

    # Emotion (share of negative emotions)
    if short.negative_emotion_rate > medium.negative_emotion_rate + EMOTION_CHANGE_THRESHOLD:
        trends.emotion_trend = EmotionTrend.DECLINING
    elif short.negative_emotion_rate < medium.negative_emotion_rate - EMOTION_CHANGE_THRESHOLD:
        trends.emotion_trend = EmotionTrend.IMPROVING

    # Frequency
    if short.frequency < medium.frequency * (1 - FREQUENCY_CHANGE_THRESHOLD):
        trends.frequency_trend = FrequencyTrend.DECREASING
        trends.isolation = True
    elif short.frequency > medium.frequency * (1 + FREQUENCY_CHANGE_THRESHOLD):
        trends.frequency_trend = FrequencyTrend.INCREASING

    if (
        short.average_intensity <= SUSTAINED_LOW_INTENSITY
        and medium.average_intensity <= SUSTAINED_LOW_INTENSITY
        and short.negative_emotion_rate >= SUSTAINED_LOW_NEGATIVE_RATE
    ):
        trends.sustained_low = True

    if short_intensities:
        variance = pvariance(short_intensities)
        if variance > VOLATILITY_HIGH_VARIANCE:
            trends.volatility = Volatility.HIGH
        elif variance > VOLATILITY_MEDIUM_VARIANCE:
            trends.volatility = Volatility.MEDIUM

    return trends


def calculate_risk_adjustment(trends: TrendFlags) -> float:
    adjustment = 0.0
    if trends.rapid_decline:
        adjustment += TREND_RISK_FACTORS["rapid_decline"]
    if trends.sustained_low:
        adjustment += TREND_RISK_FACTORS["sustained_low"]
    if trends.volatility == Volatility.HIGH:
        adjustment += TREND_RISK_FACTORS["volatility"]
    if trends.isolation:
        adjustment += TREND_RISK_FACTORS["isolation"]
    if trends.escalation:
        adjustment += TREND_RISK_FACTORS["escalation"]

    # Protective signals
    if trends.emotion_trend == EmotionTrend.IMPROVING:
        adjustment -= IMPROVING_EMOTION_RELIEF
    if (
        trends.frequency_trend == FrequencyTrend.INCREASING
        and trends.intensity_trend != IntensityTrend.DECREASING
    ):
        adjustment -= INCREASING_FREQUENCY_RELIEF
    return adjustment


def generate_warnings(trends: TrendFlags) -> List[str]:
    warnings: List[str] = []
    for flag in ("rapid_decline", "sustained_low", "isolation", "escalation"):
        if getattr(trends, flag):
            warnings.append(WARNING_MESSAGES[flag])
    if trends.volatility == Volatility.HIGH:
        warnings.append(WARNING_MESSAGES["volatility"])
    return warnings


class TrendAnalyzer:
    def __init__(
        self,
        message_store: MessageStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._messages = message_store
        self._clock = clock

    async def analyze_trends(self, user_id: int) -> TrendAnalysis:
        try:
            now = self._clock()
            samples = self._messages.find_emotional_samples(
                user_id, since=now - timedelta(days=LONG_TERM_DAYS), until=now
            )
            return self.analyze_samples(samples, now)
        except Exception as exc:
            logger.error(f"[crisis] Trend analysis failed for user {user_id}: {exc}")
            return TrendAnalysis.neutral()

    @staticmethod
    def analyze_samples(samples: Sequence[EmotionalSample], now: datetime) -> TrendAnalysis:
        def window(days: int) -> List[EmotionalSample]:
            start = now - timedelta(days=days)
            return [s for s in samples if s.created_at >= start]

        short_samples = window(SHORT_TERM_DAYS)
        short = analyze_period(short_samples, SHORT_TERM_DAYS)
        medium = analyze_period(window(MEDIUM_TERM_DAYS), MEDIUM_TERM_DAYS)
        long = analyze_period(window(LONG_TERM_DAYS), LONG_TERM_DAYS)

        trends = detect_trends(short, medium, long, [_intensity(s) for s in short_samples])
        return TrendAnalysis(
            periods={"short": short, "medium": medium, "long": long},
            trends=trends,
            risk_adjustment=calculate_risk_adjustment(trends),
            warnings=generate_warnings(trends),
        )
