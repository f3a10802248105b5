"""
Risk Evaluator
==============

Pure policy: combines the current message's lexical signals, the emotion
analyzer output, the context analyzer intent, trend flags, crisis history and
conversation context into an additive score, then maps the score to a
RiskLevel with the configured thresholds.

Every escalation signal adds a non-negative weight, so raising a trend flag
can never lower the resulting level. A high-confidence CRISIS intent floors
the level at MEDIUM.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from app.core.config import settings
from app.models.crisis_event import RiskLevel
from app.schemas.risk import (
    ContextualAnalysis,
    ConversationContext,
    CrisisHistory,
    EmotionalAnalysis,
    RiskAssessment,
    RiskContext,
    RiskScoringWeights,
)
from app.schemas.trend import TrendAnalysis
from app.utils.crisis_detector import detect_signals
from app.utils.enums_mapping import normalize_emotion

logger = logging.getLogger(__name__)

CRISIS_INTENT_TYPE = "CRISIS"
VERY_HIGH_INTENSITY = 9
EXTREME_SADNESS_INTENSITY = 8


@dataclass(frozen=True)
class RiskThresholds:
    high: float = 7.0
    medium: float = 4.0
    warning: float = 2.0
    crisis_intent_confidence: float = 0.9

    @classmethod
    def from_settings(cls) -> "RiskThresholds":
        return cls(
            high=settings.RISK_THRESHOLD_HIGH,
            medium=settings.RISK_THRESHOLD_MEDIUM,
            warning=settings.RISK_THRESHOLD_WARNING,
            crisis_intent_confidence=settings.CRISIS_INTENT_CONFIDENCE,
        )

    def level_for(self, score: float) -> RiskLevel:
        if score >= self.high:
            return RiskLevel.HIGH
        if score >= self.medium:
            return RiskLevel.MEDIUM
        if score >= self.warning:
            return RiskLevel.WARNING
        return RiskLevel.LOW


DEFAULT_WEIGHTS = RiskScoringWeights()


def has_crisis_intent(
    contextual: Optional[ContextualAnalysis],
    thresholds: Optional[RiskThresholds] = None,
) -> bool:
    thresholds = thresholds or RiskThresholds.from_settings()
    intent = contextual.intent if contextual else None
    return bool(
        intent
        and intent.type.upper() == CRISIS_INTENT_TYPE
        and intent.confidence >= thresholds.crisis_intent_confidence
    )


class _Score:
    def __init__(self) -> None:
        self.value = 0.0
        self.factors: List[str] = []
        self.protective: List[str] = []

    def add(self, factor: str, weight: float) -> None:
        self.value += weight
        self.factors.append(factor)

    def relieve(self, factor: str, weight: float) -> None:
        self.value -= weight
        self.protective.append(factor)


def _score_trends(score: _Score, trend: TrendAnalysis, w: RiskScoringWeights) -> None:
    if trend.risk_adjustment:
        score.value += trend.risk_adjustment
        score.factors.append(f"trend_adjustment:{trend.risk_adjustment:+.1f}")
    flags = trend.trends
    if flags is None:
        return
    if flags.rapid_decline:
        score.add("rapid_decline", w.trend_rapid_decline)
    if flags.sustained_low:
        score.add("sustained_low", w.trend_sustained_low)
    if flags.isolation:
        score.add("isolation_trend", w.trend_isolation)
    if flags.escalation:
        score.add("escalation", w.trend_escalation)


def _score_history(score: _Score, history: CrisisHistory, w: RiskScoringWeights) -> None:
    if history.recent_crises > 0:
        score.add("recent_crisis", w.recent_crisis)
    elif history.total_crises > 0:
        score.add("past_crisis", w.past_crisis)
    if history.recent_crises >= 2:
        score.add("repeated_recent_crises", w.repeated_recent_crises)


def _score_conversation(score: _Score, ctx: ConversationContext, w: RiskScoringWeights) -> None:
    if ctx.emotional_escalation:
        score.add("emotional_escalation", w.emotional_escalation)
    if ctx.help_rejected:
        score.add("help_rejected", w.help_rejected)
    if ctx.abrupt_tone_change:
        score.add("abrupt_tone_change", w.abrupt_tone_change)
    if ctx.frequency_analysis is not None:
        if ctx.frequency_analysis.very_frequent:
            score.add("very_frequent", w.very_frequent)
        if ctx.frequency_analysis.frequency_change:
            score.add("frequency_change", w.frequency_change)
    if ctx.silence_after_negative:
        score.add("silence_after_negative", w.silence_after_negative)


def assess_risk(
    emotional: Optional[EmotionalAnalysis],
    contextual: Optional[ContextualAnalysis],
    raw_text: Optional[str],
    context: Optional[RiskContext] = None,
    *,
    weights: RiskScoringWeights = DEFAULT_WEIGHTS,
    thresholds: Optional[RiskThresholds] = None,
) -> RiskAssessment:
    """Score one message and return the level with the factors that produced it."""
    thresholds = thresholds or RiskThresholds.from_settings()
    if not raw_text or not isinstance(raw_text, str):
        return RiskAssessment(risk_level=RiskLevel.LOW)

    score = _Score()
    emotional = emotional or EmotionalAnalysis()
    context = context or RiskContext()

    crisis_intent = has_crisis_intent(contextual, thresholds)
    intent = contextual.intent if contextual else None
    if intent and intent.type.upper() == CRISIS_INTENT_TYPE:
        score.add("crisis_intent", weights.crisis_intent)

    signals = detect_signals(raw_text)
    for family in signals.risk:
        score.add(family, getattr(weights, family))

    if emotional.intensity >= VERY_HIGH_INTENSITY:
        score.add("very_high_intensity", weights.very_high_intensity)
    if (
        normalize_emotion(emotional.main_emotion) == "sadness"
        and emotional.intensity >= EXTREME_SADNESS_INTENSITY
    ):
        score.add("extreme_sadness", weights.extreme_sadness)

    if context.trend_analysis is not None:
        _score_trends(score, context.trend_analysis, weights)
    if context.crisis_history is not None:
        _score_history(score, context.crisis_history, weights)
    if context.conversation_context is not None:
        _score_conversation(score, context.conversation_context, weights)

    # Protective factors
    for family in signals.protective:
        score.relieve(family, getattr(weights, family))
    if any(normalize_emotion(e) == "hope" for e in emotional.secondary):
        score.relieve("hope", weights.hope)

    final_score = max(0.0, score.value)
    level = thresholds.level_for(final_score)
    if crisis_intent and level.rank < RiskLevel.MEDIUM.rank:
        level = RiskLevel.MEDIUM

    return RiskAssessment(
        risk_level=level,
        score=round(final_score, 2),
        factors=score.factors,
        protective_factors=score.protective,
        crisis_intent=crisis_intent,
    )


def evaluate_risk(
    emotional: Optional[EmotionalAnalysis],
    contextual: Optional[ContextualAnalysis],
    raw_text: Optional[str],
    context: Optional[RiskContext] = None,
    **kwargs,
) -> RiskLevel:
    return assess_risk(emotional, contextual, raw_text, context, **kwargs).risk_level


def is_crisis(
    risk_level: RiskLevel,
    contextual: Optional[ContextualAnalysis] = None,
    thresholds: Optional[RiskThresholds] = None,
) -> bool:
    """Whether a detection is worth a CrisisEvent."""
    if risk_level in (RiskLevel.MEDIUM, RiskLevel.HIGH):
        return True
    if risk_level == RiskLevel.WARNING:
        # Unreachable from assess_risk, which floors high-confidence intent at MEDIUM
        return has_crisis_intent(contextual, thresholds)
    if risk_level == RiskLevel.LOW:
        return False
    raise ValueError(f"Unknown risk level: {risk_level!r}")
