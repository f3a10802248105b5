from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.crisis_event import RiskLevel
from app.schemas.trend import TrendAnalysis


class EmotionalAnalysis(BaseModel):
    """Output of the external emotion analyzer for one message."""
    main_emotion: Optional[str] = None
    intensity: int = Field(ge=1, le=10, default=5)
    secondary: List[str] = Field(default_factory=list)


class Intent(BaseModel):
    type: str
    confidence: float = Field(ge=0, le=1, default=0.0)


class ContextualAnalysis(BaseModel):
    """Output of the external context analyzer. Unknown keys are kept."""
    model_config = ConfigDict(extra="allow")

    intent: Optional[Intent] = None


class FrequencyAnalysis(BaseModel):
    very_frequent: bool = False
    frequency_change: bool = False


class ConversationContext(BaseModel):
    emotional_escalation: bool = False
    help_rejected: bool = False
    abrupt_tone_change: bool = False
    frequency_analysis: Optional[FrequencyAnalysis] = None
    silence_after_negative: bool = False


class CrisisHistory(BaseModel):
    total_crises: int = Field(ge=0, default=0)
    recent_crises: int = Field(ge=0, default=0)
    crisis_days: List[str] = Field(default_factory=list)


class RiskContext(BaseModel):
    trend_analysis: Optional[TrendAnalysis] = None
    crisis_history: Optional[CrisisHistory] = None
    conversation_context: Optional[ConversationContext] = None


class RiskScoringWeights(BaseModel):
    """Tunable weights for the additive risk score."""
    crisis_intent: float = 3.0
    suicide_mention: float = 4.0
    death_wish: float = 4.0
    end_life: float = 4.0
    plan: float = 3.0
    farewell: float = 2.0
    hopelessness_severe: float = 2.0
    hopelessness: float = 1.5
    isolation: float = 1.0
    surrender: float = 1.0
    very_high_intensity: float = 2.0
    extreme_sadness: float = 2.0

    trend_rapid_decline: float = 1.0
    trend_sustained_low: float = 0.5
    trend_isolation: float = 0.5
    trend_escalation: float = 1.0

    recent_crisis: float = 2.0
    past_crisis: float = 1.0
    repeated_recent_crises: float = 1.0

    emotional_escalation: float = 1.0
    help_rejected: float = 0.5
    abrupt_tone_change: float = 0.5
    very_frequent: float = 0.5
    frequency_change: float = 0.5
    silence_after_negative: float = 1.0

    help_seeking: float = 1.0
    hope: float = 1.0
    improvement: float = 1.0
    social_support: float = 0.5
    coping: float = 0.5


class RiskAssessment(BaseModel):
    risk_level: RiskLevel
    score: float = 0.0
    factors: List[str] = Field(default_factory=list)
    protective_factors: List[str] = Field(default_factory=list)
    crisis_intent: bool = False


# =============================================================================
# ORCHESTRATOR I/O
# =============================================================================

class IncomingMessage(BaseModel):
    message_id: Optional[int] = None
    content: str


class MessageAnalyses(BaseModel):
    emotional: EmotionalAnalysis = Field(default_factory=EmotionalAnalysis)
    contextual: ContextualAnalysis = Field(default_factory=ContextualAnalysis)
    conversation_context: Optional[ConversationContext] = None


class IncomingMessageRequest(BaseModel):
    user_id: int
    message: IncomingMessage
    analyses: MessageAnalyses = Field(default_factory=MessageAnalyses)


class CrisisHandlingResult(BaseModel):
    is_crisis: bool
    risk_level: RiskLevel
    crisis_event_id: Optional[int] = None
