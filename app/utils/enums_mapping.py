from __future__ import annotations

from typing import Dict

from app.models.crisis_event import RiskLevel

RISK_LEVEL_SCORE_MAP: Dict[str, int] = {
    RiskLevel.LOW.value: 1,
    RiskLevel.WARNING.value: 2,
    RiskLevel.MEDIUM.value: 3,
    RiskLevel.HIGH.value: 4,
}

NEGATIVE_EMOTIONS = frozenset({"sadness", "anxiety", "anger", "fear", "shame", "guilt"})

# Spanish labels some emotion analyzers emit
EMOTION_ALIASES: Dict[str, str] = {
    "tristeza": "sadness",
    "ansiedad": "anxiety",
    "enojo": "anger",
    "miedo": "fear",
    "verguenza": "shame",
    "vergüenza": "shame",
    "culpa": "guilt",
    "alegria": "joy",
    "alegría": "joy",
    "esperanza": "hope",
    "neutral": "neutral",
}


def normalize_emotion(emotion: str | None) -> str | None:
    if not emotion:
        return None
    key = emotion.strip().lower()
    return EMOTION_ALIASES.get(key, key)


def risk_level_to_score(level: str) -> int:
    return RISK_LEVEL_SCORE_MAP.get(str(getattr(level, "value", level)).upper(), 1)


def score_to_risk_level(score: float) -> str:
    """Map an averaged 1..4 score back to the nearest risk level label."""
    if score >= 3.5:
        return RiskLevel.HIGH.value
    if score >= 2.5:
        return RiskLevel.MEDIUM.value
    if score >= 1.5:
        return RiskLevel.WARNING.value
    return RiskLevel.LOW.value
