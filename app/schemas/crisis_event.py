from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.crisis_event import CrisisOutcome, RiskLevel

PREVIEW_MAX_LENGTH = 200


def make_preview(content: Optional[str], limit: int = PREVIEW_MAX_LENGTH) -> Optional[str]:
    if content is None:
        return None
    content = content.strip()
    if len(content) <= limit:
        return content
    return content[: limit - 3].rstrip() + "..."


class TriggerMessage(BaseModel):
    """Snapshot of the message that triggered a crisis. Holds a preview only."""
    message_id: Optional[int] = None
    content_preview: Optional[str] = None
    emotion: Optional[str] = None
    intensity: Optional[int] = None

    @field_validator("content_preview")
    @classmethod
    def truncate_preview(cls, v: Optional[str]) -> Optional[str]:
        return make_preview(v)


class CrisisMetadata(BaseModel):
    risk_score: float = 0.0
    factors: List[str] = Field(default_factory=list)
    protective_factors: List[str] = Field(default_factory=list)


class CrisisEventCreate(BaseModel):
    user_id: int
    risk_level: RiskLevel
    trigger_message: TriggerMessage = Field(default_factory=TriggerMessage)
    trend_analysis: Optional[Dict[str, Any]] = None
    crisis_history: Optional[Dict[str, Any]] = None
    metadata: CrisisMetadata = Field(default_factory=CrisisMetadata)
    detected_at: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class FollowUpMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    follow_up_message_id: int
    sent_at: datetime
    response_received: bool
    response_at: Optional[datetime] = None


class CrisisEvent(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    crisis_event_id: int
    user_id: int
    risk_level: RiskLevel
    detected_at: datetime
    resolved_at: Optional[datetime] = None
    trigger_message_id: Optional[int] = None
    trigger_content_preview: Optional[str] = None
    trigger_emotion: Optional[str] = None
    trigger_intensity: Optional[int] = None
    trend_analysis: Optional[Dict[str, Any]] = None
    crisis_history: Optional[Dict[str, Any]] = None
    alerts_sent: bool
    alerts_sent_at: Optional[datetime] = None
    contacts_notified: int
    alert_email: bool
    alert_messaging: bool
    follow_up_scheduled: bool
    follow_up_scheduled_at: Optional[datetime] = None
    follow_up_completed: bool
    follow_up_completed_at: Optional[datetime] = None
    follow_up_messages: List[FollowUpMessage] = Field(default_factory=list)
    outcome: CrisisOutcome
    event_metadata: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None
