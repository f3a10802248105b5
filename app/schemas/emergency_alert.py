from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.crisis_event import RiskLevel
from app.models.emergency_alert import AlertChannel, AlertStatus


class EmergencyContactInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    contact_id: Optional[int] = None
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None
    enabled: bool = True


class ChannelResult(BaseModel):
    """Outcome of one channel for one contact.

    ``attempted`` is False when the channel was skipped (no phone number,
    provider not configured); ``error`` then says why.
    """
    channel: AlertChannel
    attempted: bool = False
    sent: bool = False
    sent_at: Optional[datetime] = None
    error: Optional[str] = None
    provider: Optional[str] = None


class ContactDispatchResult(BaseModel):
    contact: EmergencyContactInfo
    email: ChannelResult = Field(default_factory=lambda: ChannelResult(channel=AlertChannel.EMAIL))
    messaging: ChannelResult = Field(default_factory=lambda: ChannelResult(channel=AlertChannel.MESSAGING))
    status: AlertStatus = AlertStatus.FAILED

    @property
    def any_sent(self) -> bool:
        return self.email.sent or self.messaging.sent


class DispatchOptions(BaseModel):
    crisis_event_id: Optional[int] = None
    trend_analysis: Optional[Dict[str, Any]] = None
    risk_score: Optional[float] = None
    factors: List[str] = Field(default_factory=list)


class DispatchResult(BaseModel):
    sent: bool
    reason: Optional[str] = None
    contacts: List[ContactDispatchResult] = Field(default_factory=list)
    total_contacts: int = 0
    successful_sends: int = 0
    successful_emails: int = 0
    successful_messaging: int = 0
    is_test: bool = False


class EmergencyAlert(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: int
    user_id: int
    crisis_event_id: Optional[int] = None
    risk_level: RiskLevel
    contact_id: Optional[int] = None
    contact_name: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_relationship: Optional[str] = None
    email_sent: bool
    email_sent_at: Optional[datetime] = None
    email_error: Optional[str] = None
    messaging_sent: bool
    messaging_sent_at: Optional[datetime] = None
    messaging_error: Optional[str] = None
    messaging_provider: Optional[str] = None
    is_test: bool
    status: AlertStatus
    sent_at: datetime
