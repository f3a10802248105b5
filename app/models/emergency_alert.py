from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.session import Base
from app.models.crisis_event import RiskLevel


class AlertStatus(str, PyEnum):
    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"


class AlertChannel(str, PyEnum):
    EMAIL = "email"
    MESSAGING = "messaging"


class MessagingProvider(str, PyEnum):
    TWILIO = "twilio"
    WHATSAPP_CLOUD = "whatsapp_cloud"


class EmergencyAlert(Base):
    """One row per contact per dispatch attempt. Append-only."""

    __tablename__ = "emergency_alert"
    __table_args__ = (Index("ix_emergency_alert_user_sent", "user_id", "sent_at"),)

    alert_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False)
    crisis_event_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("crisis_event.crisis_event_id", ondelete="SET NULL"), index=True
    )
    risk_level: Mapped[RiskLevel] = mapped_column(
        Enum(
            RiskLevel,
            name="risk_level",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
        ),
        nullable=False,
    )

    # Contact snapshot at dispatch time
    contact_id: Mapped[Optional[int]] = mapped_column(Integer)
    contact_name: Mapped[str] = mapped_column(String(100), nullable=False)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(30))
    contact_relationship: Mapped[Optional[str]] = mapped_column(String(50))

    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    email_error: Mapped[Optional[str]] = mapped_column(String(500))
    messaging_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    messaging_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    messaging_error: Mapped[Optional[str]] = mapped_column(String(500))
    messaging_provider: Mapped[Optional[str]] = mapped_column(String(30))

    is_test: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    trigger_message_preview: Mapped[Optional[str]] = mapped_column(String(200))
    trend_analysis: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    # riskScore, factors, totalContactsNotified
    alert_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON)

    status: Mapped[AlertStatus] = mapped_column(
        Enum(
            AlertStatus,
            name="alert_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
