from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.session import Base


class RiskLevel(str, PyEnum):
    LOW = "LOW"
    WARNING = "WARNING"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @property
    def is_crisis_level(self) -> bool:
        return self in (RiskLevel.MEDIUM, RiskLevel.HIGH)

    @staticmethod
    def _missing_(value):
        if isinstance(value, str):
            value = value.upper()
            for member in RiskLevel:
                if member.value == value:
                    return member
        return None


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.WARNING: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
}


class CrisisOutcome(str, PyEnum):
    RESOLVED = "resolved"
    ONGOING = "ongoing"
    ESCALATED = "escalated"
    FALSE_POSITIVE = "false_positive"
    UNKNOWN = "unknown"


class CrisisEvent(Base):
    __tablename__ = "crisis_event"
    __table_args__ = (
        Index("ix_crisis_event_user_detected", "user_id", "detected_at"),
        Index("ix_crisis_event_follow_up", "follow_up_scheduled", "follow_up_completed"),
    )

    crisis_event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False)
    risk_level: Mapped[RiskLevel] = mapped_column(
        Enum(
            RiskLevel,
            name="risk_level",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
        ),
        nullable=False,
        index=True,
    )
    detected_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Trigger snapshot: a preview only, the full message text is never stored here
    trigger_message_id: Mapped[Optional[int]] = mapped_column(Integer)
    trigger_content_preview: Mapped[Optional[str]] = mapped_column(String(200))
    trigger_emotion: Mapped[Optional[str]] = mapped_column(String(30))
    trigger_intensity: Mapped[Optional[int]] = mapped_column(Integer)

    trend_analysis: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)
    crisis_history: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    # alerts.*
    alerts_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    alerts_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    contacts_notified: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    alert_email: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    alert_messaging: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)

    # followUp.*
    follow_up_scheduled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    follow_up_scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    follow_up_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    follow_up_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    outcome: Mapped[CrisisOutcome] = mapped_column(
        Enum(
            CrisisOutcome,
            name="crisis_outcome",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
        ),
        nullable=False,
        server_default="unknown",
        default=CrisisOutcome.UNKNOWN,
        index=True,
    )
    # riskScore, factors, protectiveFactors
    event_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON)
    notes: Mapped[Optional[str]] = mapped_column(String(1000))

    user: Mapped["User"] = relationship("User", back_populates="crisis_events")
    follow_up_messages: Mapped[List["CrisisFollowUpMessage"]] = relationship(
        "CrisisFollowUpMessage",
        back_populates="crisis_event",
        cascade="all, delete-orphan",
        order_by="CrisisFollowUpMessage.sent_at",
    )


class CrisisFollowUpMessage(Base):
    __tablename__ = "crisis_follow_up_message"

    follow_up_message_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    crisis_event_id: Mapped[int] = mapped_column(
        ForeignKey("crisis_event.crisis_event_id", ondelete="CASCADE"), nullable=False, index=True
    )
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())
    response_received: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="0", default=False)
    response_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    crisis_event: Mapped["CrisisEvent"] = relationship("CrisisEvent", back_populates="follow_up_messages")
