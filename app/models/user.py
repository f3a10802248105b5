from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.session import Base

if TYPE_CHECKING:  # pragma: no cover
    from .crisis_event import CrisisEvent
    from .emergency_contact import EmergencyContact
    from .messages import Message


class LanguagePreference(str, PyEnum):
    es = "es"
    en = "en"

    @staticmethod
    def _missing_(value):
        if isinstance(value, str):
            value = value.lower()
            for member in LanguagePreference:
                if member.value == value:
                    return member
        return None


class User(Base):
    __tablename__ = "user"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    name: Mapped[Optional[str]] = mapped_column(String(100))
    push_token: Mapped[Optional[str]] = mapped_column(String(255))
    language_preference: Mapped[LanguagePreference] = mapped_column(
        Enum(
            LanguagePreference,
            name="language_preference",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
            validate_strings=True,
        ),
        nullable=False,
        server_default="es",
        default=LanguagePreference.es,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="1", default=True)
    last_risk_level: Mapped[Optional[str]] = mapped_column(String(10))
    last_risk_assessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())

    emergency_contacts: Mapped[List["EmergencyContact"]] = relationship(
        "EmergencyContact", back_populates="user", cascade="all, delete-orphan"
    )
    messages: Mapped[List["Message"]] = relationship("Message", back_populates="user")
    crisis_events: Mapped[List["CrisisEvent"]] = relationship("CrisisEvent", back_populates="user")
