from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.emergency_contact import EmergencyContact
from app.models.messages import Message, MessageRole
from app.models.user import User
from app.schemas.emergency_alert import EmergencyContactInfo

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class SqlUserStore:
    """User profile, contacts and push token lookups over the ``user`` tables."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get_user_summary(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            return {"user_id": user.user_id, "name": user.name, "email": user.email}

    def get_emergency_contacts(self, user_id: int) -> List[EmergencyContactInfo]:
        with self._session_factory() as db:
            stmt = (
                select(EmergencyContact)
                .where(EmergencyContact.user_id == user_id, EmergencyContact.enabled.is_(True))
                .order_by(EmergencyContact.contact_id)
            )
            return [
                EmergencyContactInfo(
                    contact_id=c.contact_id,
                    name=c.name,
                    email=c.email,
                    phone=c.phone,
                    relationship=c.relation,
                    enabled=c.enabled,
                )
                for c in db.scalars(stmt)
            ]

    def get_push_token(self, user_id: int) -> Optional[str]:
        with self._session_factory() as db:
            return db.scalar(select(User.push_token).where(User.user_id == user_id))

    def get_language_preference(self, user_id: int) -> str:
        with self._session_factory() as db:
            lang = db.scalar(select(User.language_preference).where(User.user_id == user_id))
            return lang.value if lang is not None else "es"

    def record_risk_assessment(self, user_id: int, risk_level: str, assessed_at: datetime) -> None:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return
            user.last_risk_level = risk_level
            user.last_risk_assessed_at = assessed_at
            db.commit()


class SqlMessageStore:
    """Read-only access to emotionally annotated user messages."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def find_emotional_samples(
        self,
        user_id: int,
        *,
        since: datetime,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Message]:
        stmt = select(Message).where(
            Message.user_id == user_id,
            Message.role == MessageRole.user,
            Message.emotion.is_not(None),
            Message.created_at >= since,
        )
        if until is not None:
            stmt = stmt.where(Message.created_at <= until)
        if limit is not None:
            stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
        else:
            stmt = stmt.order_by(Message.created_at.asc())
        with self._session_factory() as db:
            return list(db.scalars(stmt))
