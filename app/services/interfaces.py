"""
Narrow contracts for the collaborators the crisis pipeline calls.

The dispatcher, trend analyzer and follow-up scheduler depend only on these
protocols; concrete SQL stores and provider senders live in their own modules
and tests pass mocks.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from app.schemas.emergency_alert import EmergencyContactInfo
from app.schemas.risk import ContextualAnalysis, EmotionalAnalysis


class EmotionalSample(Protocol):
    emotion: Optional[str]
    intensity: Optional[int]
    created_at: datetime


class EmotionAnalyzer(Protocol):
    async def analyze(self, text: str, recent_patterns: Sequence[Any]) -> EmotionalAnalysis: ...


class ContextAnalyzer(Protocol):
    async def analyze(self, message: str, history: Sequence[Any]) -> ContextualAnalysis: ...


class UserStore(Protocol):
    def get_user_summary(self, user_id: int) -> Optional[Dict[str, Any]]: ...

    def get_emergency_contacts(self, user_id: int) -> List[EmergencyContactInfo]: ...

    def get_push_token(self, user_id: int) -> Optional[str]: ...

    def get_language_preference(self, user_id: int) -> str: ...

    def record_risk_assessment(self, user_id: int, risk_level: str, assessed_at: datetime) -> None: ...


class MessageStore(Protocol):
    def find_emotional_samples(
        self,
        user_id: int,
        *,
        since: datetime,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[EmotionalSample]: ...


class EmailSender(Protocol):
    @property
    def configured(self) -> bool: ...

    async def send(self, to: str, subject: str, html: str) -> bool: ...


class MessagingSender(Protocol):
    name: str

    @property
    def configured(self) -> bool: ...

    async def send(self, phone: str, body: str) -> Dict[str, Any]: ...


class PushSender(Protocol):
    async def send(
        self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]: ...


class LiveAlertNotifier(Protocol):
    async def broadcast_alert(self, user_id: int, event: Dict[str, Any]) -> None: ...
