"""
Shared fixtures for the crisis pipeline tests.

Every test gets a fresh in-memory SQLite database (StaticPool, so all
sessions share one connection) and a fixed clock.
"""

import os

# Must be set before app.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRISIS_SCHEDULER_ENABLED", "0")

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

NOW = datetime(2026, 3, 15, 12, 0, 0)


# =============================================================================
# FAKE PROVIDERS
# =============================================================================

class FakeEmailSender:
    def __init__(self, ok: bool = True, configured: bool = True, fail_for=(), raise_for=()):
        self.ok = ok
        self.configured = configured
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.sent: List[Dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str) -> bool:
        if to in self.raise_for:
            raise ConnectionError("smtp relay down")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return self.ok and to not in self.fail_for


class FakeMessagingSender:
    name = "twilio"

    def __init__(self, ok: bool = True, configured: bool = True, error: Optional[str] = None):
        self.ok = ok
        self.configured = configured
        self.error = error
        self.sent: List[Dict[str, str]] = []

    async def send(self, phone: str, body: str) -> Dict[str, Any]:
        self.sent.append({"phone": phone, "body": body})
        if self.ok:
            return {"success": True, "error": None, "message_id": "SM1", "provider": self.name}
        return {"success": False, "error": self.error or "HTTP 500", "message_id": None, "provider": self.name}


class FakePushSender:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent: List[Dict[str, Any]] = []

    async def send(self, token, title, body, data=None) -> Dict[str, Any]:
        self.sent.append({"token": token, "title": title, "body": body, "data": data or {}})
        return {"success": self.ok, "error": None if self.ok else "DeviceNotRegistered"}


class FakeLiveNotifier:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    async def broadcast_alert(self, user_id, event):
        self.events.append({"user_id": user_id, **event})


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    from app.db.session import Base, import_models

    import_models()
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def seed_user(db):
    """Create a user with optional emergency contacts; returns the user id."""
    from app.models.emergency_contact import EmergencyContact
    from app.models.user import LanguagePreference, User

    def _seed(
        *,
        name: str = "Ana",
        email: Optional[str] = None,
        push_token: Optional[str] = "ExponentPushToken[abc123]",
        language: str = "es",
        contacts: Optional[List[Dict[str, Any]]] = None,
    ) -> int:
        user = User(
            name=name,
            email=email,
            push_token=push_token,
            language_preference=LanguagePreference(language),
        )
        for c in contacts or []:
            user.emergency_contacts.append(
                EmergencyContact(
                    name=c["name"],
                    email=c.get("email", f"{c['name'].lower()}@example.com"),
                    phone=c.get("phone"),
                    relation=c.get("relationship"),
                    enabled=c.get("enabled", True),
                )
            )
        db.add(user)
        db.commit()
        return user.user_id

    return _seed


@pytest.fixture
def add_message(db):
    """Insert an emotionally annotated user message ``age`` before NOW."""
    from app.models.messages import Message, MessageRole

    def _add(user_id: int, *, age: timedelta, intensity: int, emotion: str = "sadness", role=MessageRole.user):
        db.add(
            Message(
                user_id=user_id,
                role=role,
                content="...",
                emotion=emotion,
                intensity=intensity,
                created_at=NOW - age,
            )
        )
        db.commit()

    return _add


# =============================================================================
# SERVICES
# =============================================================================

@pytest.fixture
def runner():
    from app.utils.background_tasks import BackgroundTaskRunner

    return BackgroundTaskRunner()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def messaging_sender():
    return FakeMessagingSender()


@pytest.fixture
def push_sender():
    return FakePushSender()


@pytest.fixture
def live_notifier():
    return FakeLiveNotifier()


@pytest.fixture
def cooldown_cache(clock):
    from app.services.cooldown_cache import InMemoryCooldownCache

    return InMemoryCooldownCache(clock=clock)


@pytest.fixture
def user_store(session_factory):
    from app.services.stores import SqlUserStore

    return SqlUserStore(session_factory)


@pytest.fixture
def message_store(session_factory):
    from app.services.stores import SqlMessageStore

    return SqlMessageStore(session_factory)


@pytest.fixture
def dispatcher(user_store, email_sender, messaging_sender, push_sender, cooldown_cache, runner, session_factory, live_notifier, clock):
    from app.services.alert_dispatcher import AlertDispatcher

    return AlertDispatcher(
        user_store=user_store,
        email_sender=email_sender,
        messaging_sender=messaging_sender,
        push_sender=push_sender,
        cooldown_cache=cooldown_cache,
        runner=runner,
        session_factory=session_factory,
        live_notifier=live_notifier,
        clock=clock,
        cooldown_minutes=60,
    )


@pytest.fixture
def follow_up_scheduler(session_factory, message_store, user_store, push_sender, clock):
    from app.services.follow_up_scheduler import FollowUpScheduler

    return FollowUpScheduler(
        session_factory=session_factory,
        message_store=message_store,
        user_store=user_store,
        push_sender=push_sender,
        clock=clock,
        retry_hours=24,
        activity_hours=24,
    )


@pytest.fixture
def trend_analyzer(message_store, clock):
    from app.services.trend_analyzer import TrendAnalyzer

    return TrendAnalyzer(message_store, clock=clock)


@pytest.fixture
def orchestrator(session_factory, trend_analyzer, dispatcher, follow_up_scheduler, user_store, push_sender, runner, clock):
    from app.services.crisis_orchestrator import CrisisOrchestrator
    from app.services.risk_evaluator import RiskThresholds

    return CrisisOrchestrator(
        session_factory=session_factory,
        trend_analyzer=trend_analyzer,
        dispatcher=dispatcher,
        follow_up_scheduler=follow_up_scheduler,
        user_store=user_store,
        push_sender=push_sender,
        runner=runner,
        thresholds=RiskThresholds(),
        clock=clock,
    )
