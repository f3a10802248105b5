"""
End-to-end tests for per-message crisis handling.

Run with: python -m pytest tests/test_crisis_orchestrator.py -v
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from tests.conftest import NOW

CONTACTS = [{"name": "Maria", "phone": "+56 9 8765 4321"}, {"name": "Luis"}]


def _message(content, message_id=None):
    from app.schemas.risk import IncomingMessage

    return IncomingMessage(message_id=message_id, content=content)


def _analyses(emotion=None, intensity=5):
    from app.schemas.risk import EmotionalAnalysis, MessageAnalyses

    return MessageAnalyses(emotional=EmotionalAnalysis(main_emotion=emotion, intensity=intensity))


def _events(session_factory):
    from app.models.crisis_event import CrisisEvent

    with session_factory() as s:
        return list(s.scalars(select(CrisisEvent)))


def _alerts(session_factory):
    from app.models.emergency_alert import EmergencyAlert

    with session_factory() as s:
        return list(s.scalars(select(EmergencyAlert)))


# =============================================================================
# NON-CRISIS
# =============================================================================

class TestNonCrisis:
    """Messages below the crisis line."""

    @pytest.mark.asyncio
    async def test_low_risk_records_profile_only(self, orchestrator, seed_user, runner, session_factory, email_sender):
        from app.models.user import User

        user_id = seed_user(contacts=CONTACTS)

        result = await orchestrator.handle_incoming_message(user_id, _message("I feel so sad and empty today"))
        await runner.drain()

        assert result.is_crisis is False
        assert result.risk_level.value == "LOW"
        assert result.crisis_event_id is None
        assert _events(session_factory) == []
        assert email_sender.sent == []
        with session_factory() as s:
            user = s.get(User, user_id)
            assert user.last_risk_level == "LOW"
            assert user.last_risk_assessed_at == NOW

    @pytest.mark.asyncio
    async def test_warning_sends_push_without_alerting(self, orchestrator, seed_user, runner, session_factory, push_sender):
        """WARNING earns a supportive push; no ledger entry, no contact alert."""
        user_id = seed_user(contacts=CONTACTS, language="en")
        orchestrator.dispatcher = AsyncMock()

        result = await orchestrator.handle_incoming_message(user_id, _message("There is no way out, i give up"))
        await runner.drain()

        assert result.is_crisis is False
        assert result.risk_level.value == "WARNING"
        assert _events(session_factory) == []
        orchestrator.dispatcher.send_emergency_alerts.assert_not_called()
        assert len(push_sender.sent) == 1
        assert push_sender.sent[0]["title"] == "How are you feeling?"
        assert push_sender.sent[0]["data"] == {"type": "wellbeing_check"}

    @pytest.mark.asyncio
    async def test_evaluation_failure_returns_low(self, orchestrator, seed_user):
        broken = AsyncMock()
        broken.analyze_trends.side_effect = RuntimeError("boom")
        orchestrator.trend_analyzer = broken

        result = await orchestrator.handle_incoming_message(seed_user(), _message("I want to die"))

        assert result.is_crisis is False
        assert result.risk_level.value == "LOW"


# =============================================================================
# CRISIS
# =============================================================================

class TestCrisis:
    """MEDIUM and HIGH detections."""

    @pytest.mark.asyncio
    async def test_high_risk_full_pipeline(self, orchestrator, seed_user, runner, session_factory, email_sender, messaging_sender):
        """Ledger entry, contact alerts and a 12h follow-up."""
        user_id = seed_user(contacts=CONTACTS)
        content = "I keep thinking about suicide, I want to die"

        result = await orchestrator.handle_incoming_message(user_id, _message(content, 77), _analyses("sadness", 7))
        await runner.drain()

        assert result.is_crisis is True
        assert result.risk_level.value == "HIGH"
        assert result.crisis_event_id is not None

        [event] = _events(session_factory)
        assert event.crisis_event_id == result.crisis_event_id
        assert event.trigger_message_id == 77
        assert event.trigger_content_preview == content
        assert event.event_metadata["factors"] == ["suicide_mention", "death_wish"]
        assert event.alerts_sent is True
        assert event.contacts_notified == 2
        assert event.alert_email is True
        assert event.alert_messaging is True
        assert event.follow_up_scheduled is True
        assert event.follow_up_scheduled_at == NOW + timedelta(hours=12)

        alerts = _alerts(session_factory)
        assert len(alerts) == 2
        assert {a.crisis_event_id for a in alerts} == {result.crisis_event_id}
        assert len(email_sender.sent) == 2
        assert len(messaging_sender.sent) == 1

    @pytest.mark.asyncio
    async def test_escalating_trend_turns_sad_message_into_crisis(self, orchestrator, seed_user, add_message, runner, session_factory):
        """Recent intense sadness against a calm baseline pushes a plain sad message to HIGH."""
        user_id = seed_user(contacts=CONTACTS)
        for hours, intensity in ((2, 8), (1, 9), (0, 9)):
            add_message(user_id, age=timedelta(hours=hours, minutes=1), intensity=intensity)
        for days in (8, 11, 14, 17, 20, 24, 29):
            add_message(user_id, age=timedelta(days=days), intensity=2, emotion="neutral")

        result = await orchestrator.handle_incoming_message(
            user_id, _message("I feel so sad and empty today"), _analyses("sadness", 9)
        )
        await runner.drain()

        assert result.is_crisis is True
        assert result.risk_level.value == "HIGH"
        [event] = _events(session_factory)
        assert event.trend_analysis["trends"]["escalation"] is True

    @pytest.mark.asyncio
    async def test_second_crisis_within_cooldown_is_ledgered_not_alerted(self, orchestrator, seed_user, runner, session_factory, email_sender):
        user_id = seed_user(contacts=CONTACTS)

        first = await orchestrator.handle_incoming_message(user_id, _message("I want to die"))
        await runner.drain()
        second = await orchestrator.handle_incoming_message(user_id, _message("I want to die"))
        await runner.drain()

        assert first.is_crisis and second.is_crisis
        assert len(email_sender.sent) == 2
        events = {e.crisis_event_id: e for e in _events(session_factory)}
        assert events[first.crisis_event_id].alerts_sent is True
        assert events[second.crisis_event_id].alerts_sent is False
        assert events[second.crisis_event_id].follow_up_scheduled is True

    @pytest.mark.asyncio
    async def test_ledger_failure_still_alerts(self, orchestrator, seed_user, runner, email_sender, session_factory, monkeypatch):
        from app.services.crisis_event_service import CrisisEventService

        def refuse(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(CrisisEventService, "create", staticmethod(refuse))
        user_id = seed_user(contacts=CONTACTS)

        result = await orchestrator.handle_incoming_message(user_id, _message("I want to die"))
        await runner.drain()

        assert result.is_crisis is True
        assert result.crisis_event_id is None
        assert len(email_sender.sent) == 2
        assert all(a.crisis_event_id is None for a in _alerts(session_factory))
