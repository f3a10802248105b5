"""
Tests for the crisis follow-up sweep.

Run with: python -m pytest tests/test_follow_up_scheduler.py -v
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from tests.conftest import NOW


@pytest.fixture
def due_event(db, seed_user):
    """A HIGH event detected 13h ago whose 12h follow-up is now due."""
    from app.schemas.crisis_event import CrisisEventCreate
    from app.services.crisis_event_service import CrisisEventService

    def _make(*, level="HIGH", **user_kwargs):
        user_id = seed_user(**user_kwargs)
        detected = NOW - timedelta(hours=13)
        event = CrisisEventService.create(
            db, CrisisEventCreate(user_id=user_id, risk_level=level, detected_at=detected), now=detected
        )
        CrisisEventService.schedule_follow_up(db, event, 12, now=detected)
        return event

    return _make


def _reload(session_factory, crisis_event_id):
    from app.services.crisis_event_service import CrisisEventService

    with session_factory() as s:
        return CrisisEventService.get_event(s, crisis_event_id)


# =============================================================================
# EMOTIONAL STATE
# =============================================================================

class TestClassifyEmotionalState:
    @pytest.mark.parametrize(
        "intensities,expected",
        [([3, 4], "improved"), ([5, 7, 6], "stable"), ([8, 9], "worsened"), ([7, 7], "stable")],
    )
    def test_classify(self, intensities, expected):
        from app.services.follow_up_scheduler import classify_emotional_state

        samples = [SimpleNamespace(intensity=i) for i in intensities]

        assert classify_emotional_state(samples).value == expected


class TestHoursFor:
    def test_delays_by_level(self):
        from app.models.crisis_event import RiskLevel
        from app.services.follow_up_scheduler import FollowUpScheduler

        assert FollowUpScheduler.hours_for(RiskLevel.HIGH) == 12
        assert FollowUpScheduler.hours_for(RiskLevel.MEDIUM) == 24
        assert FollowUpScheduler.hours_for(RiskLevel.WARNING) == 48
        assert FollowUpScheduler.hours_for(RiskLevel.LOW) is None

    def test_register_schedules_from_now(self, db, follow_up_scheduler, seed_user):
        from app.schemas.crisis_event import CrisisEventCreate
        from app.services.crisis_event_service import CrisisEventService

        event = CrisisEventService.create(db, CrisisEventCreate(user_id=seed_user(), risk_level="MEDIUM"), now=NOW)

        result = follow_up_scheduler.register(db, event)

        assert result["success"] is True
        assert event.follow_up_scheduled_at == NOW + timedelta(hours=24)


# =============================================================================
# SWEEP
# =============================================================================

class TestProcessPendingFollowUps:
    """Tests for the periodic sweep."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, follow_up_scheduler):
        report = await follow_up_scheduler.process_pending_follow_ups()

        assert report == {"total": 0, "processed": 0, "skipped": 0, "errors": 0, "details": []}

    @pytest.mark.asyncio
    async def test_calm_activity_resolves(self, follow_up_scheduler, due_event, add_message, session_factory, push_sender):
        """A calm message in the last day closes the follow-up as resolved."""
        event = due_event()
        add_message(event.user_id, age=timedelta(hours=3), intensity=3, emotion="calm")

        report = await follow_up_scheduler.process_pending_follow_ups()

        assert report["total"] == 1
        assert report["processed"] == 1
        assert report["details"][0]["action"] == "completed"
        assert report["details"][0]["emotional_state"] == "improved"
        reloaded = _reload(session_factory, event.crisis_event_id)
        assert reloaded.follow_up_completed is True
        assert reloaded.outcome.value == "resolved"
        assert reloaded.resolved_at == NOW
        assert push_sender.sent == []

    @pytest.mark.asyncio
    async def test_intense_activity_is_ongoing(self, follow_up_scheduler, due_event, add_message, session_factory):
        event = due_event()
        add_message(event.user_id, age=timedelta(hours=2), intensity=9)
        add_message(event.user_id, age=timedelta(hours=1), intensity=8)

        report = await follow_up_scheduler.process_pending_follow_ups()

        assert report["details"][0]["emotional_state"] == "worsened"
        reloaded = _reload(session_factory, event.crisis_event_id)
        assert reloaded.follow_up_completed is True
        assert reloaded.outcome.value == "ongoing"
        assert reloaded.resolved_at is None

    @pytest.mark.asyncio
    async def test_silent_user_gets_check_in(self, follow_up_scheduler, due_event, session_factory, push_sender):
        """No recent messages: one check-in push, slot stays open."""
        event = due_event()

        report = await follow_up_scheduler.process_pending_follow_ups()

        detail = report["details"][0]
        assert detail["action"] == "check_in_sent"
        assert detail["push_sent"] is True
        assert len(push_sender.sent) == 1
        push = push_sender.sent[0]
        assert push["title"] == "Solo queríamos saber de ti"
        assert "600 360 7777" in push["body"]
        assert push["data"] == {"type": "crisis_follow_up", "crisis_event_id": event.crisis_event_id}
        reloaded = _reload(session_factory, event.crisis_event_id)
        assert reloaded.follow_up_completed is False
        assert len(reloaded.follow_up_messages) == 1

    @pytest.mark.asyncio
    async def test_check_ins_are_spaced(self, follow_up_scheduler, due_event, push_sender, session_factory, message_store, user_store):
        """A second sweep inside the retry window skips, a later one sends again."""
        from app.services.follow_up_scheduler import FollowUpScheduler

        event = due_event()
        await follow_up_scheduler.process_pending_follow_ups()

        again = await follow_up_scheduler.process_pending_follow_ups()
        assert again["skipped"] == 1
        assert again["details"][0]["reason"] == "check-in already sent"
        assert len(push_sender.sent) == 1

        later = FollowUpScheduler(
            session_factory=session_factory,
            message_store=message_store,
            user_store=user_store,
            push_sender=push_sender,
            clock=lambda: NOW + timedelta(hours=25),
            retry_hours=24,
            activity_hours=24,
        )
        report = await later.process_pending_follow_ups()

        assert report["processed"] == 1
        assert len(push_sender.sent) == 2
        assert len(_reload(session_factory, event.crisis_event_id).follow_up_messages) == 2

    @pytest.mark.asyncio
    async def test_reply_after_check_in_marks_it_answered(
        self, follow_up_scheduler, due_event, add_message, session_factory, message_store, user_store, push_sender
    ):
        """Activity after a check-in closes the event and stamps the check-in as answered."""
        from app.services.follow_up_scheduler import FollowUpScheduler

        event = due_event()
        await follow_up_scheduler.process_pending_follow_ups()
        add_message(event.user_id, age=-timedelta(hours=2), intensity=3, emotion="calm")

        later = FollowUpScheduler(
            session_factory=session_factory,
            message_store=message_store,
            user_store=user_store,
            push_sender=push_sender,
            clock=lambda: NOW + timedelta(hours=5),
            retry_hours=24,
            activity_hours=24,
        )
        report = await later.process_pending_follow_ups()

        assert report["details"][0]["action"] == "completed"
        reloaded = _reload(session_factory, event.crisis_event_id)
        assert reloaded.outcome.value == "resolved"
        [check_in] = reloaded.follow_up_messages
        assert check_in.response_received is True
        assert check_in.response_at == NOW + timedelta(hours=2)

    @pytest.mark.asyncio
    async def test_no_push_token(self, follow_up_scheduler, due_event, push_sender):
        due_event(push_token=None)

        report = await follow_up_scheduler.process_pending_follow_ups()

        assert report["details"][0]["action"] == "check_in_sent"
        assert report["details"][0]["push_sent"] is False
        assert push_sender.sent == []

    @pytest.mark.asyncio
    async def test_event_error_does_not_stop_sweep(self, follow_up_scheduler, due_event, add_message):
        """A failing event is counted and the next one is still processed."""
        first = due_event(email="a@example.com")
        second = due_event(email="b@example.com")
        add_message(second.user_id, age=timedelta(hours=1), intensity=2)

        real_store = follow_up_scheduler.message_store

        class FlakyStore:
            def find_emotional_samples(self, user_id, **kwargs):
                if user_id == first.user_id:
                    raise RuntimeError("read timeout")
                return real_store.find_emotional_samples(user_id, **kwargs)

        follow_up_scheduler.message_store = FlakyStore()

        report = await follow_up_scheduler.process_pending_follow_ups()

        assert report["total"] == 2
        assert report["errors"] == 1
        assert report["processed"] == 1
        failed = [d for d in report["details"] if d["action"] == "error"]
        assert failed == [{"crisis_event_id": first.crisis_event_id, "action": "error", "error": "read timeout"}]
