"""
Crisis Follow-Up Scheduler
==========================

Every crisis event gets one follow-up slot, delayed by risk level
(HIGH 12h, MEDIUM 24h). The periodic sweep picks up due slots and:

- user active in the last 24h  -> classify the emotional state and close
  the follow-up (resolved if improved, ongoing otherwise)
- user silent                  -> send a check-in push and keep the slot
  open; at most one check-in per retry window

Runs hourly and once at startup. Each run only touches events already
matched by the due-query, so it is safe to overlap with new crises.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from statistics import mean
from typing import Any, Callable, Dict, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.crisis_event import CrisisEvent, CrisisOutcome, RiskLevel
from app.services.alert_templates import build_follow_up_check_in
from app.services.crisis_event_service import CrisisEventService
from app.services.interfaces import EmotionalSample, MessageStore, PushSender, UserStore
from app.utils.date_utils import utcnow, whole_days_between
from app.utils.emergency_numbers import EMERGENCY_NUMBERS_BY_COUNTRY, GENERAL_LINES

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 5
IMPROVED_BELOW = 5
WORSENED_ABOVE = 7


class EmotionalState(str, Enum):
    IMPROVED = "improved"
    STABLE = "stable"
    WORSENED = "worsened"


def classify_emotional_state(samples: Sequence[EmotionalSample]) -> EmotionalState:
    avg = mean(s.intensity if s.intensity is not None else 5 for s in samples)
    if avg < IMPROVED_BELOW:
        return EmotionalState.IMPROVED
    if avg > WORSENED_ABOVE:
        return EmotionalState.WORSENED
    return EmotionalState.STABLE


class FollowUpScheduler:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        message_store: MessageStore,
        user_store: UserStore,
        push_sender: PushSender,
        clock: Callable[[], datetime] = utcnow,
        retry_hours: Optional[int] = None,
        activity_hours: Optional[int] = None,
    ) -> None:
        self.session_factory = session_factory
        self.message_store = message_store
        self.user_store = user_store
        self.push_sender = push_sender
        self.clock = clock
        self.retry_hours = retry_hours if retry_hours is not None else settings.FOLLOW_UP_RETRY_HOURS
        self.activity_hours = activity_hours if activity_hours is not None else settings.FOLLOW_UP_ACTIVITY_HOURS

    @staticmethod
    def hours_for(risk_level: RiskLevel) -> Optional[int]:
        level = RiskLevel(risk_level)
        if level == RiskLevel.HIGH:
            return settings.FOLLOW_UP_HOURS_HIGH
        if level == RiskLevel.MEDIUM:
            return settings.FOLLOW_UP_HOURS_MEDIUM
        if level == RiskLevel.WARNING:
            return settings.FOLLOW_UP_HOURS_WARNING
        if level == RiskLevel.LOW:
            return None
        raise ValueError(f"Unhandled risk level: {level}")

    def register(self, db: Session, event: CrisisEvent) -> Dict[str, Any]:
        """Schedule the initial follow-up for a freshly ledgered event."""
        hours = self.hours_for(event.risk_level)
        if hours is None:
            return {"success": False, "reason": "risk level has no follow-up"}
        result = CrisisEventService.schedule_follow_up(db, event, hours, now=self.clock())
        if result["success"]:
            logger.info(
                f"[follow-up] Event {event.crisis_event_id} follow-up due at {result['scheduled_at'].isoformat()}"
            )
        return result

    async def process_pending_follow_ups(self) -> Dict[str, Any]:
        now = self.clock()
        report: Dict[str, Any] = {"total": 0, "processed": 0, "skipped": 0, "errors": 0, "details": []}
        try:
            with self.session_factory() as db:
                events = CrisisEventService.get_pending_follow_ups(db, now=now)
                report["total"] = len(events)
                for event in events:
                    try:
                        detail = await self._process_event(db, event, now)
                    except Exception as exc:
                        db.rollback()
                        report["errors"] += 1
                        report["details"].append(
                            {"crisis_event_id": event.crisis_event_id, "action": "error", "error": str(exc)}
                        )
                        logger.error(f"[follow-up] Event {event.crisis_event_id} failed: {exc}")
                        continue
                    if detail["action"] == "skipped":
                        report["skipped"] += 1
                    else:
                        report["processed"] += 1
                    report["details"].append(detail)
        except Exception as exc:
            logger.exception("[follow-up] Sweep aborted")
            report["error"] = str(exc)

        if report["total"]:
            logger.info(
                f"[follow-up] Sweep: {report['processed']} processed, {report['skipped']} skipped, "
                f"{report['errors']} errors of {report['total']} due"
            )
        return report

    async def _process_event(self, db: Session, event: CrisisEvent, now: datetime) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"crisis_event_id": event.crisis_event_id, "user_id": event.user_id}
        samples = self.message_store.find_emotional_samples(
            event.user_id,
            since=now - timedelta(hours=self.activity_hours),
            until=now,
            limit=RECENT_ACTIVITY_LIMIT,
        )

        if samples:
            state = classify_emotional_state(samples)
            outcome = CrisisOutcome.RESOLVED if state == EmotionalState.IMPROVED else CrisisOutcome.ONGOING
            CrisisEventService.record_follow_up_responses(db, event, [s.created_at for s in samples], commit=False)
            result = CrisisEventService.mark_as_resolved(db, event, outcome, now=now)
            if not result["success"]:
                raise RuntimeError(result["reason"])
            detail.update(action="completed", emotional_state=state.value, outcome=outcome.value)
            return detail

        last_check_in = event.follow_up_messages[-1].sent_at if event.follow_up_messages else None
        if last_check_in is not None and now - last_check_in < timedelta(hours=self.retry_hours):
            detail.update(action="skipped", reason="check-in already sent")
            return detail

        CrisisEventService.add_follow_up_message(db, event, now=now)
        detail.update(action="check_in_sent", push_sent=await self._send_check_in(event, now))
        return detail

    async def _send_check_in(self, event: CrisisEvent, now: datetime) -> bool:
        try:
            token = self.user_store.get_push_token(event.user_id)
            if not token:
                return False
            text = build_follow_up_check_in(
                risk_level=event.risk_level,
                days_since_crisis=whole_days_between(event.detected_at, now),
                language=self.user_store.get_language_preference(event.user_id),
                lines=EMERGENCY_NUMBERS_BY_COUNTRY.get(settings.DEFAULT_COUNTRY_CODE, GENERAL_LINES),
            )
            response = await self.push_sender.send(
                token, text.title, text.body, {"type": "crisis_follow_up", "crisis_event_id": event.crisis_event_id}
            )
            return bool(response.get("success"))
        except Exception as exc:
            logger.warning(f"[follow-up] Check-in push for event {event.crisis_event_id} failed: {exc}")
            return False
