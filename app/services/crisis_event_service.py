from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.models.crisis_event import CrisisEvent, CrisisFollowUpMessage, CrisisOutcome, RiskLevel
from app.schemas.crisis_event import CrisisEventCreate, make_preview
from app.schemas.emergency_alert import DispatchResult
from app.schemas.risk import CrisisHistory
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

RECENT_CRISIS_DAYS = 7

EventRef = Union[CrisisEvent, int]


class CrisisEventService:
    """Crisis event ledger. Every mutation is committed immediately."""

    @staticmethod
    def _persist(db: Session, event: CrisisEvent, commit: bool) -> CrisisEvent:
        db.add(event)
        if commit:
            db.commit()
            db.refresh(event)
        else:
            db.flush()
        return event

    @staticmethod
    def _resolve(db: Session, event: EventRef) -> Optional[CrisisEvent]:
        if isinstance(event, CrisisEvent):
            return event
        return db.get(CrisisEvent, event)

    @staticmethod
    def get_event(db: Session, crisis_event_id: int) -> Optional[CrisisEvent]:
        stmt = (
            select(CrisisEvent)
            .options(selectinload(CrisisEvent.follow_up_messages))
            .where(CrisisEvent.crisis_event_id == crisis_event_id)
        )
        return db.scalars(stmt).first()

    @staticmethod
    def create(
        db: Session,
        data: CrisisEventCreate,
        *,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> CrisisEvent:
        trigger = data.trigger_message
        event = CrisisEvent(
            user_id=data.user_id,
            risk_level=data.risk_level,
            detected_at=data.detected_at or now or utcnow(),
            trigger_message_id=trigger.message_id,
            trigger_content_preview=make_preview(trigger.content_preview),
            trigger_emotion=trigger.emotion,
            trigger_intensity=trigger.intensity,
            trend_analysis=data.trend_analysis,
            crisis_history=data.crisis_history,
            event_metadata=data.metadata.model_dump(),
            notes=data.notes,
            outcome=CrisisOutcome.UNKNOWN,
            alerts_sent=False,
            contacts_notified=0,
            alert_email=False,
            alert_messaging=False,
            follow_up_scheduled=False,
            follow_up_completed=False,
        )
        event = CrisisEventService._persist(db, event, commit)
        logger.info(
            f"[crisis] Event {event.crisis_event_id} recorded for user {event.user_id} "
            f"(risk={event.risk_level.value})"
        )
        return event

    @staticmethod
    def get_recent_crises(
        db: Session, user_id: int, days: int = 30, *, now: Optional[datetime] = None
    ) -> List[CrisisEvent]:
        since = (now or utcnow()) - timedelta(days=days)
        stmt = (
            select(CrisisEvent)
            .where(CrisisEvent.user_id == user_id, CrisisEvent.detected_at >= since)
            .order_by(CrisisEvent.detected_at.desc())
        )
        return list(db.scalars(stmt))

    @staticmethod
    def get_crisis_history(
        db: Session, user_id: int, days: int = 30, *, now: Optional[datetime] = None
    ) -> CrisisHistory:
        """Distinct crisis days in the window and in its last week."""
        now = now or utcnow()
        try:
            events = CrisisEventService.get_recent_crises(db, user_id, days, now=now)
        except Exception as exc:
            logger.error(f"[crisis] Could not load crisis history for user {user_id}: {exc}")
            return CrisisHistory()

        recent_since = now - timedelta(days=RECENT_CRISIS_DAYS)
        all_days = sorted({e.detected_at.date().isoformat() for e in events})
        recent_days = {e.detected_at.date() for e in events if e.detected_at >= recent_since}
        return CrisisHistory(
            total_crises=len(all_days),
            recent_crises=len(recent_days),
            crisis_days=all_days,
        )

    @staticmethod
    def get_pending_follow_ups(db: Session, *, now: Optional[datetime] = None) -> List[CrisisEvent]:
        stmt = (
            select(CrisisEvent)
            .options(selectinload(CrisisEvent.follow_up_messages))
            .where(
                CrisisEvent.follow_up_scheduled.is_(True),
                CrisisEvent.follow_up_completed.is_(False),
                CrisisEvent.follow_up_scheduled_at <= (now or utcnow()),
            )
            .order_by(CrisisEvent.follow_up_scheduled_at.asc())
        )
        return list(db.scalars(stmt))

    @staticmethod
    def schedule_follow_up(
        db: Session,
        event: EventRef,
        hours: float,
        *,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Dict[str, Any]:
        """Set (or overwrite) the single follow-up slot of an event."""
        target = CrisisEventService._resolve(db, event)
        if target is None:
            return {"success": False, "reason": "crisis event not found"}
        if hours < 0:
            return {"success": False, "reason": "follow-up delay must not be negative"}
        target.follow_up_scheduled = True
        target.follow_up_scheduled_at = (now or utcnow()) + timedelta(hours=hours)
        CrisisEventService._persist(db, target, commit)
        return {"success": True, "event": target, "scheduled_at": target.follow_up_scheduled_at}

    @staticmethod
    def mark_as_resolved(
        db: Session,
        event: EventRef,
        outcome: CrisisOutcome = CrisisOutcome.RESOLVED,
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Dict[str, Any]:
        """Close the follow-up of an event with the given outcome."""
        target = CrisisEventService._resolve(db, event)
        if target is None:
            return {"success": False, "reason": "crisis event not found"}
        try:
            outcome = CrisisOutcome(outcome)
        except ValueError:
            return {"success": False, "reason": f"invalid outcome: {outcome}"}

        now = now or utcnow()
        target.outcome = outcome
        target.follow_up_completed = True
        target.follow_up_completed_at = now
        if outcome == CrisisOutcome.RESOLVED:
            target.resolved_at = now
        if notes:
            target.notes = notes[:1000]
        CrisisEventService._persist(db, target, commit)
        return {"success": True, "event": target}

    @staticmethod
    def record_alert_dispatch(
        db: Session,
        event: EventRef,
        result: DispatchResult,
        *,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Dict[str, Any]:
        target = CrisisEventService._resolve(db, event)
        if target is None:
            return {"success": False, "reason": "crisis event not found"}
        target.alerts_sent = result.sent
        target.alerts_sent_at = (now or utcnow()) if result.sent else None
        target.contacts_notified = result.successful_sends
        target.alert_email = result.successful_emails > 0
        target.alert_messaging = result.successful_messaging > 0
        CrisisEventService._persist(db, target, commit)
        return {"success": True, "event": target}

    @staticmethod
    def add_follow_up_message(
        db: Session,
        event: EventRef,
        *,
        now: Optional[datetime] = None,
        commit: bool = True,
    ) -> Dict[str, Any]:
        target = CrisisEventService._resolve(db, event)
        if target is None:
            return {"success": False, "reason": "crisis event not found"}
        message = CrisisFollowUpMessage(sent_at=now or utcnow(), response_received=False)
        target.follow_up_messages.append(message)
        CrisisEventService._persist(db, target, commit)
        return {"success": True, "message": message}

    @staticmethod
    def record_follow_up_responses(
        db: Session,
        event: EventRef,
        activity_times: Sequence[datetime],
        *,
        commit: bool = True,
    ) -> Dict[str, Any]:
        """Mark open check-ins as answered by the first activity at or after each one."""
        target = CrisisEventService._resolve(db, event)
        if target is None:
            return {"success": False, "reason": "crisis event not found"}
        times = sorted(activity_times)
        answered = 0
        for message in target.follow_up_messages:
            if message.response_received:
                continue
            reply = next((t for t in times if t >= message.sent_at), None)
            if reply is None:
                continue
            message.response_received = True
            message.response_at = reply
            answered += 1
        if answered:
            CrisisEventService._persist(db, target, commit)
        return {"success": True, "answered": answered}

    @staticmethod
    def is_valid_risk_level(value: Any) -> bool:
        try:
            RiskLevel(value)
        except ValueError:
            return False
        return True
