"""
Crisis Metrics Service
======================

Read-only aggregations over the crisis ledger and the alert log for one
user. Every method tolerates empty periods by returning zeroed structures,
and a failing query is logged and answered with the same zeroed shape.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from app.models.crisis_event import CrisisEvent, CrisisOutcome, RiskLevel
from app.models.emergency_alert import AlertStatus, EmergencyAlert
from app.models.messages import Message, MessageRole
from app.schemas.crisis_event import CrisisEvent as CrisisEventRead
from app.services.trend_analyzer import LONG_TERM_DAYS, TrendAnalyzer
from app.utils.date_utils import month_key, month_start, trailing_months, utcnow
from app.utils.enums_mapping import normalize_emotion, risk_level_to_score, score_to_risk_level

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_PERIOD = "30d"
RECENT_DAYS = 7


def _rate(part: int, whole: int) -> float:
    return round(part / whole, 2) if whole else 0.0


def _by_level(events: List[CrisisEvent]) -> Dict[str, int]:
    counts = Counter(e.risk_level.value for e in events)
    return {level.value: counts.get(level.value, 0) for level in RiskLevel}


def _is_resolved(event: CrisisEvent) -> bool:
    return event.outcome == CrisisOutcome.RESOLVED or event.resolved_at is not None


def _distribution(emotions: List[str]) -> Dict[str, float]:
    counts = Counter(emotions)
    total = len(emotions)
    return {emotion: _rate(n, total) for emotion, n in counts.items()}


class CrisisMetricsService:
    @staticmethod
    def _events(
        db: Session, user_id: int, since: datetime, until: Optional[datetime] = None
    ) -> List[CrisisEvent]:
        stmt = select(CrisisEvent).where(CrisisEvent.user_id == user_id, CrisisEvent.detected_at >= since)
        if until is not None:
            stmt = stmt.where(CrisisEvent.detected_at < until)
        return list(db.scalars(stmt.order_by(CrisisEvent.detected_at.asc())))

    # ========================================================================
    # SUMMARY
    # ========================================================================

    @staticmethod
    def empty_summary(days: int = 30) -> Dict[str, Any]:
        return {
            "total_crises": 0,
            "crises_this_month": 0,
            "recent_crises": 0,
            "crises_by_level": {level.value: 0 for level in RiskLevel},
            "average_risk_level": RiskLevel.LOW.value,
            "resolution_rate": 0.0,
            "alerts_sent": 0,
            "follow_ups_completed": 0,
            "period": days,
        }

    @staticmethod
    def get_crisis_summary(
        db: Session, user_id: int, days: int = 30, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utcnow()
        try:
            events = CrisisMetricsService._events(db, user_id, now - timedelta(days=days))
        except Exception as exc:
            logger.error(f"[metrics] Summary for user {user_id} failed: {exc}")
            return CrisisMetricsService.empty_summary(days)

        total = len(events)
        this_month = datetime.combine(month_start(now.date()), datetime.min.time())
        recent_since = now - timedelta(days=RECENT_DAYS)
        avg_score = sum(risk_level_to_score(e.risk_level) for e in events) / total if total else 0
        return {
            "total_crises": total,
            "crises_this_month": sum(1 for e in events if e.detected_at >= this_month),
            "recent_crises": sum(1 for e in events if e.detected_at >= recent_since),
            "crises_by_level": _by_level(events),
            "average_risk_level": score_to_risk_level(avg_score),
            "resolution_rate": _rate(sum(1 for e in events if _is_resolved(e)), total),
            "alerts_sent": sum(1 for e in events if e.alerts_sent),
            "follow_ups_completed": sum(1 for e in events if e.follow_up_completed),
            "period": days,
        }

    # ========================================================================
    # EMOTIONAL TRENDS
    # ========================================================================

    @staticmethod
    def get_emotional_trends(
        db: Session, user_id: int, period: str = DEFAULT_PERIOD, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utcnow()
        days = PERIOD_DAYS.get(period, PERIOD_DAYS[DEFAULT_PERIOD])
        result: Dict[str, Any] = {
            "period": period,
            "average_intensity": 5.0,
            "trend": "stable",
            "emotion_trend": "stable",
            "data_points": [],
            "emotion_distribution": {},
            "warnings": [],
        }
        try:
            stmt = (
                select(Message)
                .where(
                    Message.user_id == user_id,
                    Message.role == MessageRole.user,
                    Message.emotion.is_not(None),
                    Message.created_at >= now - timedelta(days=LONG_TERM_DAYS),
                    Message.created_at <= now,
                )
                .order_by(Message.created_at.asc())
            )
            samples = list(db.scalars(stmt))
        except Exception as exc:
            logger.error(f"[metrics] Emotional trends for user {user_id} failed: {exc}")
            return result

        analysis = TrendAnalyzer.analyze_samples(samples, now)
        if analysis.trends is not None:
            result["trend"] = analysis.trends.intensity_trend.value
            result["emotion_trend"] = analysis.trends.emotion_trend.value
        result["warnings"] = analysis.warnings

        since = now - timedelta(days=days)
        in_period = [m for m in samples if m.created_at >= since]
        if not in_period:
            return result

        daily: Dict[str, List[int]] = defaultdict(list)
        for m in in_period:
            daily[m.created_at.date().isoformat()].append(m.intensity if m.intensity is not None else 5)
        result["data_points"] = [
            {"date": day, "intensity": round(sum(values) / len(values), 1), "message_count": len(values)}
            for day, values in sorted(daily.items())
        ]
        intensities = [v for values in daily.values() for v in values]
        result["average_intensity"] = round(sum(intensities) / len(intensities), 1)
        result["emotion_distribution"] = _distribution(
            [normalize_emotion(m.emotion) or "neutral" for m in in_period]
        )
        return result

    # ========================================================================
    # MONTHLY / HISTORY
    # ========================================================================

    @staticmethod
    def get_crisis_by_month(
        db: Session, user_id: int, months: int = 6, *, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        now = now or utcnow()
        windows = trailing_months(now, max(months, 1))
        buckets = {
            month_key(start): {
                "month": start.strftime("%b %Y"),
                "month_key": month_key(start),
                "crises": 0,
                "high": 0,
                "medium": 0,
                "warning": 0,
                "low": 0,
            }
            for start, _ in windows
        }
        try:
            since = datetime.combine(windows[0][0], datetime.min.time())
            events = CrisisMetricsService._events(db, user_id, since)
        except Exception as exc:
            logger.error(f"[metrics] Monthly crises for user {user_id} failed: {exc}")
            return list(buckets.values())

        for event in events:
            bucket = buckets.get(month_key(event.detected_at.date()))
            if bucket is None:
                continue
            bucket["crises"] += 1
            bucket[event.risk_level.value.lower()] += 1
        return list(buckets.values())

    @staticmethod
    def get_crisis_history(
        db: Session,
        user_id: int,
        *,
        limit: int = 20,
        offset: int = 0,
        risk_level: Optional[RiskLevel] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {"crises": [], "total": 0, "limit": limit, "offset": offset, "has_more": False}
        conditions = [CrisisEvent.user_id == user_id]
        if risk_level is not None:
            conditions.append(CrisisEvent.risk_level == RiskLevel(risk_level))
        if start_date is not None:
            conditions.append(CrisisEvent.detected_at >= start_date)
        if end_date is not None:
            conditions.append(CrisisEvent.detected_at <= end_date)
        try:
            total = db.scalar(select(func.count(CrisisEvent.crisis_event_id)).where(*conditions)) or 0
            stmt = (
                select(CrisisEvent)
                .options(selectinload(CrisisEvent.follow_up_messages))
                .where(*conditions)
                .order_by(CrisisEvent.detected_at.desc())
                .limit(limit)
                .offset(offset)
            )
            events = list(db.scalars(stmt))
        except Exception as exc:
            logger.error(f"[metrics] Crisis history for user {user_id} failed: {exc}")
            return result

        result["crises"] = [CrisisEventRead.model_validate(e).model_dump(mode="json") for e in events]
        result["total"] = total
        result["has_more"] = offset + limit < total
        return result

    # ========================================================================
    # ALERTS & FOLLOW-UPS
    # ========================================================================

    @staticmethod
    def get_alert_statistics(
        db: Session,
        user_id: int,
        days: int = 30,
        *,
        include_tests: bool = False,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or utcnow()
        since = now - timedelta(days=days)
        result: Dict[str, Any] = {
            "total_alerts": 0,
            "alerts_by_channel": {"email": 0, "messaging": 0, "both": 0},
            "alerts_by_status": {status.value: 0 for status in AlertStatus},
            "total_contacts_notified": 0,
            "average_contacts_per_alert": 0.0,
            "contact_reliability": [],
            "period": days,
        }
        try:
            events = [e for e in CrisisMetricsService._events(db, user_id, since) if e.alerts_sent]
            stmt = select(EmergencyAlert).where(EmergencyAlert.user_id == user_id, EmergencyAlert.sent_at >= since)
            if not include_tests:
                stmt = stmt.where(EmergencyAlert.is_test.is_(False))
            alerts = list(db.scalars(stmt))
        except Exception as exc:
            logger.error(f"[metrics] Alert statistics for user {user_id} failed: {exc}")
            return result

        total = len(events)
        notified = sum(e.contacts_notified for e in events)
        result["total_alerts"] = total
        result["alerts_by_channel"] = {
            "email": sum(1 for e in events if e.alert_email),
            "messaging": sum(1 for e in events if e.alert_messaging),
            "both": sum(1 for e in events if e.alert_email and e.alert_messaging),
        }
        status_counts = Counter(a.status.value for a in alerts)
        result["alerts_by_status"] = {status.value: status_counts.get(status.value, 0) for status in AlertStatus}
        result["total_contacts_notified"] = notified
        result["average_contacts_per_alert"] = round(notified / total, 1) if total else 0.0

        per_contact: Dict[Any, Dict[str, Any]] = {}
        for alert in alerts:
            key = alert.contact_id if alert.contact_id is not None else alert.contact_name
            entry = per_contact.setdefault(
                key,
                {"contact_id": alert.contact_id, "contact_name": alert.contact_name, "successful": 0, "failed": 0},
            )
            if alert.status == AlertStatus.FAILED:
                entry["failed"] += 1
            else:
                entry["successful"] += 1
        result["contact_reliability"] = list(per_contact.values())
        return result

    @staticmethod
    def get_follow_up_statistics(
        db: Session, user_id: int, days: int = 30, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utcnow()
        result: Dict[str, Any] = {
            "scheduled": 0,
            "completed": 0,
            "pending": 0,
            "completion_rate": 0.0,
            "outcomes": {outcome.value: 0 for outcome in CrisisOutcome},
            "period": days,
        }
        try:
            events = CrisisMetricsService._events(db, user_id, now - timedelta(days=days))
        except Exception as exc:
            logger.error(f"[metrics] Follow-up statistics for user {user_id} failed: {exc}")
            return result

        scheduled = sum(1 for e in events if e.follow_up_scheduled)
        completed = sum(1 for e in events if e.follow_up_completed)
        outcomes = Counter(e.outcome.value for e in events)
        result.update(
            scheduled=scheduled,
            completed=completed,
            pending=max(scheduled - completed, 0),
            completion_rate=_rate(completed, scheduled),
            outcomes={outcome.value: outcomes.get(outcome.value, 0) for outcome in CrisisOutcome},
        )
        return result

    @staticmethod
    def get_emotion_distribution(
        db: Session, user_id: int, days: int = 30, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Main emotion of the trigger message, across crises in the window."""
        now = now or utcnow()
        try:
            events = CrisisMetricsService._events(db, user_id, now - timedelta(days=days))
        except Exception as exc:
            logger.error(f"[metrics] Emotion distribution for user {user_id} failed: {exc}")
            return {"distribution": {}, "total": 0, "period": days}

        emotions = [normalize_emotion(e.trigger_emotion) for e in events if e.trigger_emotion]
        return {"distribution": _distribution(emotions), "total": len(emotions), "period": days}

    # ========================================================================
    # COMPARISON / EXPORT
    # ========================================================================

    @staticmethod
    def compare_periods(
        db: Session,
        user_id: int,
        current_days: int = 30,
        previous_days: int = 30,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        now = now or utcnow()
        current = CrisisMetricsService.get_crisis_summary(db, user_id, current_days, now=now)
        current_start = now - timedelta(days=current_days)
        try:
            previous_events = CrisisMetricsService._events(
                db, user_id, current_start - timedelta(days=previous_days), current_start
            )
        except Exception as exc:
            logger.error(f"[metrics] Previous period for user {user_id} failed: {exc}")
            previous_events = []

        prev_total = len(previous_events)
        previous = {
            "total_crises": prev_total,
            "crises_by_level": _by_level(previous_events),
            "resolution_rate": _rate(sum(1 for e in previous_events if _is_resolved(e)), prev_total),
        }

        def change_percent(now_value: float, before: float) -> float:
            if before:
                return round((now_value - before) / before * 100, 1)
            return 100.0 if now_value else 0.0

        return {
            "current": current,
            "previous": previous,
            "comparison": {
                "total_crises_change": current["total_crises"] - prev_total,
                "total_crises_change_percent": change_percent(current["total_crises"], prev_total),
                "resolution_rate_change": round(current["resolution_rate"] - previous["resolution_rate"], 2),
                "resolution_rate_change_percent": change_percent(
                    current["resolution_rate"], previous["resolution_rate"]
                ),
            },
        }

    @staticmethod
    def get_export_data(
        db: Session, user_id: int, days: int = 90, *, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        now = now or utcnow()
        months = max(1, -(-days // 30))
        history = CrisisMetricsService.get_crisis_history(
            db, user_id, limit=1000, start_date=now - timedelta(days=days)
        )
        return {
            "summary": CrisisMetricsService.get_crisis_summary(db, user_id, days, now=now),
            "trends": CrisisMetricsService.get_emotional_trends(db, user_id, DEFAULT_PERIOD, now=now),
            "monthly_data": CrisisMetricsService.get_crisis_by_month(db, user_id, months, now=now),
            "history": history["crises"],
            "alerts_stats": CrisisMetricsService.get_alert_statistics(db, user_id, days, now=now),
            "follow_up_stats": CrisisMetricsService.get_follow_up_statistics(db, user_id, days, now=now),
            "export_date": now.isoformat() + "Z",
            "period": days,
        }
