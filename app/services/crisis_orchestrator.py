"""
Crisis Orchestrator

Per inbound user message:
    trends -> crisis history -> risk score -> ledger -> alerts -> follow-up

WARNING only earns a supportive push. MEDIUM and HIGH are ledgered, the
emergency contacts are alerted and a follow-up is scheduled. Profile
bookkeeping runs in the background. Nothing here raises to the caller: the
conversational reply must never wait on or fail because of crisis handling.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.models.crisis_event import RiskLevel
from app.schemas.crisis_event import CrisisEventCreate, CrisisMetadata, TriggerMessage
from app.schemas.emergency_alert import DispatchOptions, DispatchResult
from app.schemas.risk import (
    CrisisHandlingResult,
    CrisisHistory,
    IncomingMessage,
    MessageAnalyses,
    RiskAssessment,
    RiskContext,
    RiskScoringWeights,
)
from app.schemas.trend import TrendAnalysis
from app.services.alert_dispatcher import AlertDispatcher
from app.services.alert_templates import build_warning_push
from app.services.crisis_event_service import CrisisEventService
from app.services.follow_up_scheduler import FollowUpScheduler
from app.services.interfaces import PushSender, UserStore
from app.services.risk_evaluator import DEFAULT_WEIGHTS, RiskThresholds, assess_risk, is_crisis
from app.services.trend_analyzer import TrendAnalyzer
from app.utils.background_tasks import BackgroundTaskRunner
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)


class CrisisOrchestrator:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        trend_analyzer: TrendAnalyzer,
        dispatcher: AlertDispatcher,
        follow_up_scheduler: FollowUpScheduler,
        user_store: UserStore,
        push_sender: PushSender,
        runner: BackgroundTaskRunner,
        weights: RiskScoringWeights = DEFAULT_WEIGHTS,
        thresholds: Optional[RiskThresholds] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.trend_analyzer = trend_analyzer
        self.dispatcher = dispatcher
        self.follow_up_scheduler = follow_up_scheduler
        self.user_store = user_store
        self.push_sender = push_sender
        self.runner = runner
        self.weights = weights
        self.thresholds = thresholds or RiskThresholds.from_settings()
        self.clock = clock

    async def handle_incoming_message(
        self,
        user_id: int,
        message: IncomingMessage,
        analyses: Optional[MessageAnalyses] = None,
    ) -> CrisisHandlingResult:
        analyses = analyses or MessageAnalyses()
        now = self.clock()
        try:
            trend = await self.trend_analyzer.analyze_trends(user_id)
            history = self._crisis_history(user_id, now)
            assessment = assess_risk(
                analyses.emotional,
                analyses.contextual,
                message.content,
                RiskContext(
                    trend_analysis=trend,
                    crisis_history=history,
                    conversation_context=analyses.conversation_context,
                ),
                weights=self.weights,
                thresholds=self.thresholds,
            )
            level = assessment.risk_level
            crisis = is_crisis(level, analyses.contextual, self.thresholds)
        except Exception:
            logger.exception(f"[crisis] Risk evaluation failed for user {user_id}")
            return CrisisHandlingResult(is_crisis=False, risk_level=RiskLevel.LOW)

        self.runner.submit(self._record_assessment(user_id, level, now), name=f"risk-profile-{user_id}")

        if level == RiskLevel.WARNING:
            # WARNING never reaches the ledger or the contacts
            self.runner.submit(self._send_warning_push(user_id), name=f"warning-push-{user_id}")
            return CrisisHandlingResult(is_crisis=False, risk_level=level)
        if not crisis:
            return CrisisHandlingResult(is_crisis=False, risk_level=level)

        logger.warning(
            f"[crisis] {level.value} risk for user {user_id} (score={assessment.score}, factors={assessment.factors})"
        )
        event_id = self._record_event(user_id, message, analyses, assessment, trend, history, now)
        dispatch = await self.dispatcher.send_emergency_alerts(
            user_id,
            level,
            message.content,
            DispatchOptions(
                crisis_event_id=event_id,
                trend_analysis=trend.model_dump(mode="json"),
                risk_score=assessment.score,
                factors=assessment.factors,
            ),
        )
        if event_id is not None:
            self._finish_event(event_id, dispatch, now)
        return CrisisHandlingResult(is_crisis=True, risk_level=level, crisis_event_id=event_id)

    # ========================================================================
    # STEPS
    # ========================================================================

    def _crisis_history(self, user_id: int, now: datetime) -> CrisisHistory:
        with self.session_factory() as db:
            return CrisisEventService.get_crisis_history(db, user_id, now=now)

    def _record_event(
        self,
        user_id: int,
        message: IncomingMessage,
        analyses: MessageAnalyses,
        assessment: RiskAssessment,
        trend: TrendAnalysis,
        history: CrisisHistory,
        now: datetime,
    ) -> Optional[int]:
        data = CrisisEventCreate(
            user_id=user_id,
            risk_level=assessment.risk_level,
            trigger_message=TriggerMessage(
                message_id=message.message_id,
                content_preview=message.content,
                emotion=analyses.emotional.main_emotion,
                intensity=analyses.emotional.intensity,
            ),
            trend_analysis=trend.model_dump(mode="json"),
            crisis_history=history.model_dump(),
            metadata=CrisisMetadata(
                risk_score=assessment.score,
                factors=assessment.factors,
                protective_factors=assessment.protective_factors,
            ),
            detected_at=now,
        )
        try:
            with self.session_factory() as db:
                return CrisisEventService.create(db, data, now=now).crisis_event_id
        except Exception:
            # Contacts are still alerted without a ledger entry
            logger.exception(f"[crisis] Could not record crisis event for user {user_id}")
            return None

    def _finish_event(self, event_id: int, dispatch: DispatchResult, now: datetime) -> None:
        try:
            with self.session_factory() as db:
                event = CrisisEventService.get_event(db, event_id)
                if event is None:
                    logger.error(f"[crisis] Event {event_id} vanished before follow-up scheduling")
                    return
                CrisisEventService.record_alert_dispatch(db, event, dispatch, now=now)
                self.follow_up_scheduler.register(db, event)
        except Exception:
            logger.exception(f"[crisis] Could not finalize event {event_id}")

    # ========================================================================
    # BACKGROUND
    # ========================================================================

    async def _record_assessment(self, user_id: int, level: RiskLevel, now: datetime) -> None:
        self.user_store.record_risk_assessment(user_id, level.value, now)

    async def _send_warning_push(self, user_id: int) -> None:
        token = self.user_store.get_push_token(user_id)
        if not token:
            return
        text = build_warning_push(self.user_store.get_language_preference(user_id))
        await self.push_sender.send(token, text.title, text.body, {"type": "wellbeing_check"})
