from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from app.services.alert_dispatcher import AlertDispatcher
from app.services.cooldown_cache import InMemoryCooldownCache
from app.services.crisis_orchestrator import CrisisOrchestrator
from app.services.email_service import SmtpEmailSender
from app.services.follow_up_scheduler import FollowUpScheduler
from app.services.interfaces import EmailSender, LiveAlertNotifier, MessagingSender, PushSender
from app.services.push_notification_service import ExpoPushSender
from app.services.stores import SqlMessageStore, SqlUserStore
from app.services.trend_analyzer import TrendAnalyzer
from app.services.whatsapp_service import build_default_messaging_sender
from app.utils.background_tasks import BackgroundTaskRunner


@dataclass
class CrisisServices:
    orchestrator: CrisisOrchestrator
    dispatcher: AlertDispatcher
    follow_up_scheduler: FollowUpScheduler
    trend_analyzer: TrendAnalyzer
    user_store: SqlUserStore
    runner: BackgroundTaskRunner = field(repr=False)


def build_crisis_services(
    session_factory: Callable[[], Session],
    *,
    email_sender: Optional[EmailSender] = None,
    messaging_sender: Optional[MessagingSender] = None,
    push_sender: Optional[PushSender] = None,
    live_notifier: Optional[LiveAlertNotifier] = None,
    runner: Optional[BackgroundTaskRunner] = None,
) -> CrisisServices:
    """Wire the crisis pipeline; providers default to the configured SMTP/WhatsApp/Expo senders."""
    runner = runner or BackgroundTaskRunner()
    push_sender = push_sender or ExpoPushSender()
    user_store = SqlUserStore(session_factory)
    message_store = SqlMessageStore(session_factory)

    trend_analyzer = TrendAnalyzer(message_store)
    dispatcher = AlertDispatcher(
        user_store=user_store,
        email_sender=email_sender or SmtpEmailSender(),
        messaging_sender=messaging_sender or build_default_messaging_sender(),
        push_sender=push_sender,
        cooldown_cache=InMemoryCooldownCache(),
        runner=runner,
        session_factory=session_factory,
        live_notifier=live_notifier,
    )
    follow_up_scheduler = FollowUpScheduler(
        session_factory=session_factory,
        message_store=message_store,
        user_store=user_store,
        push_sender=push_sender,
    )
    orchestrator = CrisisOrchestrator(
        session_factory=session_factory,
        trend_analyzer=trend_analyzer,
        dispatcher=dispatcher,
        follow_up_scheduler=follow_up_scheduler,
        user_store=user_store,
        push_sender=push_sender,
        runner=runner,
    )
    return CrisisServices(
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        follow_up_scheduler=follow_up_scheduler,
        trend_analyzer=trend_analyzer,
        user_store=user_store,
        runner=runner,
    )


def get_crisis_services(request: Request) -> CrisisServices:
    return request.app.state.crisis_services
