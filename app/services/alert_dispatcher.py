"""
Alert Dispatcher

Notifies a user's emergency contacts when a crisis is detected:
1. LOW risk never alerts
2. One dispatch per user per cooldown window (default 60 minutes)
3. For every enabled contact: templated email, then WhatsApp if a phone is on file
4. One EmergencyAlert row per contact, written in the background
5. On any success: cooldown is armed, the user gets a push, live sessions get an event

Nothing raises past ``send_emergency_alerts``; failures are folded into the
returned ``DispatchResult``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.crisis_event import RiskLevel
from app.models.emergency_alert import AlertChannel, AlertStatus, EmergencyAlert
from app.schemas.crisis_event import make_preview
from app.schemas.emergency_alert import (
    ChannelResult,
    ContactDispatchResult,
    DispatchOptions,
    DispatchResult,
    EmergencyContactInfo,
)
from app.services.alert_templates import (
    build_contact_email,
    build_contact_message,
    build_user_alert_push,
    is_test_message,
)
from app.services.cooldown_cache import CooldownCache
from app.services.email_service import mask_email
from app.services.interfaces import EmailSender, LiveAlertNotifier, MessagingSender, PushSender, UserStore
from app.services.whatsapp_service import NOT_CONFIGURED, mask_phone
from app.utils.background_tasks import BackgroundTaskRunner
from app.utils.date_utils import utcnow

logger = logging.getLogger(__name__)

REASON_RISK_TOO_LOW = "risk too low"
REASON_COOLDOWN = "cooldown active"
REASON_NO_CONTACTS = "no contacts"
REASON_ALL_FAILED = "all channels failed"


def derive_status(email: ChannelResult, messaging: ChannelResult) -> AlertStatus:
    """sent if every attempted channel succeeded, partial if some did, failed otherwise."""
    attempted = [c for c in (email, messaging) if c.attempted]
    succeeded = [c for c in attempted if c.sent]
    if not succeeded:
        return AlertStatus.FAILED
    if len(succeeded) == len(attempted):
        return AlertStatus.SENT
    return AlertStatus.PARTIAL


class AlertDispatcher:
    def __init__(
        self,
        *,
        user_store: UserStore,
        email_sender: EmailSender,
        messaging_sender: MessagingSender,
        push_sender: PushSender,
        cooldown_cache: CooldownCache,
        runner: BackgroundTaskRunner,
        session_factory: Callable[[], Session],
        live_notifier: Optional[LiveAlertNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
        cooldown_minutes: Optional[int] = None,
    ) -> None:
        self.user_store = user_store
        self.email_sender = email_sender
        self.messaging_sender = messaging_sender
        self.push_sender = push_sender
        self.cooldown_cache = cooldown_cache
        self.runner = runner
        self.session_factory = session_factory
        self.live_notifier = live_notifier
        self.clock = clock
        self.cooldown_minutes = cooldown_minutes if cooldown_minutes is not None else settings.ALERT_COOLDOWN_MINUTES

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self.cooldown_minutes)

    def in_cooldown(self, user_id: int, now: Optional[datetime] = None) -> bool:
        last = self.cooldown_cache.get(user_id)
        if last is None:
            return False
        return (now or self.clock()) - last < self.cooldown

    def sweep_cooldowns(self) -> int:
        return self.cooldown_cache.sweep(self.cooldown)

    async def send_emergency_alerts(
        self,
        user_id: int,
        risk_level: RiskLevel,
        message_content: Optional[str],
        options: Optional[DispatchOptions] = None,
    ) -> DispatchResult:
        try:
            return await self._dispatch(user_id, RiskLevel(risk_level), message_content, options or DispatchOptions())
        except Exception as exc:
            logger.exception("[alerts] Dispatch for user %s failed", user_id)
            return DispatchResult(sent=False, reason=f"error: {exc}")

    # ========================================================================
    # DISPATCH STEPS
    # ========================================================================

    async def _dispatch(
        self,
        user_id: int,
        risk_level: RiskLevel,
        message_content: Optional[str],
        options: DispatchOptions,
    ) -> DispatchResult:
        if risk_level == RiskLevel.LOW:
            return DispatchResult(sent=False, reason=REASON_RISK_TOO_LOW)

        now = self.clock()
        if self.in_cooldown(user_id, now):
            logger.info("[alerts] Cooldown active for user %s; skipping dispatch", user_id)
            return DispatchResult(sent=False, reason=REASON_COOLDOWN)

        contacts = [c for c in self.user_store.get_emergency_contacts(user_id) if c.enabled]
        if not contacts:
            logger.warning("[alerts] User %s has no active emergency contacts", user_id)
            return DispatchResult(sent=False, reason=REASON_NO_CONTACTS)

        is_test = is_test_message(message_content)
        language = self.user_store.get_language_preference(user_id)
        summary = self.user_store.get_user_summary(user_id) or {}
        user_name = summary.get("name") or ""

        results: List[ContactDispatchResult] = []
        for contact in contacts:
            results.append(
                await self._dispatch_contact(
                    contact,
                    user_name=user_name,
                    risk_level=risk_level,
                    language=language,
                    is_test=is_test,
                )
            )

        successful_sends = sum(1 for r in results if r.any_sent)
        result = DispatchResult(
            sent=successful_sends > 0,
            reason=None if successful_sends else REASON_ALL_FAILED,
            contacts=results,
            total_contacts=len(contacts),
            successful_sends=successful_sends,
            successful_emails=sum(1 for r in results if r.email.sent),
            successful_messaging=sum(1 for r in results if r.messaging.sent),
            is_test=is_test,
        )

        self.runner.submit(
            self._persist_alerts(user_id, risk_level, message_content, options, result, now),
            name=f"persist-alerts-{user_id}",
        )

        if result.sent:
            self.cooldown_cache.set(user_id, now)
            self.runner.submit(self._notify_user(user_id, language, is_test), name=f"alert-push-{user_id}")
            if self.live_notifier is not None:
                self.runner.submit(
                    self.live_notifier.broadcast_alert(user_id, self._live_event(risk_level, options, result)),
                    name=f"alert-ws-{user_id}",
                )

        logger.info(
            "[alerts] User %s: %d/%d contacts reached (email=%d, messaging=%d, test=%s)",
            user_id,
            result.successful_sends,
            result.total_contacts,
            result.successful_emails,
            result.successful_messaging,
            is_test,
        )
        return result

    async def _dispatch_contact(
        self,
        contact: EmergencyContactInfo,
        *,
        user_name: str,
        risk_level: RiskLevel,
        language: str,
        is_test: bool,
    ) -> ContactDispatchResult:
        result = ContactDispatchResult(contact=contact)
        if contact.email:
            result.email = await self._send_email(contact, user_name, risk_level, language, is_test)
        if contact.phone:
            result.messaging = await self._send_messaging(contact, user_name, risk_level, language, is_test)
        result.status = derive_status(result.email, result.messaging)
        return result

    async def _send_email(
        self,
        contact: EmergencyContactInfo,
        user_name: str,
        risk_level: RiskLevel,
        language: str,
        is_test: bool,
    ) -> ChannelResult:
        if not self.email_sender.configured:
            return ChannelResult(channel=AlertChannel.EMAIL, attempted=False, error=NOT_CONFIGURED)
        try:
            subject, html = build_contact_email(
                user_name=user_name,
                contact_name=contact.name,
                risk_level=risk_level,
                language=language,
                contact_phone=contact.phone,
                is_test=is_test,
            )
            ok = await self.email_sender.send(contact.email, subject, html)
        except Exception as exc:
            logger.error("[alerts] Email to %s raised: %s", mask_email(contact.email), exc)
            return ChannelResult(channel=AlertChannel.EMAIL, attempted=True, sent=False, error=str(exc))
        if ok:
            return ChannelResult(channel=AlertChannel.EMAIL, attempted=True, sent=True, sent_at=self.clock())
        return ChannelResult(channel=AlertChannel.EMAIL, attempted=True, sent=False, error="email delivery failed")

    async def _send_messaging(
        self,
        contact: EmergencyContactInfo,
        user_name: str,
        risk_level: RiskLevel,
        language: str,
        is_test: bool,
    ) -> ChannelResult:
        if not self.messaging_sender.configured:
            return ChannelResult(channel=AlertChannel.MESSAGING, attempted=False, error=NOT_CONFIGURED)
        try:
            body = build_contact_message(
                user_name=user_name,
                contact_name=contact.name,
                risk_level=risk_level,
                language=language,
                contact_phone=contact.phone,
                is_test=is_test,
            )
            response = await self.messaging_sender.send(contact.phone, body)
        except Exception as exc:
            logger.error("[alerts] Messaging to %s raised: %s", mask_phone(contact.phone), exc)
            return ChannelResult(channel=AlertChannel.MESSAGING, attempted=True, sent=False, error=str(exc))

        error = response.get("error")
        if not response.get("success") and error == NOT_CONFIGURED:
            return ChannelResult(channel=AlertChannel.MESSAGING, attempted=False, error=NOT_CONFIGURED)
        if response.get("success"):
            return ChannelResult(
                channel=AlertChannel.MESSAGING,
                attempted=True,
                sent=True,
                sent_at=self.clock(),
                provider=response.get("provider"),
            )
        return ChannelResult(
            channel=AlertChannel.MESSAGING,
            attempted=True,
            sent=False,
            error=error or "messaging delivery failed",
            provider=response.get("provider"),
        )

    # ========================================================================
    # BACKGROUND SIDE EFFECTS
    # ========================================================================

    async def _persist_alerts(
        self,
        user_id: int,
        risk_level: RiskLevel,
        message_content: Optional[str],
        options: DispatchOptions,
        result: DispatchResult,
        now: datetime,
    ) -> None:
        preview = make_preview(message_content)
        metadata = {
            "riskScore": options.risk_score,
            "factors": list(options.factors),
            "totalContactsNotified": result.successful_sends,
        }
        with self.session_factory() as db:
            for r in result.contacts:
                db.add(
                    EmergencyAlert(
                        user_id=user_id,
                        crisis_event_id=options.crisis_event_id,
                        risk_level=risk_level,
                        contact_id=r.contact.contact_id,
                        contact_name=r.contact.name,
                        contact_email=r.contact.email,
                        contact_phone=r.contact.phone,
                        contact_relationship=r.contact.relationship,
                        email_sent=r.email.sent,
                        email_sent_at=r.email.sent_at,
                        email_error=r.email.error,
                        messaging_sent=r.messaging.sent,
                        messaging_sent_at=r.messaging.sent_at,
                        messaging_error=r.messaging.error,
                        messaging_provider=r.messaging.provider,
                        is_test=result.is_test,
                        trigger_message_preview=preview,
                        trend_analysis=options.trend_analysis,
                        alert_metadata=metadata,
                        status=r.status,
                        sent_at=now,
                    )
                )
            db.commit()
        logger.info("[alerts] Stored %d alert records for user %s", len(result.contacts), user_id)

    async def _notify_user(self, user_id: int, language: str, is_test: bool) -> None:
        token = self.user_store.get_push_token(user_id)
        if not token:
            logger.debug("[alerts] No push token for user %s", user_id)
            return
        text = build_user_alert_push(language, is_test=is_test)
        response = await self.push_sender.send(token, text.title, text.body, {"type": "crisis_alert_sent"})
        if not response.get("success"):
            logger.warning("[alerts] Push to user %s failed: %s", user_id, response.get("error"))

    @staticmethod
    def _live_event(risk_level: RiskLevel, options: DispatchOptions, result: DispatchResult) -> Dict[str, Any]:
        return {
            "risk_level": risk_level.value,
            "crisis_event_id": options.crisis_event_id,
            "contacts_notified": result.successful_sends,
            "total_contacts": result.total_contacts,
            "is_test": result.is_test,
        }
