"""
Localized (es/en) texts for crisis alerts.

Contact emails and WhatsApp bodies never include what the user wrote: they
only say that the user may need support and list the local emergency lines
for the contact's country.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Dict, Optional, Tuple

from app.models.crisis_event import RiskLevel
from app.utils.emergency_numbers import EmergencyLines, format_emergency_numbers, get_emergency_lines

SUPPORTED_LANGUAGES = ("es", "en")
TEST_MARKER = "[TEST]"


@dataclass(frozen=True)
class PushText:
    title: str
    body: str


def normalize_language(language: Optional[str]) -> str:
    lang = (language or "es").lower()[:2]
    return lang if lang in SUPPORTED_LANGUAGES else "es"


def is_test_message(content: Optional[str]) -> bool:
    return bool(content) and TEST_MARKER in content


# ============================================================================
# CONTACT EMAIL
# ============================================================================

_EMAIL_TEXT: Dict[str, Dict[str, str]] = {
    "es": {
        "subject_high": "Urgente: {user} podría necesitar tu apoyo ahora",
        "subject_medium": "{user} podría necesitar tu apoyo",
        "subject_test": "[PRUEBA] Alerta de contacto de emergencia de {user}",
        "greeting": "Hola {contact},",
        "intro": (
            "Te escribimos porque {user} te agregó como contacto de emergencia en Lumen. "
            "Detectamos señales de que podría estar pasando por un momento emocional difícil."
        ),
        "urgent": "Te pedimos que te comuniques con {user} lo antes posible.",
        "gentle": "Si puedes, escríbele o llámale hoy para saber cómo está.",
        "test": "Este es un mensaje de prueba. No se requiere ninguna acción.",
        "lines_title": "Líneas de ayuda en {country}",
        "footer": "No compartimos el contenido de las conversaciones de {user}.",
    },
    "en": {
        "subject_high": "Urgent: {user} may need your support right now",
        "subject_medium": "{user} may need your support",
        "subject_test": "[TEST] Emergency contact alert for {user}",
        "greeting": "Hi {contact},",
        "intro": (
            "We are reaching out because {user} listed you as an emergency contact in Lumen. "
            "We noticed signs that they may be going through a difficult emotional moment."
        ),
        "urgent": "Please reach out to {user} as soon as you can.",
        "gentle": "If you can, message or call them today to see how they are doing.",
        "test": "This is a test message. No action is needed.",
        "lines_title": "Helplines in {country}",
        "footer": "We never share the content of {user}'s conversations.",
    },
}


def build_contact_email(
    *,
    user_name: str,
    contact_name: str,
    risk_level: RiskLevel,
    language: str,
    contact_phone: Optional[str] = None,
    is_test: bool = False,
) -> Tuple[str, str]:
    """Return ``(subject, html)`` for one emergency contact."""
    lang = normalize_language(language)
    t = _EMAIL_TEXT[lang]
    lines = get_emergency_lines(contact_phone)
    user = escape(user_name or "")
    contact = escape(contact_name or "")

    if is_test:
        subject = t["subject_test"].format(user=user_name)
        call_to_action = t["test"]
    elif risk_level == RiskLevel.HIGH:
        subject = t["subject_high"].format(user=user_name)
        call_to_action = t["urgent"].format(user=user)
    else:
        subject = t["subject_medium"].format(user=user_name)
        call_to_action = t["gentle"].format(user=user)

    hotlines = "<br>".join(escape(row) for row in format_emergency_numbers(lines, lang).splitlines())
    html = (
        "<html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<p>{t['greeting'].format(contact=contact)}</p>"
        f"<p>{t['intro'].format(user=user)}</p>"
        f"<p><strong>{call_to_action}</strong></p>"
        f"<h3>{escape(t['lines_title'].format(country=lines.country))}</h3>"
        f"<p>{hotlines}</p>"
        f"<p style=\"font-size: 12px; color: #888;\">{t['footer'].format(user=user)}</p>"
        "</body></html>"
    )
    return subject, html


# ============================================================================
# CONTACT WHATSAPP
# ============================================================================

_MESSAGING_TEXT: Dict[str, Dict[str, str]] = {
    "es": {
        "high": "Hola {contact}, {user} podría estar pasando por un momento muy difícil. Por favor comunícate con {user} lo antes posible.",
        "medium": "Hola {contact}, {user} podría necesitar apoyo. Si puedes, contáctale hoy.",
        "test": "[PRUEBA] Hola {contact}, este es un mensaje de prueba de las alertas de Lumen para {user}.",
        "lines": "Líneas de ayuda ({country}):",
    },
    "en": {
        "high": "Hi {contact}, {user} may be going through a very hard moment. Please reach out to them as soon as possible.",
        "medium": "Hi {contact}, {user} may need some support. If you can, get in touch today.",
        "test": "[TEST] Hi {contact}, this is a test of the Lumen alerts for {user}.",
        "lines": "Helplines ({country}):",
    },
}


def build_contact_message(
    *,
    user_name: str,
    contact_name: str,
    risk_level: RiskLevel,
    language: str,
    contact_phone: Optional[str] = None,
    is_test: bool = False,
) -> str:
    lang = normalize_language(language)
    t = _MESSAGING_TEXT[lang]
    lines = get_emergency_lines(contact_phone)
    if is_test:
        key = "test"
    elif risk_level == RiskLevel.HIGH:
        key = "high"
    else:
        key = "medium"
    head = t[key].format(contact=contact_name, user=user_name)
    return f"{head}\n\n{t['lines'].format(country=lines.country)}\n{format_emergency_numbers(lines, lang)}"


# ============================================================================
# USER PUSH
# ============================================================================

_PUSH_TEXT: Dict[str, Dict[str, PushText]] = {
    "es": {
        "alert": PushText("Estamos contigo", "Avisamos a tus contactos de confianza para que puedan acompañarte."),
        "warning": PushText("¿Cómo te sientes?", "Notamos que estás pasando por un momento difícil. Aquí estamos si quieres conversar."),
        "test": PushText("Alerta de prueba", "Tus contactos de emergencia recibieron un mensaje de prueba."),
    },
    "en": {
        "alert": PushText("We're here with you", "We let your trusted contacts know so they can be there for you."),
        "warning": PushText("How are you feeling?", "It looks like things are hard right now. We're here if you want to talk."),
        "test": PushText("Test alert", "Your emergency contacts received a test message."),
    },
}


def build_user_alert_push(language: str, *, is_test: bool = False) -> PushText:
    return _PUSH_TEXT[normalize_language(language)]["test" if is_test else "alert"]


def build_warning_push(language: str) -> PushText:
    return _PUSH_TEXT[normalize_language(language)]["warning"]


# ============================================================================
# FOLLOW-UP CHECK-IN
# ============================================================================

_FOLLOW_UP_TEXT: Dict[str, Dict[str, str]] = {
    "es": {
        "title": "Solo queríamos saber de ti",
        "today": "Hace unas horas pasaste por un momento difícil.",
        "one_day": "Ayer pasaste por un momento difícil.",
        "days": "Hace {days} días pasaste por un momento difícil.",
        "ask": "¿Cómo te sientes ahora? Cuando quieras, aquí estamos.",
        "lines": "Si lo necesitas:",
    },
    "en": {
        "title": "Just checking in",
        "today": "A few hours ago you were going through a hard moment.",
        "one_day": "Yesterday you were going through a hard moment.",
        "days": "{days} days ago you were going through a hard moment.",
        "ask": "How are you feeling now? We're here whenever you want.",
        "lines": "If you need it:",
    },
}


def build_follow_up_check_in(
    *,
    risk_level: RiskLevel,
    days_since_crisis: int,
    language: str,
    lines: Optional[EmergencyLines] = None,
) -> PushText:
    """Check-in text; MEDIUM and HIGH events also list the emergency lines."""
    lang = normalize_language(language)
    t = _FOLLOW_UP_TEXT[lang]
    if days_since_crisis <= 0:
        opener = t["today"]
    elif days_since_crisis == 1:
        opener = t["one_day"]
    else:
        opener = t["days"].format(days=days_since_crisis)
    body = f"{opener} {t['ask']}"
    if RiskLevel(risk_level).is_crisis_level:
        body = f"{body}\n\n{t['lines']}\n{format_emergency_numbers(lines or get_emergency_lines(None), lang)}"
    return PushText(t["title"], body)
