"""
Emergency numbers by country, keyed by international phone prefix.

Used to localize contact alerts and follow-up check-ins: the contact's phone
number decides which hotlines are printed, and GENERAL covers everyone else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class EmergencyLines:
    country: str
    country_code: str
    emergency: str
    suicide_prevention: Optional[str] = None
    medical: Optional[str] = None
    crisis_text: Optional[str] = None
    language: str = "es"


GENERAL_LINES = EmergencyLines(
    country="International",
    country_code="GENERAL",
    emergency="911",
    suicide_prevention="988",
    crisis_text="741741",
    language="en",
)

EMERGENCY_NUMBERS_BY_COUNTRY: Dict[str, EmergencyLines] = {
    "56": EmergencyLines("Chile", "CL", emergency="133", suicide_prevention="600 360 7777", medical="131"),
    "54": EmergencyLines("Argentina", "AR", emergency="911", suicide_prevention="135", medical="107"),
    "1": EmergencyLines(
        "United States", "US", emergency="911", suicide_prevention="988", medical="911",
        crisis_text="741741", language="en",
    ),
    "52": EmergencyLines("México", "MX", emergency="911", suicide_prevention="800 911 2000", medical="911"),
    "57": EmergencyLines("Colombia", "CO", emergency="123", suicide_prevention="106", medical="125"),
    "51": EmergencyLines("Perú", "PE", emergency="911", suicide_prevention="0800 10828", medical="116"),
    "34": EmergencyLines("España", "ES", emergency="112", suicide_prevention="024", medical="112"),
    "55": EmergencyLines("Brasil", "BR", emergency="190", suicide_prevention="188", medical="192", language="pt"),
    "593": EmergencyLines("Ecuador", "EC", emergency="911", suicide_prevention="171", medical="911"),
    "598": EmergencyLines("Uruguay", "UY", emergency="911", suicide_prevention="0800 0767", medical="105"),
    "595": EmergencyLines("Paraguay", "PY", emergency="911", medical="141"),
    "591": EmergencyLines("Bolivia", "BO", emergency="110", medical="118"),
    "58": EmergencyLines("Venezuela", "VE", emergency="171", medical="171"),
}

# Longest prefix wins
_CODES_BY_LENGTH = sorted(EMERGENCY_NUMBERS_BY_COUNTRY, key=len, reverse=True)
_PHONE_NOISE = re.compile(r"[\s\-()]")


def clean_phone(phone: str) -> str:
    cleaned = _PHONE_NOISE.sub("", phone or "")
    if cleaned.lower().startswith("whatsapp:"):
        cleaned = cleaned[len("whatsapp:"):]
    return cleaned.lstrip("+")


def detect_country_code(phone: Optional[str]) -> Optional[str]:
    """Return the phone prefix (without '+') of a known country, or None."""
    if not phone:
        return None
    cleaned = clean_phone(phone)
    for code in _CODES_BY_LENGTH:
        if cleaned.startswith(code):
            return code
    return None


def get_emergency_lines(phone: Optional[str] = None) -> EmergencyLines:
    code = detect_country_code(phone)
    if code is None:
        return GENERAL_LINES
    return EMERGENCY_NUMBERS_BY_COUNTRY[code]


def format_emergency_numbers(lines: EmergencyLines, language: str = "es") -> str:
    """Plain-text block of hotlines for messaging bodies and follow-ups."""
    if language == "en":
        labels = ("Emergencies", "Suicide prevention", "Medical emergencies", "Crisis text line")
        fallback = "If you are in danger, contact your local emergency services."
    else:
        labels = ("Emergencias", "Prevención del suicidio", "Emergencias médicas", "Texto de crisis")
        fallback = "Si hay peligro inmediato, contacta a los servicios de emergencia locales."

    if not lines.emergency:
        return fallback

    rows = [f"- {labels[0]}: {lines.emergency}"]
    if lines.suicide_prevention:
        rows.append(f"- {labels[1]}: {lines.suicide_prevention}")
    if lines.medical and lines.medical != lines.emergency:
        rows.append(f"- {labels[2]}: {lines.medical}")
    if lines.crisis_text:
        rows.append(f"- {labels[3]}: {lines.crisis_text}")
    return "\n".join(rows)
