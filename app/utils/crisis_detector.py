"""
Crisis Signal Detection Module
==============================

Lexical crisis indicators for the risk evaluator. Each signal family holds
English and Spanish regex patterns; the detector reports which families a
message matches and the evaluator turns them into a weighted score.

Signal families:
- Suicidal ideation (explicit mention, death wish, ending one's life)
- Specific plan or method
- Farewell / final messages
- Hopelessness (severe and indirect)
- Isolation
- Surrender ("I can't take it anymore")

Protective families (reduce the score):
- Help seeking, improvement, social support, coping techniques
"""

from __future__ import annotations

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern

logger = logging.getLogger(__name__)


# =============================================================================
# RISK PATTERNS
# =============================================================================

SUICIDE_MENTION = [
    r"suicid(?:e|al|io|arme|arse)",
    r"kill(?:ing)?\s*myself",
    r"me\s*voy\s*a\s*matar",
    r"matarme",
]

DEATH_WISH = [
    r"(?:want|wish)\s*(?:i\s*)?(?:was|were|to\s*be)\s*dead",
    r"(?:want|wish)\s*to\s*die",
    r"(?:me\s*)?quiero\s*morir",
    r"prefiero\s*morir",
    r"(?:don'?t|do\s*not)\s*want\s*to\s*(?:wake\s*up|exist|live)",
]

END_LIFE = [
    r"end\s*(?:my\s*life|it\s*all)",
    r"take\s*my\s*(?:own\s*)?life",
    r"(?:acabar|terminar)\s*con\s*mi\s*vida",
    r"acabar\s*con\s*todo",
]

PLAN = [
    r"(?:have|got)\s*(?:a\s*)?plan",
    r"(?:already\s*)?(?:decided|know)\s*how\s*(?:to|i'?ll)",
    r"(?:method|means)\s*to\s*(?:do\s*it|end|die)",
    r"tengo\s*un\s*plan",
    r"ya\s*(?:tengo\s*decidido|sé\s*cómo|se\s*como)",
    r"medios\s*para",
]

FAREWELL = [
    r"(?:my\s*)?(?:last|final)\s*(?:message|goodbye)",
    r"goodbye\s*(?:forever|everyone)",
    r"won'?t\s*be\s*(?:here|around)\s*(?:anymore|much\s*longer)",
    r"despedida",
    r"última\s*vez",
    r"último\s*mensaje",
    r"ya\s*no\s*estaré",
    r"no\s*estaré\s*más",
]

HOPELESSNESS_SEVERE = [
    r"no\s*way\s*out",
    r"(?:no|without|lost\s*all)\s*hope",
    r"nothing\s*(?:matters|makes\s*sense)",
    r"(?:can'?t|cannot|don'?t\s*want\s*to)\s*go\s*on",
    r"sin\s*salida",
    r"no\s*hay\s*salida",
    r"sin\s*esperanzas?",
    r"todo\s*está\s*perdido",
    r"ya\s*no\s*quiero\s*seguir",
]

HOPELESSNESS = [
    r"what'?s\s*the\s*point",
    r"(?:it'?s|everything\s*is)\s*(?:useless|pointless|meaningless)",
    r"no\s*(?:reason|purpose)\s*to\s*live",
    r"nada\s*tiene\s*sentido",
    r"no\s*vale\s*la\s*pena",
    r"es\s*inútil",
    r"no\s*(?:hay|tiene)\s*solución",
    r"para\s*qué\s*vivir",
    r"sin\s*(?:propósito|razón\s*de\s*ser)",
]

ISOLATION = [
    r"(?:nobody|no\s*one)\s*(?:understands|listens\s*to|cares\s*about)\s*me",
    r"(?:i'?m|i\s*am|feel)\s*(?:so\s*)?(?:alone|isolated|disconnected)",
    r"(?:i\s*)?(?:have|got)\s*no\s*one",
    r"nadie\s*me\s*(?:entiende|escucha|comprende)",
    r"(?:estoy|me\s*siento)\s*(?:sol[oa]|aislad[oa]|desconectad[oa])",
    r"no\s*tengo\s*a\s*nadie",
]

SURRENDER = [
    r"i\s*give\s*up",
    r"(?:can'?t|cannot)\s*(?:take|handle|bear)\s*(?:it|this)\s*anymore",
    r"me\s*rindo",
    r"quiero\s*rendirme",
    r"no\s*(?:puedo|aguanto|soporto)\s*más",
    r"me\s*doy\s*por\s*vencid[oa]",
]


# =============================================================================
# PROTECTIVE PATTERNS
# =============================================================================

HELP_SEEKING = [
    r"(?:need|want)\s*to\s*talk",
    r"can\s*you\s*help",
    r"\bhelp\s*me\b",
    r"ayuda",
    r"(?:necesito|quiero|puedo)\s*hablar",
    r"me\s*puedes\s*ayudar",
]

IMPROVEMENT = [
    r"(?:feeling|doing|getting)\s*better",
    r"\bimprov(?:ing|ed)\b",
    r"\bprogress\b",
    r"me\s*siento\s*mejor",
    r"estoy\s*mejor",
    r"voy\s*mejorando",
    r"progreso",
]

SOCIAL_SUPPORT = [
    r"\b(?:my\s*)?(?:family|friends?|partner)\b",
    r"people\s*who\s*(?:love|care\s*about)\s*me",
    r"familia",
    r"amig[oa]s?",
    r"pareja",
    r"tengo\s*apoyo",
]

COPING = [
    r"breathing\s*(?:exercise|technique)",
    r"meditat(?:e|ion|ing)",
    r"\bwent\s*for\s*a\s*(?:walk|run)\b",
    r"\bexercis(?:e|ing)\b",
    r"respiración",
    r"meditación",
    r"ejercicio",
    r"estrategia\s*que\s*me\s*ayuda",
]

RISK_FAMILIES: Dict[str, List[str]] = {
    "suicide_mention": SUICIDE_MENTION,
    "death_wish": DEATH_WISH,
    "end_life": END_LIFE,
    "plan": PLAN,
    "farewell": FAREWELL,
    "hopelessness_severe": HOPELESSNESS_SEVERE,
    "hopelessness": HOPELESSNESS,
    "isolation": ISOLATION,
    "surrender": SURRENDER,
}

PROTECTIVE_FAMILIES: Dict[str, List[str]] = {
    "help_seeking": HELP_SEEKING,
    "improvement": IMPROVEMENT,
    "social_support": SOCIAL_SUPPORT,
    "coping": COPING,
}


@dataclass
class CrisisSignals:
    """Signal families matched in a single message."""
    risk: List[str] = field(default_factory=list)
    protective: List[str] = field(default_factory=list)


# =============================================================================
# CRISIS DETECTOR CLASS
# =============================================================================

class CrisisDetector:
    """Matches message text against the compiled signal families."""

    def __init__(self):
        self._compile_patterns()

    def _compile_patterns(self):
        """Pre-compile regex patterns."""
        self.risk_patterns: Dict[str, List[Pattern[str]]] = {
            name: [re.compile(p, re.IGNORECASE) for p in patterns]
            for name, patterns in RISK_FAMILIES.items()
        }
        self.protective_patterns: Dict[str, List[Pattern[str]]] = {
            name: [re.compile(p, re.IGNORECASE) for p in patterns]
            for name, patterns in PROTECTIVE_FAMILIES.items()
        }

    @staticmethod
    def _matches(text: str, patterns: List[Pattern[str]]) -> bool:
        return any(p.search(text) for p in patterns)

    def detect(self, text: Optional[str]) -> CrisisSignals:
        signals = CrisisSignals()
        if not text or not isinstance(text, str):
            return signals
        text_lower = text.lower()
        for name, patterns in self.risk_patterns.items():
            if self._matches(text_lower, patterns):
                signals.risk.append(name)
        for name, patterns in self.protective_patterns.items():
            if self._matches(text_lower, patterns):
                signals.protective.append(name)
        if signals.risk:
            logger.debug("Crisis signals matched: %s", signals.risk)
        return signals


# Singleton instance
_crisis_detector: Optional[CrisisDetector] = None


def get_crisis_detector() -> CrisisDetector:
    global _crisis_detector
    if _crisis_detector is None:
        _crisis_detector = CrisisDetector()
    return _crisis_detector


def detect_signals(text: Optional[str]) -> CrisisSignals:
    return get_crisis_detector().detect(text)
