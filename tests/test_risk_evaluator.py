"""
Tests for the additive risk score and its level mapping.

Run with: python -m pytest tests/test_risk_evaluator.py -v
"""

import pytest


def _assess(text, *, emotion=None, intensity=5, intent=None, confidence=0.0, context=None, secondary=()):
    from app.schemas.risk import ContextualAnalysis, EmotionalAnalysis, Intent
    from app.services.risk_evaluator import RiskThresholds, assess_risk

    emotional = EmotionalAnalysis(main_emotion=emotion, intensity=intensity, secondary=list(secondary))
    contextual = ContextualAnalysis(intent=Intent(type=intent, confidence=confidence) if intent else None)
    return assess_risk(emotional, contextual, text, context, thresholds=RiskThresholds())


# =============================================================================
# LEVEL MAPPING
# =============================================================================

class TestThresholds:
    """Tests for score to level mapping."""

    @pytest.mark.parametrize(
        "score,expected",
        [(0, "LOW"), (1.99, "LOW"), (2, "WARNING"), (3.9, "WARNING"), (4, "MEDIUM"), (6.9, "MEDIUM"), (7, "HIGH"), (20, "HIGH")],
    )
    def test_level_for(self, score, expected):
        from app.services.risk_evaluator import RiskThresholds

        assert RiskThresholds().level_for(score).value == expected


# =============================================================================
# SCORING
# =============================================================================

class TestAssessRisk:
    """Tests for message scoring."""

    def test_empty_text_is_low(self):
        """Missing text short-circuits to LOW with no factors."""
        from app.models.crisis_event import RiskLevel

        for text in (None, ""):
            result = _assess(text)
            assert result.risk_level == RiskLevel.LOW
            assert result.score == 0
            assert result.factors == []

    def test_neutral_message_is_low(self):
        from app.models.crisis_event import RiskLevel

        assert _assess("I feel so sad and empty today").risk_level == RiskLevel.LOW

    def test_death_wish_is_medium(self):
        from app.models.crisis_event import RiskLevel

        result = _assess("I just want to die")

        assert result.risk_level == RiskLevel.MEDIUM
        assert "death_wish" in result.factors

    def test_explicit_suicide_with_death_wish_is_high(self):
        from app.models.crisis_event import RiskLevel

        result = _assess("I keep thinking about suicide, I want to die")

        assert result.risk_level == RiskLevel.HIGH
        assert result.score == pytest.approx(8.0)

    def test_evaluate_risk_returns_bare_level(self):
        """The caller-facing entry point returns only the level."""
        from app.models.crisis_event import RiskLevel
        from app.services.risk_evaluator import RiskThresholds, evaluate_risk

        thresholds = RiskThresholds()

        assert evaluate_risk(None, None, "I keep thinking about suicide, I want to die", thresholds=thresholds) is RiskLevel.HIGH
        assert evaluate_risk(None, None, "I just want to die", thresholds=thresholds) is RiskLevel.MEDIUM
        assert evaluate_risk(None, None, "", thresholds=thresholds) is RiskLevel.LOW

    def test_spanish_signals(self):
        """Spanish phrasing maps to the same families."""
        from app.models.crisis_event import RiskLevel

        result = _assess("No hay salida, estoy sola y me rindo")

        assert set(result.factors) >= {"hopelessness_severe", "isolation", "surrender"}
        assert result.risk_level == RiskLevel.MEDIUM

    def test_extreme_sadness_from_emotion_analysis(self):
        """Very intense sadness counts even without risky wording."""
        from app.models.crisis_event import RiskLevel

        result = _assess("hoy fue un mal día", emotion="tristeza", intensity=9)

        assert "very_high_intensity" in result.factors
        assert "extreme_sadness" in result.factors
        assert result.risk_level == RiskLevel.MEDIUM

    def test_protective_factors_reduce_score(self):
        from app.models.crisis_event import RiskLevel

        result = _assess("I want to die but my family is here")

        assert result.protective_factors == ["social_support"]
        assert result.score == pytest.approx(3.5)
        assert result.risk_level == RiskLevel.WARNING

    def test_score_never_negative(self):
        result = _assess("can you help me, my friends and family are worried", secondary=["esperanza"])

        assert result.score == 0
        assert "hope" in result.protective_factors

    def test_history_and_conversation_add_weight(self):
        from app.models.crisis_event import RiskLevel
        from app.schemas.risk import ConversationContext, CrisisHistory, RiskContext

        context = RiskContext(
            crisis_history=CrisisHistory(total_crises=3, recent_crises=2),
            conversation_context=ConversationContext(emotional_escalation=True, silence_after_negative=True),
        )
        result = _assess("i give up", context=context)

        # surrender 1 + recent 2 + repeated 1 + escalation 1 + silence 1
        assert result.score == pytest.approx(6.0)
        assert result.risk_level == RiskLevel.MEDIUM
        assert "past_crisis" not in result.factors


# =============================================================================
# MONOTONICITY
# =============================================================================

class TestTrendMonotonicity:
    """Raising any trend flag never lowers the level."""

    FLAGS = ("rapid_decline", "sustained_low", "isolation", "escalation")

    @pytest.mark.parametrize("text", ["I feel so sad and empty today", "i give up", "no way out"])
    def test_each_flag_never_lowers_level(self, text):
        from app.schemas.risk import RiskContext
        from app.schemas.trend import TrendAnalysis, TrendFlags

        baseline = _assess(text, context=RiskContext(trend_analysis=TrendAnalysis(trends=TrendFlags())))
        raised = {}
        for flag in self.FLAGS:
            raised[flag] = True
            context = RiskContext(trend_analysis=TrendAnalysis(trends=TrendFlags(**raised)))
            result = _assess(text, context=context)
            assert result.risk_level.rank >= baseline.risk_level.rank
            assert result.score >= baseline.score
            baseline = result

    def test_all_flags_escalate_mild_surrender(self):
        """A surrender message with every trend flag raised reaches WARNING or above."""
        from app.schemas.risk import RiskContext
        from app.schemas.trend import TrendAnalysis, TrendFlags

        flags = TrendFlags(rapid_decline=True, sustained_low=True, isolation=True, escalation=True)
        result = _assess("i give up", context=RiskContext(trend_analysis=TrendAnalysis(trends=flags)))

        assert result.risk_level.rank >= 1


# =============================================================================
# CRISIS INTENT
# =============================================================================

class TestCrisisIntent:
    """Tests for the context analyzer's CRISIS intent."""

    def test_high_confidence_intent_floors_at_medium(self):
        from app.models.crisis_event import RiskLevel

        result = _assess("hello", intent="CRISIS", confidence=0.95)

        assert result.crisis_intent is True
        assert result.risk_level == RiskLevel.MEDIUM

    def test_low_confidence_intent_only_adds_weight(self):
        from app.models.crisis_event import RiskLevel

        result = _assess("hello", intent="crisis", confidence=0.5)

        assert result.crisis_intent is False
        assert "crisis_intent" in result.factors
        assert result.risk_level == RiskLevel.WARNING


class TestIsCrisis:
    """Tests for the crisis predicate."""

    def test_medium_and_high(self):
        from app.models.crisis_event import RiskLevel
        from app.services.risk_evaluator import is_crisis

        assert is_crisis(RiskLevel.MEDIUM) is True
        assert is_crisis(RiskLevel.HIGH) is True
        assert is_crisis(RiskLevel.LOW) is False

    def test_warning_needs_confident_intent(self):
        from app.models.crisis_event import RiskLevel
        from app.schemas.risk import ContextualAnalysis, Intent
        from app.services.risk_evaluator import RiskThresholds, is_crisis

        confident = ContextualAnalysis(intent=Intent(type="CRISIS", confidence=0.95))
        hesitant = ContextualAnalysis(intent=Intent(type="CRISIS", confidence=0.4))

        assert is_crisis(RiskLevel.WARNING, confident, RiskThresholds()) is True
        assert is_crisis(RiskLevel.WARNING, hesitant, RiskThresholds()) is False
        assert is_crisis(RiskLevel.WARNING) is False

    def test_unknown_level_raises(self):
        from app.services.risk_evaluator import is_crisis

        with pytest.raises(ValueError):
            is_crisis("EXTREME")
