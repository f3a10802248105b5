"""
Tests for the multi-window emotional trend analyzer.

Run with: python -m pytest tests/test_trend_analyzer.py -v
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from tests.conftest import NOW


def _sample(intensity, emotion="sadness", age=timedelta(hours=1)):
    return SimpleNamespace(intensity=intensity, emotion=emotion, created_at=NOW - age)


# =============================================================================
# PERIOD STATISTICS
# =============================================================================

class TestAnalyzePeriod:
    """Tests for per-window statistics."""

    def test_empty_window_defaults(self):
        """An empty window is neutral: average 5 and zero rates."""
        from app.services.trend_analyzer import analyze_period

        stats = analyze_period([], 7)

        assert stats.message_count == 0
        assert stats.average_intensity == 5
        assert stats.emotion_distribution == {}
        assert stats.negative_emotion_rate == 0
        assert stats.high_intensity_rate == 0
        assert stats.frequency == 0

    def test_rates_and_frequency(self):
        """Negative share, high-intensity share and messages per day."""
        from app.services.trend_analyzer import analyze_period

        samples = [_sample(8, "sadness"), _sample(2, "joy"), _sample(7, "tristeza"), _sample(4, "anxiety")]
        stats = analyze_period(samples, 7)

        assert stats.message_count == 4
        assert stats.average_intensity == pytest.approx(5.25)
        assert stats.negative_emotion_rate == pytest.approx(0.75)
        assert stats.high_intensity_rate == pytest.approx(0.5)
        assert stats.frequency == pytest.approx(4 / 7)
        assert stats.emotion_distribution["sadness"] == pytest.approx(0.5)


# =============================================================================
# TREND FLAGS
# =============================================================================

class TestDetectTrends:
    """Tests for the short vs medium/long comparison rules."""

    def test_rapid_decline(self):
        """Short average far below medium and long sets decreasing and rapid decline."""
        from app.schemas.trend import IntensityTrend, PeriodStatistics
        from app.services.trend_analyzer import detect_trends

        short = PeriodStatistics(message_count=5, average_intensity=2.0, frequency=0.7)
        medium = PeriodStatistics(message_count=20, average_intensity=5.0, frequency=0.7)
        long = PeriodStatistics(message_count=60, average_intensity=6.0, frequency=0.7)

        trends = detect_trends(short, medium, long)

        assert trends.intensity_trend == IntensityTrend.DECREASING
        assert trends.rapid_decline is True
        assert trends.escalation is False

    def test_isolation_from_frequency_drop(self):
        """Messaging less than half as often as usual flags isolation."""
        from app.schemas.trend import FrequencyTrend, PeriodStatistics
        from app.services.trend_analyzer import detect_trends

        short = PeriodStatistics(message_count=1, frequency=0.1)
        medium = PeriodStatistics(message_count=30, frequency=1.0)

        trends = detect_trends(short, medium, medium)

        assert trends.frequency_trend == FrequencyTrend.DECREASING
        assert trends.isolation is True

    def test_sustained_low(self):
        """Low intensity in both windows with mostly negative emotions."""
        from app.schemas.trend import PeriodStatistics
        from app.services.trend_analyzer import detect_trends

        short = PeriodStatistics(message_count=5, average_intensity=3.0, negative_emotion_rate=0.8, frequency=0.7)
        medium = PeriodStatistics(message_count=20, average_intensity=3.5, negative_emotion_rate=0.7, frequency=0.7)

        assert detect_trends(short, medium, medium).sustained_low is True

    def test_volatility_levels(self):
        """Variance above 4 is high, above 2 medium."""
        from app.schemas.trend import PeriodStatistics, Volatility
        from app.services.trend_analyzer import detect_trends

        stats = PeriodStatistics()
        assert detect_trends(stats, stats, stats, [1, 10, 1, 10]).volatility == Volatility.HIGH
        assert detect_trends(stats, stats, stats, [3, 6, 3, 6]).volatility == Volatility.MEDIUM
        assert detect_trends(stats, stats, stats, [5, 5, 6]).volatility == Volatility.LOW

    def test_risk_adjustment_weights(self):
        """Risk flags add, improving trends subtract."""
        from app.schemas.trend import EmotionTrend, FrequencyTrend, TrendFlags, Volatility
        from app.services.trend_analyzer import calculate_risk_adjustment

        flags = TrendFlags(rapid_decline=True, isolation=True, volatility=Volatility.HIGH)
        assert calculate_risk_adjustment(flags) == pytest.approx(4.5)

        relieved = TrendFlags(emotion_trend=EmotionTrend.IMPROVING, frequency_trend=FrequencyTrend.INCREASING)
        assert calculate_risk_adjustment(relieved) == pytest.approx(-1.0)

    def test_warnings_follow_flags(self):
        """One warning per raised flag."""
        from app.schemas.trend import TrendFlags
        from app.services.trend_analyzer import WARNING_MESSAGES, generate_warnings

        warnings = generate_warnings(TrendFlags(escalation=True, sustained_low=True))

        assert warnings == [WARNING_MESSAGES["sustained_low"], WARNING_MESSAGES["escalation"]]


# =============================================================================
# ANALYZER
# =============================================================================

class TestTrendAnalyzer:
    """Tests for analyze_trends against the message store."""

    @pytest.mark.asyncio
    async def test_new_user_has_neutral_trends(self, trend_analyzer, seed_user):
        """A user without history gets default statistics and no flags."""
        user_id = seed_user()

        result = await trend_analyzer.analyze_trends(user_id)

        assert result.risk_adjustment == 0
        assert result.warnings == []
        for period in ("short", "medium", "long"):
            assert result.periods[period].message_count == 0
            assert result.periods[period].average_intensity == 5
        flags = result.trends
        assert not any([flags.rapid_decline, flags.sustained_low, flags.isolation, flags.escalation])

    @pytest.mark.asyncio
    async def test_recent_intense_sadness_is_escalation(self, trend_analyzer, seed_user, add_message):
        """Three intense sad messages against a calm month baseline escalate."""
        user_id = seed_user()
        for hours, intensity in ((2, 8), (1, 9), (0, 9)):
            add_message(user_id, age=timedelta(hours=hours, minutes=1), intensity=intensity)
        for days in (8, 11, 14, 17, 20, 24, 29):
            add_message(user_id, age=timedelta(days=days), intensity=2, emotion="neutral")

        result = await trend_analyzer.analyze_trends(user_id)

        assert result.periods["medium"].average_intensity == pytest.approx(4.0)
        assert result.trends.escalation is True
        assert result.trends.rapid_decline is False
        assert result.trends.sustained_low is False
        assert result.risk_adjustment == pytest.approx(2.0)

    @pytest.mark.asyncio
    async def test_store_failure_returns_neutral(self, clock):
        """A failing store never propagates."""
        from app.services.trend_analyzer import TrendAnalyzer

        class BrokenStore:
            def find_emotional_samples(self, *args, **kwargs):
                raise RuntimeError("database unavailable")

        result = await TrendAnalyzer(BrokenStore(), clock=clock).analyze_trends(1)

        assert result.is_empty
        assert result.risk_adjustment == 0
        assert result.warnings == []
