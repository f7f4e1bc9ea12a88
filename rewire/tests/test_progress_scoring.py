"""
Progress Scoring Tests

Verify:
1. Reference values for the current (v2) formula
2. Clamping: score always 0..100, exactly 100.0 above the cap
3. Monotonic in count and in streak, holding the other fixed
4. Synergy only with a streak longer than three days, capped at 15
5. Negative or non-integer inputs fail fast
6. Legacy (v1) formula still available behind its version
"""

import math

import pytest

from rewire.core.config import settings
from rewire.core.errors import ValidationError
from rewire.features.meter.scoring_engine import (
    FORMULAS,
    LinearProgressFormula,
    LogarithmicProgressFormula,
    calculate_progress,
    get_formula,
    round_progress,
)
from rewire.features.meter.tiers import classify_tier
from rewire.models.meter import SkillTier

v2 = LogarithmicProgressFormula()
v1 = LinearProgressFormula()


class TestCurrentFormula:
    def test_zero_inputs_score_zero(self):
        assert v2.score(0, 0) == 0.0
        assert classify_tier(v2.score(0, 0)) == SkillTier.FOGGY

    def test_single_completion(self):
        # ln(2) * 10 = 6.93
        assert v2.score(1, 0) == 6.9
        assert classify_tier(6.9) == SkillTier.FOGGY

    def test_ten_and_ten(self):
        components = v2.components(10, 10)
        assert math.isclose(components.hack_term, math.log(11) * 10)
        assert math.isclose(components.streak_term, 10 ** 0.7 * 3.25)
        assert components.synergy_term == 15.0
        assert v2.score(10, 10) == 55.3
        assert classify_tier(55.3) == SkillTier.DEVELOPING

    def test_streak_only(self):
        # 1^0.7 * 3.25 = 3.25 -> 3.3 (half rounds up)
        assert v2.score(0, 1) == 3.3

    def test_no_synergy_without_completions(self):
        assert v2.components(0, 10).synergy_term == 0.0

    def test_no_synergy_at_three_day_streak(self):
        assert v2.components(10, 3).synergy_term == 0.0
        assert math.isclose(v2.components(10, 4).synergy_term, 6.0)

    def test_synergy_is_capped(self):
        assert v2.components(1000, 50).synergy_term == 15.0

    def test_large_inputs_clamp_to_exactly_100(self):
        assert v2.score(10_000, 365) == 100.0
        assert classify_tier(v2.score(10_000, 365)) == SkillTier.REWIRED

    def test_monotonic_in_count(self):
        for streak in (0, 2, 5, 20):
            scores = [v2.score(count, streak) for count in range(0, 60)]
            assert scores == sorted(scores)

    def test_monotonic_in_streak(self):
        for count in (0, 1, 10, 50):
            scores = [v2.score(count, streak) for streak in range(0, 60)]
            assert scores == sorted(scores)

    def test_broken_streak_can_lower_progress(self):
        # Count never drops but streak can: progress is not monotonic over time
        assert v2.score(11, 0) < v2.score(10, 10)

    def test_deterministic(self):
        assert v2.score(7, 5) == v2.score(7, 5)

    def test_one_decimal(self):
        for count in range(0, 40, 3):
            for streak in range(0, 40, 4):
                score = v2.score(count, streak)
                assert round(score, 1) == score
                assert 0.0 <= score <= 100.0


class TestInputValidation:
    @pytest.mark.parametrize("count,streak", [(-1, 0), (0, -1), (-5, -5)])
    def test_negative_inputs_fail_fast(self, count, streak):
        with pytest.raises(ValidationError):
            v2.score(count, streak)

    @pytest.mark.parametrize("count,streak", [(1.5, 0), ("3", 1), (True, 1), (None, 0)])
    def test_non_integer_inputs_rejected(self, count, streak):
        with pytest.raises(ValidationError):
            v2.score(count, streak)

    def test_legacy_formula_validates_too(self):
        with pytest.raises(ValidationError):
            v1.score(-1, 0)


class TestLegacyFormula:
    def test_foggy_multiplier(self):
        # raw 10 < 25 -> foggy x0.8
        assert v1.score(1, 0) == 8.0

    def test_beginner_multiplier(self):
        # raw 30 -> beginner x1.0
        assert v1.score(2, 2) == 30.0

    def test_developing_multiplier(self):
        # raw 60 -> developing x1.2
        assert v1.score(5, 2) == 72.0

    def test_clamped(self):
        # raw 80 -> proficient x1.5 = 120 -> 100
        assert v1.score(8, 0) == 100.0

    def test_provisional_tier_floors(self):
        assert LinearProgressFormula.provisional_tier(24.9) == SkillTier.FOGGY
        assert LinearProgressFormula.provisional_tier(25) == SkillTier.BEGINNER
        assert LinearProgressFormula.provisional_tier(100) == SkillTier.REWIRED


class TestFormulaRegistry:
    def test_registered_versions(self):
        assert set(FORMULAS) == {"v1", "v2"}
        assert isinstance(get_formula("v1"), LinearProgressFormula)
        assert isinstance(get_formula("v2"), LogarithmicProgressFormula)

    def test_default_follows_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "METER_FORMULA_VERSION", "v1")
        assert get_formula().version == "v1"
        assert calculate_progress(1, 0) == 8.0

        monkeypatch.setattr(settings, "METER_FORMULA_VERSION", "v2")
        assert get_formula().version == "v2"
        assert calculate_progress(1, 0) == 6.9

    def test_unknown_version(self):
        with pytest.raises(ValidationError):
            get_formula("v99")

    def test_explicit_formula_overrides_default(self):
        assert calculate_progress(2, 2, formula=v1) == 30.0


def test_round_progress_half_up_and_clamp():
    assert round_progress(6.95) == 7.0
    assert round_progress(150.0) == 100.0
    assert round_progress(-3.0) == 0.0
