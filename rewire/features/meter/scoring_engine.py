"""
Progress Scoring Engine

Pure, deterministic computation of the rewire progress score.
No external calls, no randomness, no side effects.

Formulas are versioned so the legacy linear score and the current
logarithmic score can coexist:
- v1 (legacy): 10 per completion + 5 per streak day, times a tier multiplier
- v2 (current): log-scaled completions + power-law streak + capped synergy

Every formula clamps to 0..100 and rounds to one decimal.
"""

import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional

from rewire.core.config import settings
from rewire.core.errors import ValidationError
from rewire.models.meter import SkillTier

MAX_PROGRESS = 100.0


def _require_non_negative_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative, got {value}")


def round_progress(raw: float) -> float:
    """Clamp to 0..100, then round half-up to one decimal."""
    clamped = max(0.0, min(raw, MAX_PROGRESS))
    return math.floor(clamped * 10 + 0.5) / 10


@dataclass
class ProgressComponents:
    """Individual contributors to the v2 score, before clamping."""

    hack_term: float = 0.0  # ln(count + 1) * 10
    streak_term: float = 0.0  # streak^0.7 * 3.25
    synergy_term: float = 0.0  # 0..15

    def total(self) -> float:
        return self.hack_term + self.streak_term + self.synergy_term

    def to_dict(self) -> dict:
        return {k: round(v, 2) for k, v in asdict(self).items()}


class ProgressFormula:
    """Base class: subclasses provide raw_score(); score() enforces the contract."""

    version: str = ""

    def raw_score(self, completed_count: int, streak: int) -> float:
        raise NotImplementedError

    def score(self, completed_count: int, streak: int) -> float:
        _require_non_negative_int("completed_count", completed_count)
        _require_non_negative_int("streak", streak)
        return round_progress(self.raw_score(completed_count, streak))


class LinearProgressFormula(ProgressFormula):
    """Legacy score: linear points scaled by a provisional tier multiplier."""

    version = "v1"

    POINTS_PER_COMPLETION = 10
    POINTS_PER_STREAK_DAY = 5

    # Provisional tier floors on the raw (unscaled) score
    TIER_FLOORS = (
        (100, SkillTier.REWIRED),
        (75, SkillTier.PROFICIENT),
        (50, SkillTier.DEVELOPING),
        (25, SkillTier.BEGINNER),
    )

    MULTIPLIERS: Dict[SkillTier, float] = {
        SkillTier.FOGGY: 0.8,
        SkillTier.BEGINNER: 1.0,
        SkillTier.DEVELOPING: 1.2,
        SkillTier.PROFICIENT: 1.5,
        SkillTier.REWIRED: 2.0,
    }

    @classmethod
    def provisional_tier(cls, raw: float) -> SkillTier:
        for floor, tier in cls.TIER_FLOORS:
            if raw >= floor:
                return tier
        return SkillTier.FOGGY

    def raw_score(self, completed_count: int, streak: int) -> float:
        raw = completed_count * self.POINTS_PER_COMPLETION + streak * self.POINTS_PER_STREAK_DAY
        return raw * self.MULTIPLIERS[self.provisional_tier(raw)]


class LogarithmicProgressFormula(ProgressFormula):
    """
    Current score.

    Completions have diminishing returns, streaks are rewarded sub-linearly,
    and combining volume with a streak longer than three days earns a bonus
    capped at 15 points.
    """

    version = "v2"

    HACK_WEIGHT = 10.0
    STREAK_EXPONENT = 0.7
    STREAK_WEIGHT = 3.25
    SYNERGY_MIN_STREAK = 3  # bonus needs a streak strictly longer than this
    SYNERGY_RATE = 0.15
    SYNERGY_MAX = 15.0

    def components(self, completed_count: int, streak: int) -> ProgressComponents:
        _require_non_negative_int("completed_count", completed_count)
        _require_non_negative_int("streak", streak)

        hack_term = math.log(completed_count + 1) * self.HACK_WEIGHT if completed_count > 0 else 0.0
        streak_term = (streak ** self.STREAK_EXPONENT) * self.STREAK_WEIGHT if streak > 0 else 0.0
        synergy_term = 0.0
        if completed_count > 0 and streak > self.SYNERGY_MIN_STREAK:
            synergy_term = min(completed_count * streak * self.SYNERGY_RATE, self.SYNERGY_MAX)

        return ProgressComponents(
            hack_term=hack_term,
            streak_term=streak_term,
            synergy_term=synergy_term,
        )

    def raw_score(self, completed_count: int, streak: int) -> float:
        return self.components(completed_count, streak).total()


FORMULAS: Dict[str, ProgressFormula] = {
    formula.version: formula
    for formula in (LinearProgressFormula(), LogarithmicProgressFormula())
}


def get_formula(version: Optional[str] = None) -> ProgressFormula:
    """Look up a registered formula; defaults to the configured active version."""
    key = version or settings.METER_FORMULA_VERSION
    try:
        return FORMULAS[key]
    except KeyError:
        raise ValidationError(f"Unknown progress formula version: {key!r}")


def calculate_progress(
    completed_count: int,
    streak: int,
    formula: Optional[ProgressFormula] = None,
) -> float:
    """Progress score 0..100 (one decimal) under the given or active formula."""
    return (formula or get_formula()).score(completed_count, streak)
