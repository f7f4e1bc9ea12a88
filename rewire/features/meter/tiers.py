import math

from rewire.core.errors import ValidationError
from rewire.models.meter import SkillTier

# Lower bound of each tier, ascending; intervals are half-open [floor, next floor)
TIER_FLOORS = (
    (0.0, SkillTier.FOGGY),
    (20.0, SkillTier.BEGINNER),
    (40.0, SkillTier.DEVELOPING),
    (65.0, SkillTier.PROFICIENT),
    (90.0, SkillTier.REWIRED),
)

NEXT_LEVEL_THRESHOLDS = (20, 40, 65, 90, 100)


def _require_progress(progress: float) -> float:
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        raise ValidationError(f"progress must be a number, got {type(progress).__name__}")
    if math.isnan(progress) or progress < 0.0 or progress > 100.0:
        raise ValidationError(f"progress must be within 0..100, got {progress}")
    return float(progress)


def classify_tier(progress: float) -> SkillTier:
    """Map a progress score to its skill tier."""
    value = _require_progress(progress)
    tier = SkillTier.FOGGY
    for floor, candidate in TIER_FLOORS:
        if value >= floor:
            tier = candidate
    return tier


def next_level_at(progress: float) -> int:
    """Smallest threshold strictly above progress; 100 once the top is reached."""
    value = _require_progress(progress)
    for threshold in NEXT_LEVEL_THRESHOLDS:
        if value < threshold:
            return threshold
    return 100
