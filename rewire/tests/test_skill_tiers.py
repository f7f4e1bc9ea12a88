import pytest

from rewire.core.errors import ValidationError
from rewire.features.meter.tiers import classify_tier, next_level_at
from rewire.models.meter import SkillTier


@pytest.mark.parametrize(
    "progress,expected",
    [
        (0.0, SkillTier.FOGGY),
        (19.9, SkillTier.FOGGY),
        (20.0, SkillTier.BEGINNER),
        (39.9, SkillTier.BEGINNER),
        (40.0, SkillTier.DEVELOPING),
        (64.9, SkillTier.DEVELOPING),
        (65.0, SkillTier.PROFICIENT),
        (89.9, SkillTier.PROFICIENT),
        (90.0, SkillTier.REWIRED),
        (100.0, SkillTier.REWIRED),
    ],
)
def test_tier_boundaries(progress, expected):
    assert classify_tier(progress) == expected


@pytest.mark.parametrize(
    "progress,expected",
    [
        (0.0, 20),
        (19.9, 20),
        (20.0, 40),
        (55.3, 65),
        (65.0, 90),
        (89.9, 90),
        (90.0, 100),
        (99.9, 100),
        (100.0, 100),
    ],
)
def test_next_level_threshold(progress, expected):
    assert next_level_at(progress) == expected


@pytest.mark.parametrize("progress", [-0.1, 100.1, float("nan"), None, "50"])
def test_out_of_range_progress_rejected(progress):
    with pytest.raises(ValidationError):
        classify_tier(progress)
    with pytest.raises(ValidationError):
        next_level_at(progress)


def test_integer_progress_accepted():
    assert classify_tier(65) == SkillTier.PROFICIENT


def test_tier_ranks_are_one_to_five():
    assert [t.rank for t in SkillTier] == [1, 2, 3, 4, 5]
    assert SkillTier.FOGGY.rank == 1
    assert SkillTier.REWIRED.rank == 5


def test_parse_stored_tier_names():
    assert SkillTier.parse("developing") == SkillTier.DEVELOPING
    assert SkillTier.parse(" Rewired ") == SkillTier.REWIRED
    assert SkillTier.parse(None) is None
    with pytest.raises(ValidationError):
        SkillTier.parse("legendary")
