from datetime import datetime, timezone
from typing import Optional

from rewire.models.meter import LevelTransitionEvent, SkillTier


def detect_transition(
    previous: Optional[SkillTier],
    new: SkillTier,
    *,
    occurred_at: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> Optional[LevelTransitionEvent]:
    """
    Report any tier change, up or down.

    A user with no stored tier starts from the lowest tier, so only a
    computed tier above it fires. There is no hysteresis: a score hovering
    on a boundary flips the tier on every call that crosses it.
    """
    old = previous or SkillTier.lowest()
    if old == new:
        return None
    return LevelTransitionEvent(
        old_tier=old,
        new_tier=new,
        occurred_at=occurred_at or datetime.now(timezone.utc),
        user_id=user_id,
    )


def level_up_message(event: Optional[LevelTransitionEvent]) -> Optional[str]:
    if event is None:
        return None
    if event.direction == "up":
        return f"🎉 Level up! You've reached {event.new_tier.value}!"
    return f"Your level moved to {event.new_tier.value}. Keep going!"
