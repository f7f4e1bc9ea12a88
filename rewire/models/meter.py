"""
Rewire meter domain model.

The meter answers: "How far along is this user, and did they just change level?"
Every value here is derived from a user's completion history; nothing is
adjusted incrementally.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from rewire.core.errors import ValidationError

TransitionDirection = Literal["up", "down"]


class SkillTier(str, Enum):
    """Five ordered skill bands, lowest first."""
    FOGGY = "foggy"
    BEGINNER = "beginner"
    DEVELOPING = "developing"
    PROFICIENT = "proficient"
    REWIRED = "rewired"

    @property
    def rank(self) -> int:
        """Ordinal 1..5 used in transition events."""
        return _TIER_ORDER.index(self) + 1

    @classmethod
    def lowest(cls) -> "SkillTier":
        return cls.FOGGY

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["SkillTier"]:
        """Map a stored tier name to a SkillTier; None stays None."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown skill tier: {value!r}")


_TIER_ORDER = list(SkillTier)


class CompletionRecord(BaseModel):
    """One completed activity instance. The timestamp is required."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    completed_at: datetime = Field(..., alias="completedAt")
    user_id: Optional[str] = Field(default=None, alias="userId")

    @classmethod
    def parse_many(cls, rows: Iterable[Any]) -> list["CompletionRecord"]:
        """
        Validate a raw completion history.

        A single malformed entry rejects the whole history: dropping it
        would silently change the streak.
        """
        records: list[CompletionRecord] = []
        for index, row in enumerate(rows):
            if isinstance(row, cls):
                records.append(row)
                continue
            try:
                records.append(cls.model_validate(row))
            except PydanticValidationError as e:
                first = e.errors()[0]
                raise ValidationError(
                    f"Malformed completion record at index {index}: {first.get('msg', 'invalid')}"
                ) from e
        return records


@dataclass
class ProgressState:
    """
    Stored meter snapshot for one user.

    Attributes:
        user_id: Owner of the snapshot
        progress: 0..100, one decimal
        skill_level: Current tier, None before the first computation
        current_streak: Consecutive-day streak at computation time
        updated_at: When the snapshot was written
        version: Write counter used for compare-and-set updates
    """

    user_id: str
    progress: float = 0.0
    skill_level: Optional[SkillTier] = None
    current_streak: int = 0
    updated_at: Optional[datetime] = None
    version: int = 0

    def validate(self) -> None:
        assert self.user_id, "user_id required"
        assert 0.0 <= self.progress <= 100.0, f"progress out of range: {self.progress}"
        assert self.current_streak >= 0, f"negative streak: {self.current_streak}"
        assert self.version >= 0, f"negative version: {self.version}"

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "progress": self.progress,
            "skillLevel": self.skill_level.value if self.skill_level else None,
            "streak": self.current_streak,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }


@dataclass
class LevelTransitionEvent:
    """A tier change between two computations, in either direction."""

    old_tier: SkillTier
    new_tier: SkillTier
    occurred_at: datetime
    user_id: Optional[str] = None
    event_type: str = "level_up"

    @property
    def old_value(self) -> int:
        return self.old_tier.rank

    @property
    def new_value(self) -> int:
        return self.new_tier.rank

    @property
    def direction(self) -> TransitionDirection:
        return "up" if self.new_value > self.old_value else "down"

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "eventType": self.event_type,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "occurredAt": self.occurred_at.isoformat(),
        }


@dataclass
class MeterReading:
    """Client-facing result of one meter computation."""

    progress: float
    skill_level: SkillTier
    streak: int
    next_level_at: int
    completed_protocols: int
    level_up_message: Optional[str] = None

    def validate(self) -> None:
        assert 0.0 <= self.progress <= 100.0, f"progress out of range: {self.progress}"
        assert self.streak >= 0, f"negative streak: {self.streak}"
        assert self.completed_protocols >= 0, f"negative count: {self.completed_protocols}"
        assert self.next_level_at in (20, 40, 65, 90, 100), f"invalid threshold: {self.next_level_at}"

    def to_dict(self) -> dict:
        """Serialize to dict for JSON response; levelUpMessage only on tier change."""
        payload = {
            "progress": self.progress,
            "skillLevel": self.skill_level.value,
            "streak": self.streak,
            "nextLevelAt": self.next_level_at,
            "completedProtocols": self.completed_protocols,
        }
        if self.level_up_message:
            payload["levelUpMessage"] = self.level_up_message
        return payload
