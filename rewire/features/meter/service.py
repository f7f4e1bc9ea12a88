"""
Meter Service

Runs the meter pipeline in data-flow order:
streak -> progress -> tier -> transition.

compute_meter() is pure. MeterService adds the storage round trip:
read the snapshot, compute, write it back with a compare-and-set, and
only then record the level transition, so two concurrent computations for
one user can never both report the same change.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional, Sequence

from rewire.core.config import meter_zone, settings
from rewire.core.errors import ConflictError, ValidationError
from rewire.core.logging import log_event
from rewire.features.meter.scoring_engine import ProgressFormula, get_formula
from rewire.features.meter.store import MeterStore
from rewire.features.meter.streaks import calculate_streak, to_calendar_day
from rewire.features.meter.tiers import classify_tier, next_level_at
from rewire.features.meter.transitions import detect_transition, level_up_message
from rewire.models.meter import (
    CompletionRecord,
    LevelTransitionEvent,
    MeterReading,
    ProgressState,
    SkillTier,
)


@dataclass
class MeterComputation:
    reading: MeterReading
    transition: Optional[LevelTransitionEvent]
    formula_version: str

    def to_dict(self) -> dict:
        return self.reading.to_dict()


def compute_meter(
    completions: Sequence[CompletionRecord],
    completed_count: int,
    previous_tier: Optional[SkillTier],
    today: date,
    *,
    formula: Optional[ProgressFormula] = None,
    zone: Optional[tzinfo] = None,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None,
) -> MeterComputation:
    """
    Compute the full meter reading from a newest-first completion history.

    Args:
        completions: Completion records, newest first
        completed_count: Total completed protocols (usually len(completions))
        previous_tier: Tier stored before this computation, None for a new user
        today: Current calendar day in the meter timezone
        formula: Progress formula; the configured active version if omitted
        zone: Timezone for calendar-day normalization (UTC if omitted)
        now: Timestamp for the transition event
        user_id: Owner, copied onto the transition event

    Returns:
        MeterComputation with the reading and the optional transition
    """
    active = formula or get_formula()

    streak = calculate_streak(completions, today, zone)
    progress = active.score(completed_count, streak)
    tier = classify_tier(progress)
    transition = detect_transition(previous_tier, tier, occurred_at=now, user_id=user_id)

    reading = MeterReading(
        progress=progress,
        skill_level=tier,
        streak=streak,
        next_level_at=next_level_at(progress),
        completed_protocols=completed_count,
        level_up_message=level_up_message(transition),
    )
    reading.validate()
    return MeterComputation(reading=reading, transition=transition, formula_version=active.version)


class MeterService:
    """Load, compute, and persist meter snapshots for one user at a time."""

    def __init__(
        self,
        store: MeterStore,
        *,
        formula: Optional[ProgressFormula] = None,
        zone: Optional[tzinfo] = None,
        max_write_retries: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._formula = formula
        self._zone = zone
        retries = settings.METER_MAX_WRITE_RETRIES if max_write_retries is None else max_write_retries
        if retries < 1:
            raise ValidationError(f"max_write_retries must be at least 1, got {retries}")
        self._max_write_retries = retries
        self._clock = clock

    @property
    def zone(self) -> tzinfo:
        return self._zone or meter_zone()

    def get_state(self, user_id: str) -> ProgressState:
        return self._store.load_user(user_id)

    def calculate(self, user_id: str, *, now: Optional[datetime] = None) -> MeterComputation:
        """
        Recompute and store the meter for a user.

        Raises:
            NotFoundError: user has no stored record
            ValidationError: history is malformed or out of order
            ConflictError: every compare-and-set attempt lost to a concurrent write
        """
        moment = now or self._clock()
        zone = self.zone
        today = to_calendar_day(moment, zone)
        formula = self._formula or get_formula()

        for attempt in range(1, self._max_write_retries + 1):
            stored = self._store.load_user(user_id)
            completions = self._store.load_completions(user_id)

            computation = compute_meter(
                completions,
                len(completions),
                stored.skill_level,
                today,
                formula=formula,
                zone=zone,
                now=moment,
                user_id=user_id,
            )
            reading = computation.reading

            new_state = ProgressState(
                user_id=user_id,
                progress=reading.progress,
                skill_level=reading.skill_level,
                current_streak=reading.streak,
                updated_at=moment,
                version=stored.version + 1,
            )
            new_state.validate()

            if not self._store.save_state(new_state, expected_version=stored.version):
                log_event(
                    "warning",
                    "meter.write_conflict",
                    request_id=None,
                    user_id=user_id,
                    event_type="meter.write_conflict",
                    extra={"attempt": attempt, "expected_version": stored.version},
                )
                continue

            if computation.transition is not None:
                self._store.record_transition(computation.transition)
                log_event(
                    "info",
                    "meter.level_changed",
                    request_id=None,
                    user_id=user_id,
                    event_type="meter.level_changed",
                    extra={
                        "old_value": computation.transition.old_value,
                        "new_value": computation.transition.new_value,
                        "direction": computation.transition.direction,
                    },
                )

            log_event(
                "info",
                "meter.computed",
                request_id=None,
                user_id=user_id,
                event_type="meter.computed",
                extra={
                    "progress": reading.progress,
                    "skill_level": reading.skill_level.value,
                    "streak": reading.streak,
                    "completed": reading.completed_protocols,
                    "formula": computation.formula_version,
                },
            )
            return computation

        raise ConflictError(
            f"Meter for user {user_id} changed concurrently; gave up after {self._max_write_retries} attempts"
        )
