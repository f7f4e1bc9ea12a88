from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional, Sequence

from rewire.core.errors import ValidationError
from rewire.models.meter import CompletionRecord


def to_calendar_day(moment: datetime, zone: Optional[tzinfo] = None) -> date:
    """Drop time-of-day. Naive timestamps are read as UTC."""
    aware = moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    return aware.astimezone(zone or timezone.utc).date()


def today_in(zone: Optional[tzinfo] = None, now: Optional[datetime] = None) -> date:
    return to_calendar_day(now or datetime.now(timezone.utc), zone)


def calculate_streak(
    completions: Sequence[CompletionRecord],
    today: date,
    zone: Optional[tzinfo] = None,
) -> int:
    """
    Current unbroken run of completion days ending today or yesterday.

    `completions` must be ordered newest first. Several completions on one
    calendar day count once, and the first gap ends the run; older history
    past the gap is never consulted.
    """
    if not completions:
        return 0

    days = [to_calendar_day(c.completed_at, zone) for c in completions]
    _ensure_newest_first(days)

    days_since_latest = (today - days[0]).days
    if days_since_latest > 1:
        return 0

    # Start from today if they completed today; otherwise yesterday
    anchor = today - timedelta(days=1) if days_since_latest == 1 else today

    streak = 0
    counted: set[date] = set()
    for day in days:
        if day in counted:
            continue
        if day == anchor:
            streak += 1
            counted.add(day)
            anchor -= timedelta(days=1)
        elif day < anchor:
            break

    return streak


def _ensure_newest_first(days: list[date]) -> None:
    for index in range(1, len(days)):
        if days[index] > days[index - 1]:
            raise ValidationError(
                f"Completions must be ordered newest first (entry {index} is newer than entry {index - 1})"
            )
