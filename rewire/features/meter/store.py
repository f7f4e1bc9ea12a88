"""
Meter storage adapters.

The meter only needs four things from storage: the user's stored snapshot,
their completion history (newest first), a conditional write of the new
snapshot, and a place to append level transitions.

save_state is a compare-and-set on ProgressState.version: it succeeds only
if nobody else wrote since the snapshot was read. Callers retry on False.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import insert, select, update

from rewire.core.database import get_db_session, meter_users, protocol_completions, rewire_events
from rewire.core.errors import NotFoundError
from rewire.models.meter import CompletionRecord, LevelTransitionEvent, ProgressState, SkillTier


class MeterStore(Protocol):
    def load_user(self, user_id: str) -> ProgressState: ...

    def load_completions(self, user_id: str) -> List[CompletionRecord]: ...

    def save_state(self, state: ProgressState, expected_version: int) -> bool: ...

    def record_transition(self, event: LevelTransitionEvent) -> None: ...


def _newest_first(records: List[CompletionRecord]) -> List[CompletionRecord]:
    def key(record: CompletionRecord) -> datetime:
        moment = record.completed_at
        return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)

    return sorted(records, key=key, reverse=True)


class InMemoryMeterStore:
    """Dict-backed store for development and tests."""

    def __init__(self):
        self._users: Dict[str, ProgressState] = {}
        self._completions: Dict[str, List[CompletionRecord]] = {}
        self._events: List[LevelTransitionEvent] = []
        self._lock = threading.Lock()

    def add_user(self, user_id: str, skill_level: Optional[SkillTier] = None) -> ProgressState:
        with self._lock:
            state = ProgressState(user_id=user_id, skill_level=skill_level)
            self._users[user_id] = state
            return replace(state)

    def add_completion(self, user_id: str, completed_at: datetime) -> CompletionRecord:
        record = CompletionRecord(completed_at=completed_at, user_id=user_id)
        with self._lock:
            self._completions.setdefault(user_id, []).append(record)
        return record

    def load_user(self, user_id: str) -> ProgressState:
        with self._lock:
            state = self._users.get(user_id)
            if state is None:
                raise NotFoundError(f"User not found: {user_id}")
            return replace(state)

    def load_completions(self, user_id: str) -> List[CompletionRecord]:
        with self._lock:
            return _newest_first(list(self._completions.get(user_id, [])))

    def save_state(self, state: ProgressState, expected_version: int) -> bool:
        with self._lock:
            current = self._users.get(state.user_id)
            if current is None:
                raise NotFoundError(f"User not found: {state.user_id}")
            if current.version != expected_version:
                return False
            self._users[state.user_id] = replace(state, version=expected_version + 1)
            return True

    def record_transition(self, event: LevelTransitionEvent) -> None:
        with self._lock:
            self._events.append(event)

    def transitions(self, user_id: Optional[str] = None) -> List[LevelTransitionEvent]:
        with self._lock:
            return [e for e in self._events if user_id is None or e.user_id == user_id]


class SqlMeterStore:
    """SQLAlchemy Core store over meter_users / protocol_completions / rewire_events."""

    def load_user(self, user_id: str) -> ProgressState:
        with get_db_session() as session:
            row = session.execute(
                select(meter_users).where(meter_users.c.user_id == user_id)
            ).first()
        if not row:
            raise NotFoundError(f"User not found: {user_id}")
        return ProgressState(
            user_id=row.user_id,
            progress=float(row.rewire_progress or 0.0),
            skill_level=SkillTier.parse(row.skill_level),
            current_streak=int(row.current_streak or 0),
            updated_at=row.updated_at,
            version=int(row.version or 0),
        )

    def load_completions(self, user_id: str) -> List[CompletionRecord]:
        with get_db_session() as session:
            rows = session.execute(
                select(protocol_completions.c.user_id, protocol_completions.c.completed_at)
                .where(
                    protocol_completions.c.user_id == user_id,
                    protocol_completions.c.completed_at.is_not(None),
                )
                .order_by(protocol_completions.c.completed_at.desc(), protocol_completions.c.id.desc())
            ).all()
        return CompletionRecord.parse_many(
            {"user_id": row.user_id, "completed_at": row.completed_at} for row in rows
        )

    def save_state(self, state: ProgressState, expected_version: int) -> bool:
        with get_db_session() as session:
            result = session.execute(
                update(meter_users)
                .where(
                    meter_users.c.user_id == state.user_id,
                    meter_users.c.version == expected_version,
                )
                .values(
                    rewire_progress=state.progress,
                    skill_level=state.skill_level.value if state.skill_level else None,
                    current_streak=state.current_streak,
                    updated_at=state.updated_at or datetime.now(timezone.utc),
                    version=expected_version + 1,
                )
            )
            return result.rowcount == 1

    def record_transition(self, event: LevelTransitionEvent) -> None:
        with get_db_session() as session:
            session.execute(
                insert(rewire_events).values(
                    user_id=event.user_id,
                    event_type=event.event_type,
                    old_value=event.old_value,
                    new_value=event.new_value,
                    occurred_at=event.occurred_at,
                )
            )
