# rewire/conftest.py
import sys
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import pytest

# Add project root to PYTHONPATH
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rewire.models.meter import CompletionRecord


@pytest.fixture
def today() -> date:
    """Fixed reference day so streak tests never depend on the wall clock."""
    return date(2025, 3, 15)


@pytest.fixture
def completions_on(today):
    """
    Build a newest-first history from day offsets relative to `today`.

    completions_on(0, 0, 1) -> two completions today, one yesterday.
    """

    def _build(*offsets: int, hour: int = 12) -> list[CompletionRecord]:
        records = [
            CompletionRecord(
                completed_at=datetime.combine(today - timedelta(days=offset), time(hour), tzinfo=timezone.utc)
            )
            for offset in offsets
        ]
        return sorted(records, key=lambda r: r.completed_at, reverse=True)

    return _build


@pytest.fixture
def sqlite_db(tmp_path, monkeypatch):
    """
    Point the engine at a throwaway SQLite file with all tables created.
    """
    from rewire.core.database import create_all_tables, dispose_engine

    url = f"sqlite:///{tmp_path / 'meter.sqlite3'}"
    monkeypatch.setenv("TEST_DATABASE_URL", url)
    dispose_engine()
    create_all_tables()
    yield url
    dispose_engine()


@pytest.fixture
def memory_store():
    from rewire.features.meter.store import InMemoryMeterStore

    return InMemoryMeterStore()
