"""
Pytest configuration and shared fixtures

This file contains test fixtures that can be used across all tests.
Fixtures are reusable components that set up test preconditions.

Learn more: https://docs.pytest.org/en/stable/fixture.html
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from rsstygen.scraper.base import ChapterRecord, Source, sort_chapters
from rsstygen.scraper.chapter_store import ChapterStoreError, DuplicateChapterError


class InMemoryChapterStore:
    """In-memory stub of ChapterStore.

    All instances created by one MemoryStoreFactory share the same rows, the
    way separate connections share one database table.
    """

    def __init__(self, factory: "MemoryStoreFactory"):
        self.factory = factory
        self.connected = False

    def connect(self) -> None:
        if self.factory.connect_failures > 0:
            self.factory.connect_failures -= 1
            raise ChapterStoreError("Database connection failed: simulated outage")
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False

    def ensure_schema(self) -> None:
        self.factory.schema_ready = True

    def exists(self, source: str, title: str) -> bool:
        return any(r.source == source and r.title == title for r in self.factory.rows)

    def insert(self, record: ChapterRecord) -> int:
        if record.title in self.factory.failing_inserts:
            self.factory.failing_inserts.discard(record.title)
            raise ChapterStoreError(f"Failed to insert chapter '{record.title}': simulated outage")
        if self.exists(record.source, record.title):
            raise DuplicateChapterError(f"Chapter '{record.title}' already exists")
        chapter_id = len(self.factory.rows) + 1
        self.factory.rows.append(
            ChapterRecord(
                id=chapter_id,
                source=record.source,
                title=record.title,
                url=record.url,
                published_at=record.published_at,
                first_seen_at=record.first_seen_at,
                last_seen_at=record.last_seen_at,
            )
        )
        self.factory.inserts += 1
        return chapter_id

    def list_by_source(self, source: str) -> list[ChapterRecord]:
        return sort_chapters([r for r in self.factory.rows if r.source == source])

    def count_by_source(self, source: str) -> int:
        return sum(1 for r in self.factory.rows if r.source == source)


class MemoryStoreFactory:
    """Callable store factory handing out InMemoryChapterStore instances."""

    def __init__(self, rows: Optional[list[ChapterRecord]] = None):
        self.rows: list[ChapterRecord] = list(rows or [])
        self.connect_failures = 0
        # Titles whose next insert fails once
        self.failing_inserts: set[str] = set()
        self.inserts = 0
        self.schema_ready = False

    def __call__(self) -> InMemoryChapterStore:
        return InMemoryChapterStore(self)


class SteppingClock:
    """Clock returning a pinned start time, advancing one minute per call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        return value


@pytest.fixture(scope="session")
def database_url() -> str:
    """
    Provide database URL for integration tests.

    Scope: session (created once per test run)

    Returns:
        str: PostgreSQL connection URL, or an empty string when unset
    """
    return os.getenv("RSSTYGEN_TEST_DATABASE_URL", "")


@pytest.fixture(scope="function")
def sample_source() -> Source:
    """Provide the 'Foo' source used throughout the tests."""
    return Source(
        title="Foo",
        url="http://x",
        ready_selector=".chapters",
        extraction_script="return window.__chapters;",
    )


@pytest.fixture(scope="function")
def sample_script_result() -> list[dict]:
    """
    Provide a raw extraction script result for the 'Foo' source.

    Scope: function (created fresh for each test)
    """
    return [
        {"title": "Ch1", "url": "http://x/1"},
        {"title": "Ch2", "url": "http://x/2", "date": "2024-05-01T00:00:00Z"},
    ]


@pytest.fixture(scope="function")
def store_factory() -> MemoryStoreFactory:
    """Provide an empty in-memory chapter store factory."""
    return MemoryStoreFactory()


@pytest.fixture(scope="function")
def pinned_clock() -> SteppingClock:
    """Provide a clock starting at 2024-04-30 12:00 UTC."""
    return SteppingClock(datetime(2024, 4, 30, 12, 0, tzinfo=timezone.utc))


@pytest.fixture(scope="function")
def no_sleep():
    """Provide a sleep replacement that records requested delays."""
    delays: list[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    sleep.delays = delays
    return sleep


# Mark tests based on their type for selective running
def pytest_configure(config):
    """
    Register custom pytest markers.

    This allows us to run specific test categories:
    - pytest -m unit        (run only unit tests)
    - pytest -m integration (run only integration tests)
    - pytest -m "not slow"  (skip slow tests)
    """
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test (isolated, fast)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running (>1 second)"
    )
