"""
Source job: extract one source and persist its unseen chapters.

A job walks PENDING -> ATTEMPTING -> SUCCESS | EXHAUSTED. Every attempt opens
its own store connection, runs the extraction adapter and, when the adapter
returned at least one item, inserts the chapters the store has not seen yet.
Transient failures are retried up to the policy's ceiling; running out of
attempts is logged and reported, never raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from rsstygen.common.logging_utils import Log, source_logger

from .base import ChapterRecord, ExtractionAdapter, ExtractionError, RawItem, Source
from .chapter_store import ChapterStore, ChapterStoreError
from .retry import RetryPolicy, backoff_delay

logger = logging.getLogger(__name__)


class JobState(str, Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


class NoChaptersFound(ExtractionError):
    """Raised when an extraction finishes but yields no items."""

    pass


@dataclass
class JobResult:
    """Terminal outcome of a source job."""

    source: str
    state: JobState
    attempts: int
    inserted: int = 0
    skipped: int = 0
    last_error: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceJob:
    """
    Per-source state machine with bounded retries.

    Args:
        source: Source to extract
        adapter: Extraction adapter owned by this job
        store_factory: Returns a fresh, unconnected ChapterStore for each attempt
        policy: Attempt ceiling and backoff schedule
        clock: Returns the current time for first/last-seen timestamps
        sleep: Called with the backoff delay before each retry
        log: Logger to report through; bound to the source title
    """

    def __init__(
        self,
        source: Source,
        adapter: ExtractionAdapter,
        store_factory: Callable[[], ChapterStore],
        policy: RetryPolicy = RetryPolicy(),
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        log: Optional[Log] = None,
    ):
        self.source = source
        self.adapter = adapter
        self.store_factory = store_factory
        self.policy = policy
        self.clock = clock
        self.sleep = sleep
        self.log = source_logger(log or logger, source.title)
        self.state = JobState.PENDING
        self.attempts = 0
        # Titles committed by any attempt of this job
        self.inserted_titles: set[str] = set()

    def run(self) -> JobResult:
        """Run attempts until one succeeds or the ceiling is reached."""
        last_error: Optional[str] = None

        while self.attempts < self.policy.max_attempts:
            delay = backoff_delay(self.attempts + 1, self.policy)
            if delay > 0:
                self.log.info("Waiting %g seconds before retrying...", delay)
                self.sleep(delay)

            self.attempts += 1
            self.state = JobState.ATTEMPTING
            self.log.info("Crawl attempt number %d.", self.attempts)

            try:
                inserted, skipped = self._attempt()
            except (ExtractionError, ChapterStoreError) as e:
                last_error = f"{type(e).__name__}: {e}"
                self.log.warning(
                    "Attempt %d failed. (%s)",
                    self.attempts,
                    last_error,
                    extra={"attempt": self.attempts, "error_type": type(e).__name__},
                )
                continue

            self.state = JobState.SUCCESS
            self.log.info(
                "Crawling finished: %d new, %d already known.",
                inserted,
                skipped,
                extra={"inserted": inserted, "skipped": skipped},
            )
            return JobResult(
                source=self.source.title,
                state=self.state,
                attempts=self.attempts,
                inserted=inserted,
                skipped=skipped,
            )

        self.state = JobState.EXHAUSTED
        self.log.error(
            "Giving up after %d attempts. (%s)",
            self.attempts,
            last_error,
            extra={"attempts": self.attempts},
        )
        return JobResult(
            source=self.source.title,
            state=self.state,
            attempts=self.attempts,
            inserted=len(self.inserted_titles),
            last_error=last_error,
        )

    def _attempt(self) -> tuple[int, int]:
        """One attempt: connect, extract, persist.

        Returns:
            (inserted, skipped) counts; inserted covers earlier attempts too

        Raises:
            ChapterStoreError: If the store is unreachable or a write fails
            ExtractionError: If the extraction fails or yields nothing
        """
        with self.store_factory() as store:
            self.log.info("Crawling %s...", self.source.url)
            items = self.adapter.extract(self.source)
            if not items:
                raise NoChaptersFound("Crawling finished but yielded no results")
            return self._persist(store, items)

    def _persist(self, store: ChapterStore, items: list[RawItem]) -> tuple[int, int]:
        skipped = 0
        for item in items:
            if store.exists(self.source.title, item.title):
                if item.title not in self.inserted_titles:
                    skipped += 1
                continue

            now = self.clock()
            self.log.info("Inserting %s into database...", item.title)
            store.insert(
                ChapterRecord(
                    source=self.source.title,
                    title=item.title,
                    url=item.url,
                    published_at=item.date,
                    first_seen_at=now,
                    last_seen_at=now,
                )
            )
            self.inserted_titles.add(item.title)
        return len(self.inserted_titles), skipped
