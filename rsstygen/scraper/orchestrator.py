"""
Scrape orchestrator.

Brings the rendering backend up, runs one SourceJob per source concurrently
with staggered start times, waits until every job is terminal and then tears
the backend down again.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Optional

from rsstygen.common.logging_utils import Log, source_logger

from .adapters.webdriver_adapter import WebDriverAdapter
from .base import ExtractionAdapter, Source
from .chapter_store import ChapterStore
from .rendering_backend import RenderingBackend
from .retry import RetryPolicy, stagger_delay
from .source_job import JobResult, JobState, SourceJob, utc_now

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[str, Log], ExtractionAdapter]


def webdriver_adapter_factory(base_url: str, log: Log) -> ExtractionAdapter:
    return WebDriverAdapter(base_url=base_url, log=log)


class Orchestrator:
    """
    Runs the scrape phase of a pipeline run.

    The wait on the jobs is a hard barrier: run() only returns once every job
    reached SUCCESS or EXHAUSTED, and the backend is stopped even when a job
    crashed.
    """

    def __init__(
        self,
        backend: RenderingBackend,
        store_factory: Callable[[], ChapterStore],
        adapter_factory: AdapterFactory = webdriver_adapter_factory,
        policy: RetryPolicy = RetryPolicy(),
        stagger_step: float = 2.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
        log: Optional[Log] = None,
    ):
        self.backend = backend
        self.store_factory = store_factory
        self.adapter_factory = adapter_factory
        self.policy = policy
        self.stagger_step = stagger_step
        self.clock = clock
        self.sleep = sleep
        self.log = log or logger

    def run(self, sources: Sequence[Source]) -> list[JobResult]:
        """
        Scrape all sources.

        Returns:
            One JobResult per source, in the order of `sources`

        Raises:
            RenderingBackendError: If the rendering backend cannot be started
        """
        if not sources:
            self.log.warning("No sources configured, nothing to crawl")
            return []

        self.backend.start()
        try:
            results = self._run_jobs(sources)
        finally:
            self.backend.stop()

        succeeded = sum(1 for r in results if r.state is JobState.SUCCESS)
        inserted = sum(r.inserted for r in results)
        self.log.info(
            "Crawling finished: %d/%d sources succeeded, %d new chapters",
            succeeded,
            len(results),
            inserted,
            extra={
                "sources": len(results),
                "succeeded": succeeded,
                "exhausted": len(results) - succeeded,
                "inserted": inserted,
            },
        )
        return results

    def _run_jobs(self, sources: Sequence[Source]) -> list[JobResult]:
        with ThreadPoolExecutor(
            max_workers=len(sources), thread_name_prefix="source-job"
        ) as pool:
            futures = [
                pool.submit(self._run_job, index, source)
                for index, source in enumerate(sources)
            ]
            wait(futures, return_when=ALL_COMPLETED)

        results: list[JobResult] = []
        for source, future in zip(sources, futures):
            try:
                results.append(future.result())
            except Exception as e:
                self.log.error(
                    "Job for %s crashed: %s",
                    source.title,
                    e,
                    exc_info=e,
                    extra={"source": source.title, "error_type": type(e).__name__},
                )
                results.append(
                    JobResult(
                        source=source.title,
                        state=JobState.EXHAUSTED,
                        attempts=0,
                        last_error=f"{type(e).__name__}: {e}",
                    )
                )
        return results

    def _run_job(self, index: int, source: Source) -> JobResult:
        delay = stagger_delay(index, self.stagger_step)
        if delay > 0:
            self.sleep(delay)

        job_log = source_logger(self.log, source.title)
        job = SourceJob(
            source=source,
            adapter=self.adapter_factory(self.backend.base_url, job_log),
            store_factory=self.store_factory,
            policy=self.policy,
            clock=self.clock,
            sleep=self.sleep,
            log=self.log,
        )
        return job.run()
