"""Scraper Service.

This service renders every configured source, extracts its chapter list and
stores the chapters it has not seen before.

Main components:
- ExtractionAdapter: Abstract base class for extraction backends
- SourceJob: Per-source retry state machine
- ChapterStore: PostgreSQL gateway owning the deduplication rule
- Orchestrator: Runs all source jobs concurrently around one rendering backend
"""

from .base import ChapterRecord, ExtractionAdapter, RawItem, Source
from .chapter_store import ChapterStore, ChapterStoreError
from .orchestrator import Orchestrator
from .rendering_backend import RenderingBackend, RenderingBackendError
from .source_config import ConfigError, RunConfig, load_config
from .source_job import JobResult, JobState, SourceJob

__all__ = [
    "ChapterRecord",
    "ChapterStore",
    "ChapterStoreError",
    "ConfigError",
    "ExtractionAdapter",
    "JobResult",
    "JobState",
    "Orchestrator",
    "RawItem",
    "RenderingBackend",
    "RenderingBackendError",
    "RunConfig",
    "Source",
    "SourceJob",
    "load_config",
]
__version__ = "0.1.0"
