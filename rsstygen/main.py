"""
rsstygen - Main Entry Point

Runs one full pipeline pass: crawl every configured source, store the
chapters not seen before, rebuild the RSS feed of every source and upload
the feeds when FTP settings are configured. Meant to be triggered by an
external scheduler (cron, Airflow, systemd timer).

Usage:
    python -m rsstygen.main [OPTIONS]

Options:
    --config PATH       Configuration file (default: config/sources.yml)
    --source TITLE      Only process this source (repeatable)
    --output-dir DIR    Directory the feed files are written to
    --skip-upload       Do not upload feeds even if FTP is configured
    --verbose           Enable debug logging
    --help              Show this message and exit

Examples:
    # Full run:
    python -m rsstygen.main

    # Crawl a single source without uploading:
    python -m rsstygen.main --source "Foo" --skip-upload

Exit Codes:
    0: Success
    1: Partial failure (some sources exhausted, feeds or uploads failed)
    2: Fatal error (configuration, database or rendering backend)
"""

import argparse
import logging
import os
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from rsstygen.common.logging_utils import configure_logging
from rsstygen.feeds.materializer import FeedMaterializer, default_output_dir
from rsstygen.scraper.base import Source
from rsstygen.scraper.chapter_store import ChapterStore, ChapterStoreError
from rsstygen.scraper.orchestrator import Orchestrator
from rsstygen.scraper.rendering_backend import RenderingBackend, RenderingBackendError
from rsstygen.scraper.source_config import ConfigError, RunConfig, load_config
from rsstygen.scraper.source_job import JobState
from rsstygen.uploader.ftp import FtpUploader, UploadError

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Crawl chapter listings and publish them as RSS feeds',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Configuration file (default: config/sources.yml)',
        default=None
    )

    parser.add_argument(
        '--source',
        type=str,
        action='append',
        help='Only process this source (repeatable)',
        dest='sources',
        default=None
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        help='Directory the feed files are written to',
        default=None,
        dest='output_dir'
    )

    parser.add_argument(
        '--skip-upload',
        action='store_true',
        help='Do not upload feeds even if FTP is configured',
        dest='skip_upload'
    )

    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    return parser.parse_args(argv)


def prepare_database(store_factory: Callable[[], ChapterStore]) -> None:
    """
    Create the chapters table if needed.

    Raises:
        ChapterStoreError: If the database is unreachable or the table cannot be created
    """
    logger.info("Preparing database...")
    with store_factory() as store:
        store.ensure_schema()


def run_pipeline(
    config: RunConfig,
    sources: Sequence[Source],
    store_factory: Callable[[], ChapterStore],
    orchestrator: Orchestrator,
    output_dir: Path,
    upload: bool = True,
    uploader_factory: Callable = FtpUploader,
) -> dict[str, int]:
    """
    Crawl, materialize and upload.

    Args:
        config: Parsed run configuration (used for the FTP settings)
        sources: Sources to process
        store_factory: Returns a fresh, unconnected ChapterStore
        orchestrator: Runs the crawl phase
        output_dir: Where feed files are written
        upload: Upload the feeds when FTP settings are present
        uploader_factory: Builds an uploader from FtpSettings

    Returns:
        Dictionary with statistics:
        - sources: Number of sources processed
        - exhausted: Sources whose crawl gave up
        - inserted: New chapters stored
        - feeds_written / feeds_failed: Feed files written or failed
        - upload_failed: Files that failed to upload (or -1 if no session)

    Raises:
        RenderingBackendError: If the rendering backend cannot be started
    """
    stats = {
        'sources': len(sources),
        'exhausted': 0,
        'inserted': 0,
        'feeds_written': 0,
        'feeds_failed': 0,
        'uploaded': 0,
        'upload_failed': 0,
    }

    logger.info("Starting generator...")
    results = orchestrator.run(sources)
    stats['exhausted'] = sum(1 for r in results if r.state is JobState.EXHAUSTED)
    stats['inserted'] = sum(r.inserted for r in results)
    for result in results:
        if result.state is JobState.EXHAUSTED:
            logger.warning(
                "Crawling %s yielded no results after %d attempts. (%s)",
                result.source,
                result.attempts,
                result.last_error,
            )

    logger.info("Generating feeds...")
    with store_factory() as store:
        report = FeedMaterializer(store, output_dir=output_dir).materialize_all(sources)
    stats['feeds_written'] = len(report.written)
    stats['feeds_failed'] = len(report.failed)

    if upload and config.ftp is not None:
        logger.info("Starting uploader...")
        try:
            upload_report = uploader_factory(config.ftp).upload_directory(output_dir)
        except UploadError as e:
            logger.error("Uploader crashed. (%s)", e)
            stats['upload_failed'] = -1
        else:
            stats['uploaded'] = len(upload_report.uploaded)
            stats['upload_failed'] = len(upload_report.failed)
            logger.info("Uploader finished.")

    logger.info("Pipeline finished", extra=stats)
    return stats


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point for a pipeline run.

    Returns:
        Exit code (0 = success, 1 = partial failure, 2 = fatal error)
    """
    args = parse_args(argv)
    configure_logging(args.verbose)

    database_url = os.getenv('DATABASE_URL')
    if not database_url:
        logger.error("DATABASE_URL environment variable must be set")
        return 2

    try:
        logger.info("Reading config file...")
        config = load_config(args.config)
        sources = config.select(args.sources)
    except (FileNotFoundError, ConfigError) as e:
        logger.error("Failed getting configuration data. (%s)", e)
        return 2

    def store_factory() -> ChapterStore:
        return ChapterStore(database_url)

    output_dir = Path(args.output_dir) if args.output_dir else default_output_dir()

    try:
        prepare_database(store_factory)

        stats = run_pipeline(
            config=config,
            sources=sources,
            store_factory=store_factory,
            orchestrator=Orchestrator(RenderingBackend(), store_factory),
            output_dir=output_dir,
            upload=not args.skip_upload,
        )

    except ChapterStoreError as e:
        logger.error("Database error: %s", e)
        return 2

    except RenderingBackendError as e:
        logger.error("Rendering backend error: %s", e)
        return 2

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130

    logger.info("All done. Goodbye!")
    if stats['exhausted'] or stats['feeds_failed'] or stats['upload_failed']:
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
