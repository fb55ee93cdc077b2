"""
Feed CLI entry point.

Rebuilds the feed files from the stored history without crawling.
"""

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from rsstygen.common.logging_utils import configure_logging
from rsstygen.feeds.materializer import FeedMaterializer, default_output_dir
from rsstygen.scraper.chapter_store import ChapterStore, ChapterStoreError
from rsstygen.scraper.source_config import ConfigError, load_config

load_dotenv()

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild RSS feeds from stored chapters")
    parser.add_argument("--config", type=str, default=None, help="Configuration file")
    parser.add_argument("--output-dir", type=str, default=None, help="Output directory for feed files")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL environment variable must be set")
        return 2

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ConfigError) as e:
        logger.error("Failed getting configuration data. (%s)", e)
        return 2

    output_dir = Path(args.output_dir) if args.output_dir else default_output_dir()
    try:
        with ChapterStore(database_url) as store:
            report = FeedMaterializer(store, output_dir=output_dir).materialize_all(config.sources)
    except ChapterStoreError as e:
        logger.error("Feed generation failed: %s", e)
        return 2

    logger.info(
        "Feed generation completed",
        extra={"written": len(report.written), "failed": len(report.failed)},
    )
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
