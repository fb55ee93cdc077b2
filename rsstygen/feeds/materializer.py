"""
Feed materializer.

Reads each source's full chapter history from the store and writes it as an
RSS 2.0 document. Feeds are rebuilt from scratch on every run; there is no
incremental feed state.
"""

from __future__ import annotations

import logging
import os
import tempfile
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Optional

from rsstygen.common.logging_utils import Log, source_logger
from rsstygen.scraper.base import ChapterIntegrityError, ChapterRecord, Source, effective_date
from rsstygen.scraper.chapter_store import ChapterStore, ChapterStoreError
from rsstygen.scraper.source_config import project_root

logger = logging.getLogger(__name__)

FEED_EXTENSION = ".xml"
OUTPUT_DIR_NAME = "rsstygen-rssfiles"
GENERATOR = "rsstygen"


@dataclass(frozen=True)
class FeedItem:
    title: str
    link: str
    pub_date: datetime
    guid: str


@dataclass(frozen=True)
class FeedChannel:
    title: str
    link: str
    description: str
    items: tuple[FeedItem, ...] = ()


@dataclass
class MaterializeReport:
    """Feed files written, and sources whose feed could not be built."""

    written: dict[str, Path] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def default_output_dir() -> Path:
    override = os.getenv("RSSTYGEN_OUTPUT_DIR")
    if override:
        return Path(override)
    return project_root() / OUTPUT_DIR_NAME


def feed_filename(source_title: str) -> str:
    """File name of a source's feed; path separators are not allowed in it."""
    safe = source_title.replace("/", "_").replace("\\", "_")
    return f"{safe}{FEED_EXTENSION}"


def format_rfc822(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def build_channel(source: Source, records: Sequence[ChapterRecord]) -> FeedChannel:
    """
    Turn a source's ordered history into a feed channel.

    Records keep the order they are given in.

    Raises:
        ChapterIntegrityError: If a record has no usable date or no id
    """
    items = []
    for record in records:
        if record.id is None:
            raise ChapterIntegrityError(
                f"Chapter '{record.title}' of '{record.source}' has no id"
            )
        items.append(
            FeedItem(
                title=record.title,
                link=record.url,
                pub_date=effective_date(record),
                guid=str(record.id),
            )
        )

    return FeedChannel(
        title=source.title,
        link=source.url,
        description=f"Latest chapters of {source.title}",
        items=tuple(items),
    )


def render_rss(channel: FeedChannel) -> bytes:
    """Serialize a channel as an RSS 2.0 document (UTF-8, with XML declaration)."""
    rss = ET.Element("rss", version="2.0")
    channel_el = ET.SubElement(rss, "channel")
    ET.SubElement(channel_el, "title").text = channel.title
    ET.SubElement(channel_el, "link").text = channel.link
    ET.SubElement(channel_el, "description").text = channel.description
    ET.SubElement(channel_el, "generator").text = GENERATOR

    for item in channel.items:
        item_el = ET.SubElement(channel_el, "item")
        ET.SubElement(item_el, "title").text = item.title
        ET.SubElement(item_el, "link").text = item.link
        ET.SubElement(item_el, "pubDate").text = format_rfc822(item.pub_date)
        ET.SubElement(item_el, "guid", isPermaLink="false").text = item.guid

    ET.indent(rss)
    return ET.tostring(rss, encoding="utf-8", xml_declaration=True)


class FeedMaterializer:
    """
    Writes one feed document per source into the output directory.

    Args:
        store: A connected ChapterStore
        output_dir: Target directory, created on demand
        log: Logger to report through
    """

    def __init__(
        self,
        store: ChapterStore,
        output_dir: Optional[Path] = None,
        log: Optional[Log] = None,
    ):
        self.store = store
        self.output_dir = Path(output_dir) if output_dir else default_output_dir()
        self.log = log or logger

    def materialize(self, source: Source) -> Path:
        """
        Rebuild the feed of a single source.

        Returns:
            Path of the written feed file

        Raises:
            ChapterIntegrityError: If the stored history has a record without dates
            ChapterStoreError: If the history cannot be read
            OSError: If the file cannot be written
        """
        source_log = source_logger(self.log, source.title)
        if source_log.isEnabledFor(logging.DEBUG):
            source_log.debug("%d stored chapters", self.store.count_by_source(source.title))

        records = self.store.list_by_source(source.title)
        document = render_rss(build_channel(source, records))

        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / feed_filename(source.title)
        self._write_atomic(target, document)

        source_log.info(
            "Wrote feed with %d items to %s",
            len(records),
            target,
            extra={"items": len(records), "path": str(target)},
        )
        return target

    def materialize_all(self, sources: Sequence[Source]) -> MaterializeReport:
        """Rebuild every feed; a failure only affects the failing source."""
        report = MaterializeReport()
        for source in sources:
            try:
                report.written[source.title] = self.materialize(source)
            except (ChapterIntegrityError, ChapterStoreError, OSError) as e:
                source_logger(self.log, source.title).error(
                    "Feed generation failed. (%s)",
                    e,
                    extra={"error_type": type(e).__name__},
                )
                report.failed[source.title] = f"{type(e).__name__}: {e}"
        return report

    def _write_atomic(self, target: Path, document: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.output_dir, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(document)
            os.chmod(tmp_name, 0o644)
            os.replace(tmp_name, target)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
