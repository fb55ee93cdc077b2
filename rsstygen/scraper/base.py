"""Scraper Base Types.

This module defines the data types shared by the scraper service and the
abstract interface that every extraction adapter must implement:

- Source: a configured upstream chapter listing
- RawItem: one chapter as returned by a source's extraction script
- ChapterRecord: a persisted, deduplicated chapter
- ExtractionAdapter: turns a Source into a list of RawItem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


class ExtractionError(Exception):
    """Base class for failures while extracting chapters from a source."""

    pass


class RenderingConnectionError(ExtractionError, ConnectionError):
    """Raised when the rendering backend cannot be reached."""

    pass


class ExtractionTimeout(ExtractionError, TimeoutError):
    """Raised when the ready selector never shows up in the rendered page."""

    pass


class ScriptError(ExtractionError):
    """Raised when the extraction script throws or does not return a list."""

    pass


class MalformedItem(ExtractionError):
    """Raised when an element of the script result has the wrong shape.

    One bad element aborts the whole extraction.
    """

    pass


class ChapterIntegrityError(Exception):
    """Raised when a chapter has neither a published date nor a first-seen date."""

    pass


@dataclass(frozen=True)
class Source:
    """A configured upstream listing, immutable for the duration of a run."""

    title: str  # Unique; also the feed filename stem and part of the dedup key
    url: str
    ready_selector: str  # CSS selector that marks the chapter list as rendered
    extraction_script: str  # JavaScript function body returning an array of items


@dataclass(frozen=True)
class RawItem:
    """A chapter as produced by an extraction script."""

    title: str
    url: str
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ChapterRecord:
    """A chapter row in the store.

    `id` is None until the store assigns one on insert.
    """

    source: str
    title: str
    url: str
    published_at: Optional[datetime]
    first_seen_at: Optional[datetime]
    last_seen_at: Optional[datetime]
    id: Optional[int] = None


def parse_timestamp(value: str) -> datetime:
    """Parse a loosely formatted timestamp coming from a page.

    Accepts ISO-8601 (with or without a trailing ``Z``) and RFC 2822 dates.
    Naive values are assumed to be UTC.

    Raises:
        ValueError: If the value matches neither format
    """
    text = value.strip()
    if not text:
        raise ValueError("empty timestamp")

    iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError) as err:
            raise ValueError(f"unrecognised timestamp: {value!r}") from err

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def effective_date(record: ChapterRecord) -> datetime:
    """Return the date a chapter is ordered and published by.

    Raises:
        ChapterIntegrityError: If the record has neither date
    """
    if record.published_at is not None:
        return record.published_at
    if record.first_seen_at is not None:
        return record.first_seen_at
    raise ChapterIntegrityError(
        f"Chapter '{record.title}' of '{record.source}' has no published or first-seen date"
    )


def sort_chapters(records: list[ChapterRecord]) -> list[ChapterRecord]:
    """Order chapters newest first, ties broken by title descending.

    The order only depends on the records' data, so identical history always
    yields the same feed.
    """
    return sorted(records, key=lambda r: (effective_date(r), r.title), reverse=True)


class ExtractionAdapter(ABC):
    """Abstract base class for chapter extraction adapters.

    Usage:
        class MyAdapter(ExtractionAdapter):
            def extract(self, source):
                ...
    """

    @abstractmethod
    def extract(self, source: Source) -> list[RawItem]:
        """Extract the current chapter list of a source.

        Args:
            source: The source to render and extract

        Returns:
            Items in the order the extraction script produced them

        Raises:
            RenderingConnectionError: If the rendering backend is unreachable
            ExtractionTimeout: If the ready selector never appears
            ScriptError: If the script fails or returns something other than a list
            MalformedItem: If any returned element is invalid
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


def validate_raw_items(result: object) -> list[RawItem]:
    """Turn an extraction script result into RawItem objects.

    Raises:
        ScriptError: If the result is not a list
        MalformedItem: If any element is invalid
    """
    if not isinstance(result, list):
        raise ScriptError(
            f"Extraction script returned {type(result).__name__}, expected a list"
        )

    items: list[RawItem] = []
    for index, element in enumerate(result):
        if not isinstance(element, dict):
            raise MalformedItem(f"Item {index} is not an object")

        title = element.get("title")
        if not isinstance(title, str):
            raise MalformedItem(f"Item {index} has no string 'title'")

        url = element.get("url")
        if not isinstance(url, str):
            raise MalformedItem(f"Item {index} ('{title}') has no string 'url'")

        date: Optional[datetime] = None
        if "date" in element:
            raw_date = element["date"]
            if not isinstance(raw_date, str):
                raise MalformedItem(f"Item {index} ('{title}') has a non-string 'date'")
            if raw_date.strip():
                try:
                    date = parse_timestamp(raw_date)
                except ValueError as err:
                    raise MalformedItem(
                        f"Item {index} ('{title}') has an invalid date: {err}"
                    ) from err

        items.append(RawItem(title=title, url=url, date=date))

    return items
