"""
Unit tests for the feed materializer.

Feeds are rendered from the in-memory store and parsed back with
ElementTree to check the RSS structure.
"""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

import pytest

from rsstygen.feeds.materializer import (
    FeedMaterializer,
    build_channel,
    feed_filename,
    format_rfc822,
    render_rss,
)
from rsstygen.scraper.base import ChapterIntegrityError, ChapterRecord, Source
from rsstygen.scraper.chapter_store import ChapterStoreError
from tests.conftest import MemoryStoreFactory


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def record(chapter_id, title, published=None, first_seen=utc(2024, 1, 2), source="Foo"):
    return ChapterRecord(
        id=chapter_id,
        source=source,
        title=title,
        url=f"http://x/{chapter_id}",
        published_at=published,
        first_seen_at=first_seen,
        last_seen_at=first_seen,
    )


@pytest.fixture
def history():
    return [
        record(1, "Ch1", published=utc(2024, 1, 3)),
        record(2, "Ch2", published=utc(2024, 1, 1)),
        record(3, "Ch3", first_seen=utc(2024, 1, 2)),
    ]


class TestBuildChannel:
    """Tests for mapping records to feed items"""

    def test_channel_fields_come_from_source(self, sample_source):
        channel = build_channel(sample_source, [])

        assert channel.title == "Foo"
        assert channel.link == "http://x"
        assert "Foo" in channel.description
        assert channel.items == ()

    def test_items_keep_record_order(self, sample_source, history):
        channel = build_channel(sample_source, history)

        assert [i.title for i in channel.items] == ["Ch1", "Ch2", "Ch3"]
        assert [i.guid for i in channel.items] == ["1", "2", "3"]
        assert [i.link for i in channel.items] == ["http://x/1", "http://x/2", "http://x/3"]

    def test_pub_date_falls_back_to_first_seen(self, sample_source):
        channel = build_channel(sample_source, [record(7, "Ch7", first_seen=utc(2024, 2, 2))])
        assert channel.items[0].pub_date == utc(2024, 2, 2)

    def test_dateless_record_fails(self, sample_source):
        with pytest.raises(ChapterIntegrityError):
            build_channel(sample_source, [record(1, "Ch1", first_seen=None)])

    def test_record_without_id_fails(self, sample_source):
        with pytest.raises(ChapterIntegrityError):
            build_channel(sample_source, [record(None, "Ch1")])


class TestRenderRss:
    """Tests for the RSS 2.0 document"""

    def test_document_structure(self, sample_source, history):
        document = render_rss(build_channel(sample_source, history))

        assert document.startswith(b"<?xml")
        root = ET.fromstring(document)
        assert root.tag == "rss"
        assert root.get("version") == "2.0"

        channel = root.find("channel")
        assert channel.findtext("title") == "Foo"
        assert channel.findtext("link") == "http://x"
        assert channel.findtext("description")

        items = channel.findall("item")
        assert [i.findtext("title") for i in items] == ["Ch1", "Ch2", "Ch3"]
        first = items[0]
        assert first.findtext("link") == "http://x/1"
        assert first.findtext("pubDate") == "Wed, 03 Jan 2024 00:00:00 GMT"
        guid = first.find("guid")
        assert guid.text == "1"
        assert guid.get("isPermaLink") == "false"

    def test_special_characters_are_escaped(self):
        source = Source("A & B <Special>", "http://x?a=1&b=2", "ul", "return [];")
        document = render_rss(build_channel(source, [record(1, "Ch <1> & more", source=source.title)]))

        root = ET.fromstring(document)
        assert root.find("channel").findtext("title") == "A & B <Special>"
        assert root.find("channel/item").findtext("title") == "Ch <1> & more"

    def test_rendering_is_deterministic(self, sample_source, history):
        channel = build_channel(sample_source, history)
        assert render_rss(channel) == render_rss(channel)

    def test_rfc822_converts_to_gmt(self):
        value = datetime(2024, 5, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_rfc822(value) == "Wed, 01 May 2024 00:00:00 GMT"


class TestFeedMaterializer:
    """Tests for writing feed files"""

    def test_writes_feed_in_canonical_order(self, tmp_path, sample_source, history):
        store = MemoryStoreFactory(history)()
        output_dir = tmp_path / "rssfiles"

        path = FeedMaterializer(store, output_dir=output_dir).materialize(sample_source)

        assert path == output_dir / "Foo.xml"
        items = ET.parse(path).getroot().findall("channel/item")
        # Ch1 (Jan 3), Ch3 (first seen Jan 2), Ch2 (Jan 1)
        assert [i.findtext("title") for i in items] == ["Ch1", "Ch3", "Ch2"]

    def test_output_dir_created_on_demand(self, tmp_path, sample_source):
        output_dir = tmp_path / "a" / "b"
        FeedMaterializer(MemoryStoreFactory()(), output_dir=output_dir).materialize(sample_source)
        assert (output_dir / "Foo.xml").exists()

    def test_rewrites_existing_feed(self, tmp_path, sample_source, history):
        (tmp_path / "Foo.xml").write_text("stale", encoding="utf-8")

        FeedMaterializer(MemoryStoreFactory(history)(), output_dir=tmp_path).materialize(sample_source)

        assert (tmp_path / "Foo.xml").read_bytes().startswith(b"<?xml")
        assert [p.name for p in tmp_path.iterdir()] == ["Foo.xml"]

    def test_integrity_error_only_fails_that_source(self, tmp_path):
        good = Source("Good", "http://good", "ul", "return [];")
        bad = Source("Bad", "http://bad", "ul", "return [];")
        store = MemoryStoreFactory([
            record(1, "Ch1", published=utc(2024, 1, 1), source="Good"),
        ])()
        # list_by_source sorts, so a dateless row surfaces as an integrity error
        store.factory.rows.append(record(2, "Broken", first_seen=None, source="Bad"))

        report = FeedMaterializer(store, output_dir=tmp_path).materialize_all([bad, good])

        assert list(report.written) == ["Good"]
        assert "ChapterIntegrityError" in report.failed["Bad"]
        assert not report.ok
        assert not (tmp_path / "Bad.xml").exists()

    def test_store_error_only_fails_that_source(self, tmp_path, caplog):
        caplog.set_level(logging.DEBUG)
        good = Source("Good", "http://good", "ul", "return [];")
        bad = Source("Bad", "http://bad", "ul", "return [];")
        store = MemoryStoreFactory([
            record(1, "Ch1", published=utc(2024, 1, 1), source="Good"),
        ])()
        count_by_source = store.count_by_source

        def flaky_count(source):
            if source == "Bad":
                raise ChapterStoreError("Failed to count chapters of 'Bad': connection reset")
            return count_by_source(source)

        store.count_by_source = flaky_count

        report = FeedMaterializer(store, output_dir=tmp_path).materialize_all([bad, good])

        assert list(report.written) == ["Good"]
        assert "ChapterStoreError" in report.failed["Bad"]
        assert (tmp_path / "Good.xml").exists()
        assert not (tmp_path / "Bad.xml").exists()

    def test_feed_filename_strips_path_separators(self):
        assert feed_filename("Foo") == "Foo.xml"
        assert feed_filename("A/B\\C") == "A_B_C.xml"

    def test_default_output_dir_from_env(self, tmp_path, monkeypatch, sample_source):
        monkeypatch.setenv("RSSTYGEN_OUTPUT_DIR", str(tmp_path / "env-out"))

        path = FeedMaterializer(MemoryStoreFactory()()).materialize(sample_source)

        assert path == tmp_path / "env-out" / "Foo.xml"
