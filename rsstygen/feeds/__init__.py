"""Feed Service.

Renders the stored chapter history of every source into RSS 2.0 files.

Main components:
- FeedMaterializer: Reads history through the ChapterStore and writes feeds
- build_channel / render_rss: Pure channel construction and serialization
"""

from .materializer import (
    FeedChannel,
    FeedItem,
    FeedMaterializer,
    MaterializeReport,
    build_channel,
    default_output_dir,
    render_rss,
)

__all__ = [
    "FeedChannel",
    "FeedItem",
    "FeedMaterializer",
    "MaterializeReport",
    "build_channel",
    "default_output_dir",
    "render_rss",
]
