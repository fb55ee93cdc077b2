"""
Common utilities shared across rsstygen services.

This package is intentionally small and focused on dependency-light helpers
that are reused by the scraper, the feed materializer and the uploader.
"""

from .logging_utils import SourceLoggerAdapter, configure_logging, source_logger

__all__ = ["SourceLoggerAdapter", "configure_logging", "source_logger"]
