"""Logging helpers shared by the rsstygen entry points and components."""

import logging
import sys
from typing import Any, MutableMapping, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

Log = Union[logging.Logger, logging.LoggerAdapter]


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for a command-line run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


class SourceLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the source title and tags it in `extra`."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("source", self.extra["source"])
        kwargs["extra"] = extra
        return f"[{self.extra['source']}] {msg}", kwargs


def source_logger(log: Log, source_title: str) -> SourceLoggerAdapter:
    """Return a logger bound to one source."""
    base = log.logger if isinstance(log, logging.LoggerAdapter) else log
    return SourceLoggerAdapter(base, {"source": source_title})
