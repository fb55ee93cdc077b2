"""
Run configuration loader for rsstygen.

Reads `config/sources.yml` (or an override) and turns it into typed objects
right away: a list of `Source` and optional `FtpSettings`. Nothing past this
module ever sees raw YAML values.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from rsstygen.uploader.ftp import DEFAULT_FTP_PORT, FtpSettings

from .base import Source

logger = logging.getLogger(__name__)

# Older config files used the names of the first release.
SOURCE_KEY_ALIASES = {
    "ready_selector": ("ready_selector", "list_node"),
    "extraction_script": ("extraction_script", "js_script"),
}


class ConfigError(ValueError):
    """Raised when the configuration file is missing pieces or has the wrong shape."""

    pass


@dataclass
class RunConfig:
    """Everything a pipeline run needs from the configuration file."""

    sources: list[Source] = field(default_factory=list)
    ftp: Optional[FtpSettings] = None

    def select(self, titles: Optional[list[str]]) -> list[Source]:
        """Return the sources named in `titles`, or all of them when empty.

        Raises:
            ConfigError: If a requested title is not configured
        """
        if not titles:
            return list(self.sources)
        by_title = {source.title: source for source in self.sources}
        unknown = [title for title in titles if title not in by_title]
        if unknown:
            raise ConfigError(f"Unknown source(s): {', '.join(unknown)}")
        return [by_title[title] for title in titles]


def project_root() -> Path:
    """Return the project root path based on this file's location."""
    return Path(__file__).resolve().parent.parent.parent


def default_config_path() -> Path:
    override = os.getenv("RSSTYGEN_CONFIG")
    if override:
        return Path(override)
    return project_root() / "config" / "sources.yml"


def _require_string(data: Mapping[str, Any], keys: tuple[str, ...], context: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"{context}: `{key}` must be a non-empty string")
        return value
    raise ConfigError(f"{context}: missing `{keys[0]}`")


def parse_source(title: str, data: Any) -> Source:
    """Build a Source from its configuration mapping."""
    context = f"Source '{title}'"
    if not isinstance(data, Mapping):
        raise ConfigError(f"{context}: configuration must be a mapping")

    return Source(
        title=title,
        url=_require_string(data, ("url",), context),
        ready_selector=_require_string(data, SOURCE_KEY_ALIASES["ready_selector"], context),
        extraction_script=_require_string(data, SOURCE_KEY_ALIASES["extraction_script"], context),
    )


def parse_ftp_settings(data: Any) -> FtpSettings:
    """Build FtpSettings from the `ftp` section.

    The password may be left out of the file and supplied through FTP_PASSWORD.
    """
    if not isinstance(data, Mapping):
        raise ConfigError("`ftp` section must be a mapping")

    host = data.get("host")
    if not isinstance(host, str) or not host.strip():
        raise ConfigError("`ftp.host` must be a non-empty string")

    port = data.get("port", DEFAULT_FTP_PORT)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigError(f"`ftp.port` must be a valid port number, got: {port!r}")

    password = data.get("password") or os.getenv("FTP_PASSWORD", "")

    return FtpSettings(
        host=host,
        port=port,
        username=str(data.get("username") or ""),
        password=str(password),
        target_path=str(data.get("target_path") or ""),
    )


def load_config(config_path: Optional[str] = None) -> RunConfig:
    """
    Load the run configuration from a YAML file.

    Args:
        config_path: Optional override for the config file path. When omitted,
            RSSTYGEN_CONFIG or `config/sources.yml` under the project root is used.

    Returns:
        RunConfig with the enabled sources and optional FTP settings.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigError: If the YAML cannot be parsed or has an invalid structure.
    """
    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        logger.error("Configuration file not found: %s", path)
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw_config: Mapping[str, Any] | None = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse configuration: %s", exc)
        raise ConfigError(f"Invalid YAML in configuration: {exc}") from exc

    if not raw_config:
        logger.warning("Configuration file is empty: %s", path)
        return RunConfig()
    if not isinstance(raw_config, Mapping):
        raise ConfigError("Configuration must be a mapping at the top level")

    sources_section = raw_config.get("sources")
    if not isinstance(sources_section, Mapping):
        raise ConfigError("`sources` section is missing or invalid in configuration")

    sources: list[Source] = []
    for title, source_data in sources_section.items():
        title = str(title)
        if isinstance(source_data, Mapping):
            enabled = source_data.get("enabled", True)
            if not isinstance(enabled, bool):
                raise ConfigError(f"Source '{title}': `enabled` must be true or false")
            if not enabled:
                logger.info("Skipping disabled source: %s", title)
                continue
        logger.info("Found config for: %s", title)
        sources.append(parse_source(title, source_data))

    ftp_settings = None
    if raw_config.get("ftp") is not None:
        logger.info("Found FTP configuration")
        ftp_settings = parse_ftp_settings(raw_config["ftp"])

    logger.info(
        "Loaded configuration",
        extra={
            "sources_count": len(sources),
            "ftp_enabled": ftp_settings is not None,
        },
    )
    return RunConfig(sources=sources, ftp=ftp_settings)


__all__ = ["ConfigError", "RunConfig", "load_config", "parse_source", "parse_ftp_settings"]
