"""Configuration loading and management."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from session_dex.collector.sources import default_roots
from session_dex.logging import DEFAULT_LOG_DIR
from session_dex.models import Source
from session_dex.processor.parsers import (
    ClaudeCodeAdapter,
    CodexAdapter,
    CursorAdapter,
    OpenCodeAdapter,
    SourceAdapter,
)

# Config keys are snake_case versions of the source tags
SOURCE_KEYS: dict[str, Source] = {
    "claude_code": Source.CLAUDE_CODE,
    "codex": Source.CODEX,
    "cursor": Source.CURSOR,
    "opencode": Source.OPENCODE,
}

ADAPTER_TYPES: dict[Source, type[SourceAdapter]] = {
    Source.CLAUDE_CODE: ClaudeCodeAdapter,
    Source.CODEX: CodexAdapter,
    Source.CURSOR: CursorAdapter,
    Source.OPENCODE: OpenCodeAdapter,
}


@dataclass
class SourceConfig:
    enabled: bool = True
    path: Path | None = None


@dataclass
class Config:
    log_dir: Path = field(default_factory=lambda: DEFAULT_LOG_DIR)
    log_level: str = "INFO"
    sources: dict[Source, SourceConfig] = field(
        default_factory=lambda: {source: SourceConfig() for source in Source}
    )

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level.upper())


def expand_env_var(value: str) -> str:
    """Expand environment variables in string (e.g. ${VAR})."""
    if value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]
        return os.environ.get(env_var, value)
    return value


def expand_path(path_str: str) -> Path:
    """Expand ~ and environment variables in path."""
    return Path(os.path.expandvars(os.path.expanduser(path_str)))


def _parse_source_key(name: str) -> Source:
    if name in SOURCE_KEYS:
        return SOURCE_KEYS[name]
    try:
        return Source(name)
    except ValueError:
        raise ValueError(f"Unknown source in config: {name}") from None


def _parse_sources(data: dict) -> dict[Source, SourceConfig]:
    sources = {source: SourceConfig() for source in Source}
    if data is None:
        return sources
    if not isinstance(data, dict):
        raise ValueError("Invalid sources config: expected a mapping")

    for name, src_data in data.items():
        source = _parse_source_key(name)
        src_data = src_data or {}
        if not isinstance(src_data, dict):
            raise ValueError(f"Invalid config for source {name}: expected a mapping")

        path = src_data.get("path")
        sources[source] = SourceConfig(
            enabled=bool(src_data.get("enabled", True)),
            path=expand_path(expand_env_var(str(path))) if path else None,
        )

    return sources


def find_config_file() -> Path | None:
    """Return the first existing config file in the standard locations."""
    search_paths = [
        Path.cwd() / "session-dex.yaml",
        Path.home() / ".config" / "session-dex" / "config.yaml",
        Path("/etc/session-dex/config.yaml"),
    ]
    for path in search_paths:
        if path.exists():
            return path
    return None


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from YAML file.

    Raises:
        ValueError: If the file names an unknown source or a bad log level
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None or not config_path.exists():
        return Config()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    log_level = str(data.get("log_level", "INFO")).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"Invalid log_level in config: {log_level}")

    return Config(
        log_dir=expand_path(expand_env_var(str(data.get("log_dir", DEFAULT_LOG_DIR)))),
        log_level=log_level,
        sources=_parse_sources(data.get("sources", {})),
    )


def build_adapters(config: Config) -> list[SourceAdapter]:
    """Construct the enabled adapters with their configured store paths."""
    roots = default_roots()
    adapters: list[SourceAdapter] = []

    for source in Source:
        source_config = config.sources.get(source, SourceConfig())
        if not source_config.enabled:
            continue
        adapters.append(ADAPTER_TYPES[source](source_config.path or roots[source]))

    return adapters
