"""Base adapter interface and registry."""

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source, SourceLocation, SourceRef
from session_dex.processor.raw import RawConversation, RawMessage

__all__ = [
    "AdapterRegistry",
    "SourceAdapter",
    "derive_title",
    "read_jsonl",
    "DEFAULT_TITLE",
    "TITLE_MAX_LENGTH",
]

logger = get_logger("parsers")

DEFAULT_TITLE = "Untitled"
TITLE_MAX_LENGTH = 100


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read a JSONL file, skipping blank and malformed lines.

    An unreadable file yields no entries rather than an error.

    Args:
        path: Path to the JSONL file

    Returns:
        Decoded JSON objects in file order
    """
    entries: list[dict[str, Any]] = []

    try:
        with open(path, "rb") as f:
            for line_no, line in enumerate(f, start=1):
                try:
                    line_text = line.decode("utf-8").strip()
                except UnicodeDecodeError:
                    logger.debug("Skipping undecodable line %s:%d", path, line_no)
                    continue

                if not line_text:
                    continue

                try:
                    entry = json.loads(line_text)
                except json.JSONDecodeError:
                    # Skip malformed lines
                    logger.debug("Skipping malformed line %s:%d", path, line_no)
                    continue

                if isinstance(entry, dict):
                    entries.append(entry)
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
        return []

    return entries


def derive_title(explicit: str | None, messages: Sequence[RawMessage]) -> str:
    """Pick a session title.

    Uses the explicit title when present, else the first line of the first
    non-empty user message (truncated), else the placeholder.
    """
    if explicit and explicit.strip():
        return explicit.strip()

    for msg in messages:
        if msg.role == "user" and not msg.is_internal and msg.content.strip():
            first_line = msg.content.strip().split("\n")[0]
            return first_line[:TITLE_MAX_LENGTH] or DEFAULT_TITLE

    return DEFAULT_TITLE


class SourceAdapter(ABC):
    """Base class for source adapters.

    Subclasses set the `source` class attribute and pair a reader
    (detect/discover/extract) with its normalizer (normalize).
    """

    source: Source
    raw_type: type[RawConversation]

    @abstractmethod
    def detect(self) -> bool:
        """Check whether this tool's session store exists on this machine."""

    @abstractmethod
    def discover(self) -> list[SourceLocation]:
        """Enumerate the session containers for this source."""

    @abstractmethod
    def extract(self, location: SourceLocation) -> list[RawConversation]:
        """Parse all sessions in a location into raw conversations.

        Unreadable or malformed sessions are skipped. Failures of the
        container itself (e.g. a corrupt database) propagate.
        """

    @abstractmethod
    def normalize(self, raw: RawConversation, location: SourceLocation) -> NormalizedConversation:
        """Convert a raw conversation into canonical records."""

    def get_deep_link(self, ref: SourceRef) -> str | None:
        """URL or path that opens the original conversation, if supported."""
        return None


class AdapterRegistry:
    """Registry of adapters by source."""

    _adapters: dict[Source, SourceAdapter] = {}

    @classmethod
    def register(cls, adapter: SourceAdapter) -> None:
        """Register an adapter, replacing any previous one for its source."""
        cls._adapters[adapter.source] = adapter

    @classmethod
    def get(cls, source: Source | str) -> SourceAdapter | None:
        """Get adapter by source tag."""
        try:
            return cls._adapters.get(Source(source))
        except ValueError:
            return None

    @classmethod
    def all_sources(cls) -> list[Source]:
        """List all registered sources."""
        return list(cls._adapters.keys())

    @classmethod
    def all(cls) -> list[SourceAdapter]:
        """List all registered adapters."""
        return list(cls._adapters.values())
