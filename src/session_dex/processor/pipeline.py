"""Ingestion pipeline: detect, discover, extract and normalize every source."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source
from session_dex.processor.parsers import AdapterRegistry, SourceAdapter

logger = get_logger("pipeline")


@dataclass
class SourceResult:
    """Outcome of ingesting one source."""

    source: Source
    detected: bool = False
    locations: int = 0
    conversations: list[NormalizedConversation] = field(default_factory=list)


@dataclass
class IngestReport:
    """Outcome of one ingestion pass over several sources."""

    results: dict[Source, SourceResult] = field(default_factory=dict)
    errors: dict[Source, str] = field(default_factory=dict)

    @property
    def conversations(self) -> list[NormalizedConversation]:
        return [conv for result in self.results.values() for conv in result.conversations]


def ingest_source(adapter: SourceAdapter) -> SourceResult:
    """Run one adapter end to end.

    Sessions that cannot be parsed are dropped by the adapter; failures of
    the adapter itself propagate.

    Args:
        adapter: Adapter to run

    Returns:
        SourceResult with the normalized conversations
    """
    result = SourceResult(source=adapter.source)

    result.detected = adapter.detect()
    if not result.detected:
        logger.debug("Source not detected: source=%s", adapter.source)
        return result

    locations = adapter.discover()
    result.locations = len(locations)

    for location in locations:
        raw_conversations = adapter.extract(location)
        for raw in raw_conversations:
            result.conversations.append(adapter.normalize(raw, location))

        logger.debug(
            "Extracted location: source=%s path=%s conversations=%d",
            adapter.source,
            location.db_path,
            len(raw_conversations),
        )

    return result


def ingest_all(adapters: Iterable[SourceAdapter] | None = None) -> IngestReport:
    """Ingest every given adapter, isolating failures per source.

    Args:
        adapters: Adapters to run (defaults to all registered adapters)

    Returns:
        IngestReport with per-source results and errors
    """
    if adapters is None:
        adapters = AdapterRegistry.all()

    report = IngestReport()

    for adapter in adapters:
        try:
            result = ingest_source(adapter)
        except Exception as e:
            logger.exception("Error ingesting source: source=%s", adapter.source)
            report.errors[adapter.source] = str(e) or type(e).__name__
            continue

        report.results[adapter.source] = result
        if result.detected:
            logger.info(
                "Ingested source: source=%s locations=%d conversations=%d",
                adapter.source,
                result.locations,
                len(result.conversations),
            )

    return report
