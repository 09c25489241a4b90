"""Usage statistics aggregation for normalized conversations.

Two rules apply everywhere tokens are combined:

- Output tokens and line counts are summed. Each API call generates new
  output, so the total is the sum.
- Input and cache tokens take the peak. Every call resends the entire
  context window, so summing would count the history once per call. The
  values are taken together from whichever call had the largest combined
  context (input + cache creation + cache read).

Messages without renderable text (tool-only calls) and sidechain messages
are not shown, but their statistics are folded into the nearest preceding
visible assistant message.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from session_dex.processor.raw import RawFile, RawFileEdit, RawMessage, RawToolCall


class UsageFields(Protocol):
    input_tokens: int | None
    output_tokens: int | None
    cache_creation_tokens: int | None
    cache_read_tokens: int | None


def context_size(item: UsageFields) -> int:
    """Total context sent on one call: input plus both cache counts."""
    return (
        (item.input_tokens or 0)
        + (item.cache_creation_tokens or 0)
        + (item.cache_read_tokens or 0)
    )


def _nonzero(value: int) -> int | None:
    return value if value else None


@dataclass
class MessageStats:
    """Aggregated statistics for one visible message."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    file_edits: list[RawFileEdit] = field(default_factory=list)
    tool_calls: list[RawToolCall] = field(default_factory=list)
    files: list[RawFile] = field(default_factory=list)

    @classmethod
    def from_message(cls, msg: RawMessage) -> "MessageStats":
        """Seed an aggregate from a message's own statistics."""
        return cls(
            input_tokens=msg.input_tokens or 0,
            output_tokens=msg.output_tokens or 0,
            cache_creation_tokens=msg.cache_creation_tokens or 0,
            cache_read_tokens=msg.cache_read_tokens or 0,
            lines_added=_lines(msg.lines_added, msg.file_edits, "lines_added"),
            lines_removed=_lines(msg.lines_removed, msg.file_edits, "lines_removed"),
            file_edits=list(msg.file_edits),
            tool_calls=list(msg.tool_calls),
            files=list(msg.files),
        )

    @property
    def context(self) -> int:
        return context_size(self)

    def absorb(self, msg: RawMessage) -> None:
        """Fold a filtered message's statistics into this aggregate."""
        self.lines_added += _lines(msg.lines_added, msg.file_edits, "lines_added")
        self.lines_removed += _lines(msg.lines_removed, msg.file_edits, "lines_removed")
        self.output_tokens += msg.output_tokens or 0

        if context_size(msg) > self.context:
            self.input_tokens = msg.input_tokens or 0
            self.cache_creation_tokens = msg.cache_creation_tokens or 0
            self.cache_read_tokens = msg.cache_read_tokens or 0

        self.file_edits.extend(msg.file_edits)
        self.tool_calls.extend(msg.tool_calls)
        seen = {f.path for f in self.files}
        for file in msg.files:
            if file.path not in seen:
                seen.add(file.path)
                self.files.append(file)


def _lines(explicit: int | None, edits: list[RawFileEdit], attr: str) -> int:
    if explicit is not None:
        return explicit
    return sum(getattr(edit, attr) for edit in edits)


@dataclass
class UsageTotals:
    """Conversation-level rollup; zero totals are reported as None."""

    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_tokens: int | None = None
    cache_read_tokens: int | None = None
    lines_added: int | None = None
    lines_removed: int | None = None


def aggregate_message_stats(messages: Sequence[RawMessage]) -> dict[int, MessageStats]:
    """Compute per-message aggregates for the visible messages.

    Args:
        messages: Full raw message list in conversation order

    Returns:
        Mapping of raw list position to aggregate, for visible messages only
    """
    aggregates = {
        idx: MessageStats.from_message(msg)
        for idx, msg in enumerate(messages)
        if msg.is_visible
    }

    for idx, msg in enumerate(messages):
        if idx in aggregates or msg.role != "assistant":
            continue

        for prev in range(idx - 1, -1, -1):
            if prev in aggregates and messages[prev].role == "assistant":
                aggregates[prev].absorb(msg)
                break

    return aggregates


def rollup(stats: Sequence[UsageFields], lines: Sequence[tuple[int, int]] = ()) -> UsageTotals:
    """Roll per-message usage up to conversation totals.

    Args:
        stats: Per-message token usage
        lines: Per-message (added, removed) line counts

    Returns:
        UsageTotals with peak input/cache and summed output/lines
    """
    peak: UsageFields | None = None
    for item in stats:
        if peak is None or context_size(item) > context_size(peak):
            peak = item

    output = sum(item.output_tokens or 0 for item in stats)
    added = sum(a for a, _ in lines)
    removed = sum(r for _, r in lines)

    return UsageTotals(
        input_tokens=_nonzero(peak.input_tokens or 0) if peak else None,
        output_tokens=_nonzero(output),
        cache_creation_tokens=_nonzero(peak.cache_creation_tokens or 0) if peak else None,
        cache_read_tokens=_nonzero(peak.cache_read_tokens or 0) if peak else None,
        lines_added=_nonzero(added),
        lines_removed=_nonzero(removed),
    )


def rollup_messages(stats: Sequence[MessageStats]) -> UsageTotals:
    """Roll visible-message aggregates up to conversation totals."""
    return rollup(stats, [(s.lines_added, s.lines_removed) for s in stats])


def rollup_raw(messages: Sequence[RawMessage]) -> UsageTotals:
    """Roll raw message usage up to conversation totals (reader-side)."""
    return rollup(
        messages,
        [
            (
                _lines(m.lines_added, m.file_edits, "lines_added"),
                _lines(m.lines_removed, m.file_edits, "lines_removed"),
            )
            for m in messages
        ],
    )
