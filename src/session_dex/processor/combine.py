"""Grouping of consecutive same-role messages into logical turns.

Assistant replies are often split across several API calls by tool use.
Display and export group them back into one turn; search hits are resolved
to their containing turn through the index map.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field

from session_dex.models import Message
from session_dex.processor.stats import context_size

MERGEABLE_ROLES = ("user", "assistant")


@dataclass
class CombinedMessage:
    """A run of consecutive messages from the same role."""

    message_ids: list[str]
    role: str
    content: str
    combined_index: int
    original_indices: list[int]
    timestamp: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_tokens: int | None = None
    cache_read_tokens: int | None = None
    total_lines_added: int | None = None
    total_lines_removed: int | None = None


@dataclass
class CombinedMessages:
    messages: list[CombinedMessage] = field(default_factory=list)
    # original message_index -> combined_index
    index_map: dict[int, int] = field(default_factory=dict)


def _sum(values: Sequence[int | None]) -> int | None:
    total = sum(v or 0 for v in values)
    return total if total else None


def _combine_group(group: Sequence[Message], combined_index: int) -> CombinedMessage:
    peak = max(group, key=context_size)
    return CombinedMessage(
        message_ids=[m.id for m in group],
        role=group[0].role,
        content="\n\n".join(m.content for m in group),
        combined_index=combined_index,
        original_indices=[m.message_index for m in group],
        timestamp=group[0].timestamp,
        input_tokens=peak.input_tokens or None,
        output_tokens=_sum([m.output_tokens for m in group]),
        cache_creation_tokens=peak.cache_creation_tokens or None,
        cache_read_tokens=peak.cache_read_tokens or None,
        total_lines_added=_sum([m.total_lines_added for m in group]),
        total_lines_removed=_sum([m.total_lines_removed for m in group]),
    )


def _groups(messages: Sequence[Message]) -> list[list[Message]]:
    groups: list[list[Message]] = []
    for msg in messages:
        if groups and groups[-1][0].role == msg.role and msg.role in MERGEABLE_ROLES:
            groups[-1].append(msg)
        else:
            groups.append([msg])
    return groups


def combine_consecutive_messages(messages: Sequence[Message]) -> CombinedMessages:
    """Merge consecutive user or assistant messages into logical turns.

    System messages never merge, not even with each other.

    Args:
        messages: Canonical messages ordered by message_index

    Returns:
        CombinedMessages with the grouped turns and an index map from each
        original message_index to its group
    """
    result = CombinedMessages()
    for group in _groups(messages):
        combined = _combine_group(group, len(result.messages))
        result.messages.append(combined)
        for msg in group:
            result.index_map[msg.message_index] = combined.combined_index
    return result


def count_combined_messages(messages: Sequence[Message]) -> int:
    """Number of logical turns without building the combined messages."""
    return len(_groups(messages))
