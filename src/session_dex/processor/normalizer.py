"""Conversion of raw conversations into canonical, deterministically identified records."""

from dataclasses import replace
from datetime import datetime, timezone

from session_dex.models import (
    Conversation,
    ConversationFile,
    FileEdit,
    Message,
    MessageFile,
    NormalizedConversation,
    SourceLocation,
    SourceRef,
    ToolCall,
    stable_hash,
)
from session_dex.processor.raw import RawConversation
from session_dex.processor.stats import (
    UsageTotals,
    aggregate_message_stats,
    context_size,
    rollup_messages,
)
from session_dex.processor.workspace import infer_workspace_path, project_name_from_path


def conversation_id_for(raw: RawConversation) -> str:
    """Deterministic conversation id: hash of "<source>:<session id>"."""
    return stable_hash(f"{raw.source}:{raw.session_id}")


def file_edit_id(message_id: str, position: int, file_path: str) -> str:
    return stable_hash(f"{message_id}:edit:{position}:{file_path}")


def _format_iso(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def to_iso_timestamp(value: str | int | float | None) -> str | None:
    """Parse a source-native timestamp into ISO 8601 UTC.

    Numbers (and all-digit strings) are epoch milliseconds; strings are ISO
    8601 with an optional Z suffix. Naive times are taken as UTC.

    Args:
        value: Raw timestamp as recorded by the source

    Returns:
        Timestamp like "2025-01-15T10:00:00.000Z", or None if unparseable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.isdigit():
            value = int(text)
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                dt = datetime.fromisoformat(text)
            except ValueError:
                return None
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return _format_iso(dt)

    try:
        return _format_iso(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
    except (OverflowError, OSError, ValueError, TypeError):
        return None


def _referenced_paths(raw: RawConversation) -> list[str]:
    paths = [f.path for f in raw.files]
    paths.extend(e.file_path for e in raw.file_edits)
    for msg in raw.messages:
        paths.extend(f.path for f in msg.files)
        paths.extend(e.file_path for e in msg.file_edits)
    return paths


def _conversation_totals(totals: UsageTotals, raw: RawConversation) -> UsageTotals:
    """Fill empty parts of the visible rollup from session-level totals.

    Input and cache counts describe one peak call, so they are replaced as a
    group and never mixed with another call's values.
    """
    result = replace(totals)
    if not context_size(totals):
        result.input_tokens = raw.total_input_tokens or None
        result.cache_creation_tokens = raw.total_cache_creation_tokens or None
        result.cache_read_tokens = raw.total_cache_read_tokens or None
    if not totals.output_tokens:
        result.output_tokens = raw.total_output_tokens or None
    if not (totals.lines_added or totals.lines_removed):
        result.lines_added = raw.total_lines_added or None
        result.lines_removed = raw.total_lines_removed or None
    return result


def normalize_conversation(
    raw: RawConversation,
    location: SourceLocation,
    *,
    workspace_path: str | None = None,
    mode: str | None = None,
    subtitle: str | None = None,
) -> NormalizedConversation:
    """Build the canonical record set for one raw conversation.

    Only visible messages (non-internal, non-blank content) become Message
    rows. Statistics of the filtered messages reach the canonical records
    through the aggregator, attached to the nearest visible assistant
    message.

    Args:
        raw: Raw conversation produced by a source reader
        location: Location the conversation was extracted from
        workspace_path: Resolved workspace path for the conversation
        mode: Interaction mode (agent, chat, ...)
        subtitle: Secondary display line

    Returns:
        NormalizedConversation ready for storage
    """
    conversation_id = conversation_id_for(raw)
    aggregates = aggregate_message_stats(raw.messages)
    visible = [idx for idx, msg in enumerate(raw.messages) if msg.is_visible]

    messages: list[Message] = []
    tool_calls: list[ToolCall] = []
    message_files: list[MessageFile] = []
    file_edits: list[FileEdit] = []

    for message_index, idx in enumerate(visible):
        msg = raw.messages[idx]
        stats = aggregates[idx]
        message_id = f"{conversation_id}:{msg.id}"

        messages.append(
            Message(
                id=message_id,
                conversation_id=conversation_id,
                role=msg.role,
                content=msg.content,
                message_index=message_index,
                timestamp=to_iso_timestamp(msg.timestamp),
                input_tokens=stats.input_tokens or None,
                output_tokens=stats.output_tokens or None,
                cache_creation_tokens=stats.cache_creation_tokens or None,
                cache_read_tokens=stats.cache_read_tokens or None,
                total_lines_added=stats.lines_added or None,
                total_lines_removed=stats.lines_removed or None,
            )
        )

        for j, tc in enumerate(stats.tool_calls):
            tool_calls.append(
                ToolCall(
                    id=f"{message_id}:tool:{j}",
                    message_id=message_id,
                    conversation_id=conversation_id,
                    type=tc.name,
                    input=tc.input,
                    output=tc.output,
                    file_path=tc.file_path,
                )
            )

        for j, file in enumerate(stats.files):
            message_files.append(
                MessageFile(
                    id=f"{message_id}:file:{j}",
                    message_id=message_id,
                    conversation_id=conversation_id,
                    file_path=file.path,
                    role=file.role,
                )
            )

        for j, edit in enumerate(stats.file_edits):
            file_edits.append(
                FileEdit(
                    id=file_edit_id(message_id, j, edit.file_path),
                    message_id=message_id,
                    conversation_id=conversation_id,
                    file_path=edit.file_path,
                    edit_type=edit.edit_type,
                    lines_added=edit.lines_added,
                    lines_removed=edit.lines_removed,
                    start_line=edit.start_line,
                    end_line=edit.end_line,
                    new_content=edit.new_content,
                )
            )

    files = [
        ConversationFile(
            id=f"{conversation_id}:file:{i}",
            conversation_id=conversation_id,
            file_path=file.path,
            role=file.role,
        )
        for i, file in enumerate(raw.files)
    ]

    totals = _conversation_totals(rollup_messages([aggregates[idx] for idx in visible]), raw)
    project_name = project_name_from_path(workspace_path) or project_name_from_path(
        infer_workspace_path(_referenced_paths(raw))
    )

    conversation = Conversation(
        id=conversation_id,
        source=raw.source,
        title=raw.title,
        message_count=len(messages),
        source_ref=SourceRef(
            source=raw.source,
            original_id=raw.session_id,
            db_path=location.db_path,
            workspace_path=workspace_path,
        ),
        subtitle=subtitle,
        workspace_path=workspace_path,
        project_name=project_name,
        model=raw.model,
        mode=mode,
        created_at=to_iso_timestamp(raw.created_at),
        updated_at=to_iso_timestamp(raw.updated_at),
        total_input_tokens=totals.input_tokens,
        total_output_tokens=totals.output_tokens,
        total_cache_creation_tokens=totals.cache_creation_tokens,
        total_cache_read_tokens=totals.cache_read_tokens,
        total_lines_added=totals.lines_added,
        total_lines_removed=totals.lines_removed,
    )

    return NormalizedConversation(
        conversation=conversation,
        messages=messages,
        tool_calls=tool_calls,
        files=files,
        message_files=message_files,
        file_edits=file_edits,
    )
