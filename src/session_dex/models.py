"""Canonical data models."""

from dataclasses import dataclass, field, fields
from enum import StrEnum
import hashlib
from typing import Any


class Source(StrEnum):
    """Coding assistants whose session histories can be indexed."""

    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    CURSOR = "cursor"
    OPENCODE = "opencode"


SOURCE_DISPLAY_NAMES: dict[Source, str] = {
    Source.CLAUDE_CODE: "Claude Code",
    Source.CODEX: "Codex",
    Source.CURSOR: "Cursor",
    Source.OPENCODE: "OpenCode",
}


def stable_hash(value: str) -> str:
    """SHA256 of value, truncated to 32 hex characters.

    Used for conversation and file edit ids. The truncation length is part
    of the id contract: changing it invalidates every previously synced id.
    """
    return hashlib.sha256(value.encode()).hexdigest()[:32]


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class _Record:
    """Mixin providing the serialized document shape for canonical records."""

    def to_dict(self) -> dict[str, Any]:
        """Convert to a camelCase document, omitting absent fields."""
        doc: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, _Record):
                value = value.to_dict()
            elif isinstance(value, StrEnum):
                value = str(value)
            doc[_camel(f.name)] = value
        return doc


@dataclass
class SourceLocation:
    """A session container discovered for one source.

    Depending on the source this is a directory of session files, a single
    session file, or a database file.
    """

    source: Source
    workspace_path: str
    db_path: str
    mtime: float


@dataclass
class SourceRef(_Record):
    """Pointer back to the raw session a conversation was built from."""

    source: Source
    original_id: str
    db_path: str
    workspace_path: str | None = None


@dataclass
class Conversation(_Record):
    """One normalized session."""

    id: str
    source: Source
    title: str
    message_count: int
    source_ref: SourceRef
    subtitle: str | None = None
    workspace_path: str | None = None
    project_name: str | None = None
    model: str | None = None
    mode: str | None = None
    created_at: str | None = None  # ISO 8601
    updated_at: str | None = None
    total_input_tokens: int | None = None
    total_output_tokens: int | None = None
    total_cache_creation_tokens: int | None = None
    total_cache_read_tokens: int | None = None
    total_lines_added: int | None = None
    total_lines_removed: int | None = None


@dataclass
class Message(_Record):
    """A visible message within a conversation."""

    id: str
    conversation_id: str
    role: str  # user, assistant, system
    content: str
    message_index: int
    timestamp: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_tokens: int | None = None
    cache_read_tokens: int | None = None
    total_lines_added: int | None = None
    total_lines_removed: int | None = None


@dataclass
class ToolCall(_Record):
    id: str
    message_id: str
    conversation_id: str
    type: str  # tool name
    input: str
    output: str | None = None
    file_path: str | None = None


@dataclass
class ConversationFile(_Record):
    id: str
    conversation_id: str
    file_path: str
    role: str  # context, edited, mentioned


@dataclass
class MessageFile(_Record):
    id: str
    message_id: str
    conversation_id: str
    file_path: str
    role: str


@dataclass
class FileEdit(_Record):
    id: str
    message_id: str
    conversation_id: str
    file_path: str
    edit_type: str  # create, modify, delete
    lines_added: int
    lines_removed: int
    start_line: int | None = None
    end_line: int | None = None
    new_content: str | None = None


@dataclass
class NormalizedConversation:
    """Everything produced for one session, handed to storage as a unit."""

    conversation: Conversation
    messages: list[Message] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    files: list[ConversationFile] = field(default_factory=list)
    message_files: list[MessageFile] = field(default_factory=list)
    file_edits: list[FileEdit] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the export document format."""
        return {
            "conversation": self.conversation.to_dict(),
            "messages": [m.to_dict() for m in self.messages],
            "toolCalls": [t.to_dict() for t in self.tool_calls],
            "files": [f.to_dict() for f in self.files],
            "messageFiles": [f.to_dict() for f in self.message_files],
            "fileEdits": [e.to_dict() for e in self.file_edits],
        }
