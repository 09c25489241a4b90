"""Intermediate structures produced by the source readers.

These are created fresh on every extraction pass, consumed by the paired
adapter's normalize(), and never persisted. Each reader subclasses
RawConversation with its own source tag and any source-specific fields.
"""

from dataclasses import dataclass, field
from typing import ClassVar

from session_dex.models import Source


@dataclass
class RawToolCall:
    id: str
    name: str
    input: str
    output: str | None = None
    file_path: str | None = None


@dataclass
class RawFile:
    path: str
    role: str  # context, edited, mentioned


@dataclass
class RawFileEdit:
    file_path: str
    edit_type: str  # create, modify, delete
    lines_added: int = 0
    lines_removed: int = 0
    start_line: int | None = None
    end_line: int | None = None
    new_content: str | None = None


@dataclass
class RawMessage:
    id: str
    role: str  # user, assistant, system
    content: str
    timestamp: str | int | float | None = None
    tool_calls: list[RawToolCall] = field(default_factory=list)
    files: list[RawFile] = field(default_factory=list)
    file_edits: list[RawFileEdit] = field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_tokens: int | None = None
    cache_read_tokens: int | None = None
    lines_added: int | None = None
    lines_removed: int | None = None
    is_internal: bool = False

    @property
    def is_visible(self) -> bool:
        """Whether this message becomes a canonical Message."""
        return not self.is_internal and bool(self.content.strip())


@dataclass
class RawConversation:
    """Base for the per-source raw session types."""

    source: ClassVar[Source]

    session_id: str
    title: str
    workspace_path: str | None = None
    git_branch: str | None = None
    model: str | None = None
    created_at: str | int | float | None = None
    updated_at: str | int | float | None = None
    messages: list[RawMessage] = field(default_factory=list)
    files: list[RawFile] = field(default_factory=list)
    file_edits: list[RawFileEdit] = field(default_factory=list)
    total_input_tokens: int | None = None
    total_output_tokens: int | None = None
    total_cache_creation_tokens: int | None = None
    total_cache_read_tokens: int | None = None
    total_lines_added: int | None = None
    total_lines_removed: int | None = None
