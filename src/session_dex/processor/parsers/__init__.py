"""Source adapters for the supported coding-assistant session stores."""

from .base import AdapterRegistry, SourceAdapter, derive_title, read_jsonl
from .claude_code import ClaudeCodeAdapter, ClaudeCodeConversation
from .codex import CodexAdapter, CodexConversation
from .cursor import CursorAdapter, CursorConversation
from .opencode import OpenCodeAdapter, OpenCodeConversation

__all__ = [
    "AdapterRegistry",
    "ClaudeCodeAdapter",
    "ClaudeCodeConversation",
    "CodexAdapter",
    "CodexConversation",
    "CursorAdapter",
    "CursorConversation",
    "OpenCodeAdapter",
    "OpenCodeConversation",
    "SourceAdapter",
    "derive_title",
    "read_jsonl",
]

# Register adapters with their default store locations
AdapterRegistry.register(ClaudeCodeAdapter())
AdapterRegistry.register(CodexAdapter())
AdapterRegistry.register(CursorAdapter())
AdapterRegistry.register(OpenCodeAdapter())
