"""Tool call interpretation shared by the source readers.

All four tools expose similar file tools under different names (Claude
Code's ``Read``/``Write``/``Edit``, Codex's ``read_file``/``apply_patch``,
OpenCode's lowercase ``read``/``write``/``edit``). Classification therefore
works on lowercase substrings of the tool name.
"""

import json
from pathlib import PurePosixPath
from typing import Any

from session_dex.processor.diff import count_lines, is_patch_document, parse_patch_document
from session_dex.processor.raw import RawFile, RawFileEdit

READ_TOOL_MARKERS = ("read", "list", "glob", "grep", "search")
WRITE_TOOL_MARKERS = ("write", "create", "apply_patch", "patch", "edit")

FILE_PATH_KEYS = ("file_path", "filePath", "path", "file", "target", "notebook_path")


def classify_file_role(tool_name: str) -> str:
    """Map a tool name to the role of the file it touched."""
    lower = tool_name.lower()
    if lower == "ls" or any(marker in lower for marker in READ_TOOL_MARKERS):
        return "context"
    if any(marker in lower for marker in WRITE_TOOL_MARKERS):
        return "edited"
    return "mentioned"


def decode_tool_input(raw: Any) -> Any:
    """Decode a tool input that may be a JSON-encoded string."""
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


def serialize_tool_input(raw: Any) -> str:
    """Serialize a tool input for storage."""
    if isinstance(raw, str):
        return raw
    return json.dumps(raw)


def tool_file_path(tool_input: Any) -> str | None:
    """Find the file path argument of a tool call, if any."""
    if not isinstance(tool_input, dict):
        return None
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _patch_text(tool_input: Any) -> str | None:
    if isinstance(tool_input, str):
        return tool_input
    if isinstance(tool_input, dict):
        for key in ("input", "patchText", "patch"):
            value = tool_input.get(key)
            if isinstance(value, str):
                return value
    return None


def _text_arg(tool_input: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = tool_input.get(key)
        if isinstance(value, str):
            return value
    return ""


def _modify(path: str, old: str, new: str) -> RawFileEdit:
    return RawFileEdit(
        file_path=path,
        edit_type="modify",
        lines_added=count_lines(new),
        lines_removed=count_lines(old),
    )


def edits_from_tool_call(tool_name: str, tool_input: Any) -> list[RawFileEdit]:
    """Extract file edits from one tool invocation.

    Args:
        tool_name: Name of the tool as recorded by the source
        tool_input: Decoded tool input (dict, or raw text for patch tools)

    Returns:
        Edits described by the call; empty when the input is malformed
    """
    lower = tool_name.lower()

    if "patch" in lower:
        patch = _patch_text(tool_input)
        if patch and is_patch_document(patch):
            return parse_patch_document(patch)
        return []

    if not isinstance(tool_input, dict):
        return []

    path = tool_file_path(tool_input)
    if not path:
        return []

    if "write" in lower or "create" in lower:
        content = _text_arg(tool_input, "content", "file_text", "contents")
        return [
            RawFileEdit(
                file_path=path,
                edit_type="create",
                lines_added=count_lines(content),
                lines_removed=0,
                new_content=content or None,
            )
        ]

    if "multiedit" in lower:
        edits = tool_input.get("edits")
        if not isinstance(edits, list):
            return []
        return [
            _modify(
                path,
                _text_arg(e, "old_string", "oldString"),
                _text_arg(e, "new_string", "newString"),
            )
            for e in edits
            if isinstance(e, dict)
        ]

    if "edit" in lower:
        return [
            _modify(
                path,
                _text_arg(tool_input, "old_string", "oldString"),
                _text_arg(tool_input, "new_string", "newString", "new_source"),
            )
        ]

    return []


def file_name(path: str) -> str:
    return PurePosixPath(path).name or path


def format_tool_block(tool_name: str, output: str, file_path: str | None = None) -> str:
    """Render a tool invocation and its result for inline display."""
    header = f"**{tool_name}**"
    if file_path:
        header += f" `{file_name(file_path)}`"
    return f"{header}\n```\n{output.rstrip()}\n```"


class FileTracker:
    """Collects file references with first-seen role precedence."""

    def __init__(self) -> None:
        self._files: dict[str, RawFile] = {}

    def add(self, path: str, role: str) -> RawFile | None:
        """Record a path; returns the new RawFile, or None if already seen."""
        if not path or path in self._files:
            return None
        file = RawFile(path=path, role=role)
        self._files[path] = file
        return file

    def __contains__(self, path: object) -> bool:
        return path in self._files

    @property
    def files(self) -> list[RawFile]:
        return list(self._files.values())
