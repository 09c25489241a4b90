"""Reader and adapter for Codex (OpenAI) conversation transcripts.

Codex stores conversations as JSONL files at:
    ~/.codex/sessions/<year>/<month>/<day>/rollout-*.jsonl
    ~/.codex/archived_sessions/rollout-*.jsonl

Each line is a JSON object with a type field:
- session_meta: Session metadata (id, cwd, git)
- response_item: Messages, tool calls and tool outputs
- event_msg: Events, including token_count usage snapshots
- turn_context: Turn-level context (model)

Tool calls are separate response items that precede the assistant message
they belong to, so they are buffered and attached to the next assistant
message.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from session_dex.collector.sources import get_codex_root
from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source, SourceLocation
from session_dex.processor.diff import is_patch_document, parse_patch_document
from session_dex.processor.normalizer import normalize_conversation, to_iso_timestamp
from session_dex.processor.parsers.base import SourceAdapter, derive_title, read_jsonl
from session_dex.processor.parsers.tools import (
    FileTracker,
    classify_file_role,
    decode_tool_input,
    edits_from_tool_call,
    serialize_tool_input,
    tool_file_path,
)
from session_dex.processor.raw import (
    RawConversation,
    RawFile,
    RawFileEdit,
    RawMessage,
    RawToolCall,
)

logger = get_logger("parsers.codex")

UNKNOWN_WORKSPACE = "unknown"

# Injected context that Codex records as user messages
SYSTEM_CONTENT_MARKERS = (
    "<environment_context>",
    "<INSTRUCTIONS>",
    "# AGENTS.md instructions",
    "# CLAUDE.md",
)

TOOL_CALL_TYPES = ("function_call", "custom_tool_call")
TOOL_OUTPUT_TYPES = ("function_call_output", "custom_tool_call_output")
TEXT_BLOCK_TYPES = ("input_text", "output_text")


@dataclass
class CodexConversation(RawConversation):
    source: ClassVar[Source] = Source.CODEX

    cwd: str | None = None


def extract_session_id(filename: str) -> str:
    """Extract the session id from a rollout file name.

    Args:
        filename: The filename stem (without .jsonl extension)
                 Format: rollout-2026-01-22T10-52-33-019be668-4c23-7792-8b9c-7995e5bfdeee

    Returns:
        The UUID portion, or the stem itself when it does not match
    """
    if filename.startswith("rollout-"):
        # rollout-YYYY-MM-DDTHH-MM-SS-<uuid>
        parts = filename[len("rollout-"):].split("-")
        if len(parts) >= 7:
            return "-".join(parts[5:])
    return filename


def is_system_content(text: str) -> bool:
    return any(marker in text for marker in SYSTEM_CONTENT_MARKERS)


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return ""
    return "\n".join(
        block["text"]
        for block in content
        if isinstance(block, dict)
        and block.get("type") in TEXT_BLOCK_TYPES
        and isinstance(block.get("text"), str)
        and block["text"]
    )


def _output_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    if output is None:
        return ""
    return json.dumps(output)


def patch_edits(tool_name: str, tool_input: Any) -> list[RawFileEdit]:
    """File edits from an apply_patch invocation in any of its encodings.

    The patch arrives as the raw tool input, as JSON ``{"input": ...}``, or
    as a shell call whose command vector carries the patch document.
    """
    if "patch" in tool_name.lower():
        return edits_from_tool_call(tool_name, tool_input)

    if isinstance(tool_input, dict):
        command = tool_input.get("command")
        if isinstance(command, list) and command and command[0] == "apply_patch":
            for arg in command[1:]:
                if isinstance(arg, str) and is_patch_document(arg):
                    return parse_patch_document(arg)
        elif isinstance(command, list):
            for arg in command:
                if isinstance(arg, str) and "apply_patch" in arg and is_patch_document(arg):
                    return parse_patch_document(arg)

    return []


def _token_totals(entries: list[dict[str, Any]]) -> tuple[int, int, int]:
    """Peak input/cached context and final cumulative output tokens."""
    peak_input = 0
    peak_cached = 0
    total_output = 0

    for entry in entries:
        payload = entry.get("payload")
        if entry.get("type") != "event_msg" or not isinstance(payload, dict):
            continue
        if payload.get("type") != "token_count" or not isinstance(payload.get("info"), dict):
            continue

        info = payload["info"]
        last = info.get("last_token_usage")
        if isinstance(last, dict):
            input_tokens = last.get("input_tokens") or 0
            cached = last.get("cached_input_tokens") or 0
            if input_tokens + cached > peak_input + peak_cached:
                peak_input, peak_cached = input_tokens, cached

        total = info.get("total_token_usage")
        if isinstance(total, dict) and total.get("output_tokens") is not None:
            total_output = total["output_tokens"]

    return peak_input, peak_cached, total_output


class CodexAdapter(SourceAdapter):
    """Adapter for Codex rollout files."""

    source = Source.CODEX
    raw_type = CodexConversation

    def __init__(self, root: Path | None = None):
        self._root = root

    @property
    def root(self) -> Path:
        return self._root or get_codex_root()

    def detect(self) -> bool:
        return (self.root / "sessions").is_dir() or (self.root / "archived_sessions").is_dir()

    def discover(self) -> list[SourceLocation]:
        """One location per rollout file."""
        paths: list[Path] = []

        sessions_path = self.root / "sessions"
        if sessions_path.is_dir():
            paths.extend(sessions_path.glob("*/*/*/rollout-*.jsonl"))

        archived_path = self.root / "archived_sessions"
        if archived_path.is_dir():
            paths.extend(archived_path.glob("rollout-*.jsonl"))

        return [
            SourceLocation(
                source=self.source,
                workspace_path=self._session_cwd(path) or UNKNOWN_WORKSPACE,
                db_path=str(path),
                mtime=path.stat().st_mtime,
            )
            for path in sorted(paths)
        ]

    def extract(self, location: SourceLocation) -> list[CodexConversation]:
        path = Path(location.db_path)
        conversation = self._parse_file(path)
        return [conversation] if conversation is not None else []

    def normalize(self, raw: CodexConversation, location: SourceLocation) -> NormalizedConversation:
        workspace_path = raw.workspace_path or raw.cwd
        if not workspace_path and location.workspace_path != UNKNOWN_WORKSPACE:
            workspace_path = location.workspace_path

        return normalize_conversation(
            raw,
            location,
            workspace_path=workspace_path,
            mode="agent",
            subtitle=f"branch: {raw.git_branch}" if raw.git_branch else None,
        )

    @staticmethod
    def _session_cwd(path: Path) -> str | None:
        """Read the cwd from the session_meta line at the head of the file."""
        try:
            with open(path, "rb") as f:
                first_line = f.readline()
            entry = json.loads(first_line.decode("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return None

        if not isinstance(entry, dict) or entry.get("type") != "session_meta":
            return None
        payload = entry.get("payload")
        if isinstance(payload, dict) and isinstance(payload.get("cwd"), str):
            return payload["cwd"] or None
        return None

    def _parse_file(self, path: Path) -> CodexConversation | None:
        entries = read_jsonl(path)
        if not entries:
            return None

        session_id = extract_session_id(path.stem)
        cwd: str | None = None
        git_branch: str | None = None
        model: str | None = None

        tool_outputs: dict[str, str] = {}
        for entry in entries:
            payload = entry.get("payload")
            if not isinstance(payload, dict):
                continue
            entry_type = entry.get("type")

            if entry_type == "session_meta":
                session_id = payload.get("id") or session_id
                cwd = payload.get("cwd") or cwd
                git = payload.get("git")
                if isinstance(git, dict) and git.get("branch"):
                    git_branch = git["branch"]
            elif entry_type == "turn_context" and not model:
                model = payload.get("model")
            elif entry_type == "response_item" and payload.get("type") in TOOL_OUTPUT_TYPES:
                call_id = payload.get("call_id")
                if call_id and call_id not in tool_outputs:
                    tool_outputs[call_id] = _output_text(payload.get("output"))

        messages: list[RawMessage] = []
        tracker = FileTracker()
        pending_calls: list[RawToolCall] = []
        pending_files: list[RawFile] = []
        pending_edits: list[RawFileEdit] = []
        created_at: str | None = None
        updated_at: str | None = None

        for entry in entries:
            timestamp = to_iso_timestamp(entry.get("timestamp"))
            if timestamp:
                if created_at is None or timestamp < created_at:
                    created_at = timestamp
                if updated_at is None or timestamp > updated_at:
                    updated_at = timestamp

            payload = entry.get("payload")
            if entry.get("type") != "response_item" or not isinstance(payload, dict):
                continue
            payload_type = payload.get("type")

            if payload_type in TOOL_CALL_TYPES:
                call = self._build_tool_call(payload, tool_outputs)
                if call is None:
                    continue
                tool_call, files, edits = call
                pending_calls.append(tool_call)
                pending_edits.extend(edits)
                for file in files:
                    if tracker.add(file.path, file.role) is not None:
                        pending_files.append(file)
                continue

            if payload_type != "message":
                continue

            role = payload.get("role")
            if role not in ("user", "assistant"):
                # developer and system messages are injected instructions
                continue

            content = _message_text(payload.get("content"))
            if not content.strip() or is_system_content(content):
                continue

            message = RawMessage(
                id=str(len(messages)),
                role=role,
                content=content,
                timestamp=entry.get("timestamp"),
            )
            if role == "assistant":
                message.tool_calls, pending_calls = pending_calls, []
                message.files, pending_files = pending_files, []
                message.file_edits, pending_edits = pending_edits, []
            messages.append(message)

        if not messages:
            return None

        if pending_calls or pending_edits:
            messages.append(
                RawMessage(
                    id=str(len(messages)),
                    role="assistant",
                    content="",
                    timestamp=updated_at,
                    tool_calls=pending_calls,
                    files=pending_files,
                    file_edits=pending_edits,
                )
            )

        file_edits = [edit for msg in messages for edit in msg.file_edits]
        peak_input, peak_cached, total_output = _token_totals(entries)

        return CodexConversation(
            session_id=session_id,
            title=derive_title(None, messages),
            workspace_path=cwd,
            cwd=cwd,
            git_branch=git_branch,
            model=model,
            created_at=created_at,
            updated_at=updated_at,
            messages=messages,
            files=tracker.files,
            file_edits=file_edits,
            total_input_tokens=peak_input or None,
            total_output_tokens=total_output or None,
            total_cache_read_tokens=peak_cached or None,
            total_lines_added=sum(e.lines_added for e in file_edits) or None,
            total_lines_removed=sum(e.lines_removed for e in file_edits) or None,
        )

    @staticmethod
    def _build_tool_call(
        payload: dict[str, Any], tool_outputs: dict[str, str]
    ) -> tuple[RawToolCall, list[RawFile], list[RawFileEdit]] | None:
        name = payload.get("name")
        call_id = payload.get("call_id")
        if not name or not call_id:
            return None

        # custom_tool_call carries raw text in "input", function_call JSON in "arguments"
        if payload.get("type") == "custom_tool_call":
            raw_input = payload.get("input", "")
        else:
            raw_input = payload.get("arguments", "")
        tool_input = decode_tool_input(raw_input)

        edits = patch_edits(name, tool_input) or edits_from_tool_call(name, tool_input)
        file_path = tool_file_path(tool_input)

        files: list[RawFile] = []
        if file_path:
            files.append(RawFile(path=file_path, role=classify_file_role(name)))
        for edit in edits:
            if edit.file_path != file_path:
                files.append(RawFile(path=edit.file_path, role="edited"))

        tool_call = RawToolCall(
            id=call_id,
            name=name,
            input=serialize_tool_input(raw_input),
            output=tool_outputs.get(call_id),
            file_path=file_path or (edits[0].file_path if len(edits) == 1 else None),
        )
        return tool_call, files, edits
