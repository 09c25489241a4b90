"""Reader and adapter for Claude Code conversation transcripts.

Claude Code stores conversations as JSONL files at:
    ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl

Sub-agent work is written to sidecar files, either
``agent-<id>.jsonl`` next to the sessions or
``<session-id>/subagents/*.jsonl``. Sidecar entries carry the id of the
session they belong to.

Each line is a JSON object with:
- type: "user", "assistant", "summary" (others are ignored)
- uuid / parentUuid: entry identity
- sessionId: UUID session identifier
- timestamp: ISO 8601 timestamp
- cwd, gitBranch: working directory and branch at the time of the entry
- isSidechain: true for sub-agent entries
- message: {role, content (string or block list), model, usage}
- toolUseResult: structured result attached to tool_result entries
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from session_dex.collector.sources import get_claude_code_root
from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source, SourceLocation
from session_dex.processor.normalizer import normalize_conversation, to_iso_timestamp
from session_dex.processor.parsers.base import SourceAdapter, derive_title, read_jsonl
from session_dex.processor.parsers.tools import (
    FileTracker,
    classify_file_role,
    edits_from_tool_call,
    format_tool_block,
    serialize_tool_input,
    tool_file_path,
)
from session_dex.processor.raw import RawConversation, RawFile, RawMessage, RawToolCall

logger = get_logger("parsers.claude_code")

MESSAGE_TYPES = ("user", "assistant")


@dataclass
class ClaudeCodeConversation(RawConversation):
    source: ClassVar[Source] = Source.CLAUDE_CODE

    cwd: str | None = None


@dataclass
class _ToolResult:
    output: str | None
    file_path: str | None


def decode_project_dir(name: str) -> str:
    """Best-effort decode of an encoded project directory name.

    Claude Code replaces path separators with dashes, so dashes inside
    directory names cannot be recovered. Callers prefer the session's cwd.
    """
    return "/" + name.lstrip("-").replace("-", "/")


def _block_text(content: Any) -> str:
    """Flatten a tool_result content field into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )
    return ""


def _collect_tool_results(entries: list[dict[str, Any]]) -> dict[str, _ToolResult]:
    """Map tool_use ids to their results across all entries of a session."""
    results: dict[str, _ToolResult] = {}

    for entry in entries:
        message = entry.get("message")
        if entry.get("type") != "user" or not isinstance(message, dict):
            continue
        content = message.get("content")
        if not isinstance(content, list):
            continue

        structured = entry.get("toolUseResult")
        if not isinstance(structured, dict):
            structured = {}
        nested = structured.get("file") if isinstance(structured.get("file"), dict) else {}

        for block in content:
            if not isinstance(block, dict) or block.get("type") != "tool_result":
                continue
            tool_use_id = block.get("tool_use_id")
            if not tool_use_id or tool_use_id in results:
                continue

            output = (
                structured.get("stdout")
                or structured.get("content")
                or nested.get("content")
                or _block_text(block.get("content"))
            )
            results[tool_use_id] = _ToolResult(
                output=output if isinstance(output, str) and output else None,
                file_path=structured.get("filePath") or nested.get("filePath"),
            )

    return results


def _sorted_message_entries(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Order message entries by timestamp.

    An entry without a usable timestamp takes its predecessor's, so it
    stays next to the entry it followed in the file.
    """
    keyed: list[tuple[str, dict[str, Any]]] = []
    previous = ""
    for entry in entries:
        if entry.get("type") not in MESSAGE_TYPES or not isinstance(entry.get("message"), dict):
            continue
        key = to_iso_timestamp(entry.get("timestamp")) or previous
        keyed.append((key, entry))
        previous = key

    keyed.sort(key=lambda item: item[0])
    return [entry for _, entry in keyed]


class ClaudeCodeAdapter(SourceAdapter):
    """Adapter for Claude Code JSONL transcripts."""

    source = Source.CLAUDE_CODE
    raw_type = ClaudeCodeConversation

    def __init__(self, root: Path | None = None):
        self._root = root

    @property
    def root(self) -> Path:
        return self._root or get_claude_code_root()

    def detect(self) -> bool:
        return self.root.is_dir()

    def discover(self) -> list[SourceLocation]:
        """One location per project directory that holds session files."""
        if not self.root.is_dir():
            return []

        locations: list[SourceLocation] = []
        for project_dir in sorted(self.root.iterdir()):
            if not project_dir.is_dir():
                continue

            session_files = self._session_files(project_dir)
            if not session_files:
                continue

            locations.append(
                SourceLocation(
                    source=self.source,
                    workspace_path=self._project_cwd(session_files)
                    or decode_project_dir(project_dir.name),
                    db_path=str(project_dir),
                    mtime=max(f.stat().st_mtime for f in session_files),
                )
            )

        return locations

    def extract(self, location: SourceLocation) -> list[ClaudeCodeConversation]:
        sessions_dir = Path(location.db_path)
        if not sessions_dir.is_dir():
            return []

        agent_entries = [
            entry
            for path in sorted(sessions_dir.glob("agent-*.jsonl"))
            for entry in read_jsonl(path)
        ]

        conversations: list[ClaudeCodeConversation] = []
        for session_file in self._session_files(sessions_dir):
            conversation = self._parse_session(session_file, agent_entries, location)
            if conversation is not None:
                conversations.append(conversation)

        return conversations

    def normalize(
        self, raw: ClaudeCodeConversation, location: SourceLocation
    ) -> NormalizedConversation:
        return normalize_conversation(
            raw,
            location,
            workspace_path=raw.workspace_path or raw.cwd,
            mode="agent",
            subtitle=f"branch: {raw.git_branch}" if raw.git_branch else None,
        )

    @staticmethod
    def _session_files(directory: Path) -> list[Path]:
        return sorted(
            path
            for path in directory.glob("*.jsonl")
            if path.is_file() and not path.name.startswith("agent-")
        )

    @staticmethod
    def _project_cwd(session_files: list[Path]) -> str | None:
        for path in session_files:
            for entry in read_jsonl(path):
                cwd = entry.get("cwd")
                if isinstance(cwd, str) and cwd:
                    return cwd
        return None

    def _parse_session(
        self,
        session_file: Path,
        agent_entries: list[dict[str, Any]],
        location: SourceLocation,
    ) -> ClaudeCodeConversation | None:
        session_id = session_file.stem
        entries = read_jsonl(session_file)

        sidecar_entries = [e for e in agent_entries if e.get("sessionId") == session_id]
        subagent_dir = session_file.parent / session_id / "subagents"
        if subagent_dir.is_dir():
            for path in sorted(subagent_dir.glob("*.jsonl")):
                sidecar_entries.extend(
                    e for e in read_jsonl(path) if e.get("sessionId") in (None, session_id)
                )

        # Sidecar entries are internal even when the flag is missing
        for entry in sidecar_entries:
            entry.setdefault("isSidechain", True)
        entries.extend(sidecar_entries)

        if not entries:
            return None

        entries = self._dedupe(entries)
        tool_results = _collect_tool_results(entries)

        summary = next(
            (e.get("summary") for e in entries if e.get("type") == "summary" and e.get("summary")),
            None,
        )

        sorted_entries = _sorted_message_entries(entries)
        tracker = FileTracker()
        messages: list[RawMessage] = []
        created_at: str | None = None
        updated_at: str | None = None
        model: str | None = None
        cwd: str | None = None
        git_branch: str | None = None

        for entry in sorted_entries:
            uuid = entry.get("uuid")
            if not uuid:
                continue

            message = entry["message"]
            role = message.get("role") or entry.get("type")
            if role not in MESSAGE_TYPES:
                continue

            timestamp = to_iso_timestamp(entry.get("timestamp"))
            if timestamp:
                if created_at is None or timestamp < created_at:
                    created_at = timestamp
                if updated_at is None or timestamp > updated_at:
                    updated_at = timestamp

            model = model or message.get("model")
            cwd = cwd or entry.get("cwd")
            git_branch = git_branch or entry.get("gitBranch")

            messages.append(self._build_message(entry, message, role, tool_results, tracker))

        if not messages:
            return None

        return ClaudeCodeConversation(
            session_id=session_id,
            title=derive_title(summary, messages),
            workspace_path=cwd or location.workspace_path,
            cwd=cwd,
            git_branch=git_branch,
            model=model,
            created_at=created_at,
            updated_at=updated_at,
            messages=messages,
            files=tracker.files,
            file_edits=[edit for msg in messages for edit in msg.file_edits],
        )

    @staticmethod
    def _dedupe(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[str] = set()
        unique: list[dict[str, Any]] = []
        for entry in entries:
            uuid = entry.get("uuid")
            if uuid:
                if uuid in seen:
                    continue
                seen.add(uuid)
            unique.append(entry)
        return unique

    def _build_message(
        self,
        entry: dict[str, Any],
        message: dict[str, Any],
        role: str,
        tool_results: dict[str, _ToolResult],
        tracker: FileTracker,
    ) -> RawMessage:
        content = message.get("content")
        parts: list[str] = []
        tool_calls: list[RawToolCall] = []
        files: list[RawFile] = []
        edits = []

        if isinstance(content, str):
            parts.append(content)
        elif isinstance(content, list):
            for block in content:
                if not isinstance(block, dict):
                    continue
                block_type = block.get("type")

                if block_type == "text" and isinstance(block.get("text"), str) and block["text"]:
                    parts.append(block["text"])
                    continue

                if block_type != "tool_use" or not block.get("id") or not block.get("name"):
                    continue

                name = block["name"]
                tool_input = block.get("input")
                result = tool_results.get(block["id"])
                file_path = (result.file_path if result else None) or tool_file_path(tool_input)

                tool_calls.append(
                    RawToolCall(
                        id=block["id"],
                        name=name,
                        input=serialize_tool_input(tool_input if tool_input is not None else {}),
                        output=result.output if result else None,
                        file_path=file_path,
                    )
                )
                if result is not None and result.output:
                    parts.append(format_tool_block(name, result.output, file_path))

                if file_path and file_path not in {f.path for f in files}:
                    file = RawFile(path=file_path, role=classify_file_role(name))
                    files.append(file)
                    tracker.add(file.path, file.role)

                edits.extend(edits_from_tool_call(name, tool_input))

        usage = message.get("usage") if isinstance(message.get("usage"), dict) else {}

        return RawMessage(
            id=entry["uuid"],
            role=role,
            content="\n".join(parts),
            timestamp=entry.get("timestamp"),
            tool_calls=tool_calls,
            files=files,
            file_edits=edits,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
            cache_creation_tokens=usage.get("cache_creation_input_tokens"),
            cache_read_tokens=usage.get("cache_read_input_tokens"),
            is_internal=bool(entry.get("isSidechain")),
        )
