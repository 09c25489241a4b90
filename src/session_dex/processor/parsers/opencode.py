"""Reader and adapter for OpenCode (SST) conversations.

OpenCode stores conversations in a hierarchical structure at:
    ~/.local/share/opencode/storage/

Directory layout:
    session/<projectId>/ses_<id>.json    - Session metadata
    message/<sessionID>/msg_<id>.json    - Message metadata
    part/<messageID>/prt_<id>.json       - Content parts
    project/<projectId>.json             - Project metadata (worktree)

Session file contains:
- id, title, directory
- time.created / time.updated: epoch milliseconds

Message file contains:
- id, role ("user" or "assistant"), time.created
- modelID, mode (assistant only)
- tokens: {input, output, reasoning, cache: {read, write}}

Part file types used here:
- TextPart: {type: "text", text, synthetic?}
- ReasoningPart: {type: "reasoning", text} (not indexed)
- ToolPart: {type: "tool", tool, callID, state: {input, output, status}}
- FilePart: {type: "file", filename, source: {path}}
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from session_dex.collector.sources import get_opencode_root
from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source, SourceLocation
from session_dex.processor.normalizer import normalize_conversation
from session_dex.processor.parsers.base import SourceAdapter, derive_title
from session_dex.processor.parsers.tools import (
    FileTracker,
    classify_file_role,
    edits_from_tool_call,
    format_tool_block,
    serialize_tool_input,
    tool_file_path,
)
from session_dex.processor.raw import RawConversation, RawFile, RawMessage, RawToolCall

logger = get_logger("parsers.opencode")

DEFAULT_MODE = "agent"

# Prompt phrases of the helper sessions that generate titles for other sessions
TITLE_PROMPT_PATTERNS = (
    "generate a brief",
    "descriptive title",
    "conversation excerpt",
    "return only the title",
    "max 60 char",
    "no quotes or explanation",
)


@dataclass
class OpenCodeConversation(RawConversation):
    source: ClassVar[Source] = Source.OPENCODE

    directory: str | None = None
    mode: str | None = None


def _load_json(path: Path) -> dict[str, Any] | None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError):
        logger.debug("Skipping unreadable file %s", path)
        return None
    return data if isinstance(data, dict) else None


def is_title_generation(messages: list[RawMessage]) -> bool:
    """Check whether any user message is a title-generation prompt."""
    for msg in messages:
        if msg.role != "user":
            continue
        content = msg.content.lower()
        if sum(1 for pattern in TITLE_PROMPT_PATTERNS if pattern in content) >= 2:
            return True
    return False


def _created_at(data: dict[str, Any]) -> int | float | None:
    """Epoch milliseconds from a `time.created` field, or None when malformed."""
    time_data = data.get("time")
    if not isinstance(time_data, dict):
        return None
    created = time_data.get("created")
    if isinstance(created, bool) or not isinstance(created, (int, float)):
        return None
    return created


def _tool_output(output: Any) -> str | None:
    if output is None or output == "":
        return None
    if isinstance(output, str):
        return output
    return json.dumps(output)


class OpenCodeAdapter(SourceAdapter):
    """Adapter for OpenCode JSON storage trees."""

    source = Source.OPENCODE
    raw_type = OpenCodeConversation

    def __init__(self, root: Path | None = None):
        self._root = root

    @property
    def root(self) -> Path:
        return self._root or get_opencode_root()

    def detect(self) -> bool:
        return (self.root / "session").is_dir()

    def discover(self) -> list[SourceLocation]:
        """One location per project directory under storage/session."""
        session_root = self.root / "session"
        if not session_root.is_dir():
            return []

        locations: list[SourceLocation] = []
        for project_dir in sorted(session_root.iterdir()):
            if not project_dir.is_dir():
                continue
            session_files = sorted(project_dir.glob("*.json"))
            if not session_files:
                continue

            locations.append(
                SourceLocation(
                    source=self.source,
                    workspace_path=self._project_worktree(project_dir.name, session_files)
                    or project_dir.name,
                    db_path=str(project_dir),
                    mtime=max(f.stat().st_mtime for f in session_files),
                )
            )

        return locations

    def extract(self, location: SourceLocation) -> list[OpenCodeConversation]:
        project_dir = Path(location.db_path)
        if not project_dir.is_dir():
            return []

        conversations: list[OpenCodeConversation] = []
        for session_file in sorted(project_dir.glob("*.json")):
            conversation = self._parse_session(session_file)
            if conversation is None:
                continue
            if is_title_generation(conversation.messages):
                logger.debug("Skipping title generation session %s", conversation.session_id)
                continue
            conversations.append(conversation)

        return conversations

    def normalize(
        self, raw: OpenCodeConversation, location: SourceLocation
    ) -> NormalizedConversation:
        return normalize_conversation(
            raw,
            location,
            workspace_path=raw.workspace_path or raw.directory,
            mode=raw.mode or DEFAULT_MODE,
            subtitle=f"mode: {raw.mode}" if raw.mode else None,
        )

    def _project_worktree(self, project_id: str, session_files: list[Path]) -> str | None:
        project = _load_json(self.root / "project" / f"{project_id}.json")
        if project and isinstance(project.get("worktree"), str) and project["worktree"] != "/":
            return project["worktree"]

        for session_file in session_files:
            session = _load_json(session_file)
            if session and isinstance(session.get("directory"), str) and session["directory"]:
                return session["directory"]
        return None

    def _parse_session(self, session_file: Path) -> OpenCodeConversation | None:
        session = _load_json(session_file)
        if session is None:
            return None

        session_id = session.get("id") or session_file.stem
        message_dir = self.root / "message" / session_id
        if not message_dir.is_dir():
            return None

        message_data = [
            data
            for data in (_load_json(path) for path in sorted(message_dir.glob("*.json")))
            if data is not None and data.get("role") in ("user", "assistant")
        ]
        message_data.sort(key=lambda m: _created_at(m) or 0)

        tracker = FileTracker()
        messages = [self._build_message(data, tracker) for data in message_data]
        if not any(msg.content.strip() for msg in messages):
            return None

        assistants = [m for m in message_data if m.get("role") == "assistant"]
        model = next((m["modelID"] for m in assistants if m.get("modelID")), None)
        mode = next((m["mode"] for m in assistants if m.get("mode")), None)

        time_data = session.get("time") if isinstance(session.get("time"), dict) else {}
        directory = session.get("directory") or None

        return OpenCodeConversation(
            session_id=session_id,
            title=derive_title(session.get("title"), messages),
            workspace_path=directory,
            directory=directory,
            mode=mode,
            model=model,
            created_at=_created_at(session),
            updated_at=time_data.get("updated"),
            messages=messages,
            files=tracker.files,
            file_edits=[edit for msg in messages for edit in msg.file_edits],
        )

    def _build_message(self, data: dict[str, Any], tracker: FileTracker) -> RawMessage:
        message_id = data["id"] if isinstance(data.get("id"), str) else ""
        message = RawMessage(
            id=message_id,
            role=data["role"],
            content="",
            timestamp=_created_at(data),
        )

        tokens = data.get("tokens")
        if isinstance(tokens, dict):
            cache = tokens.get("cache") if isinstance(tokens.get("cache"), dict) else {}
            message.input_tokens = tokens.get("input") or None
            message.output_tokens = tokens.get("output") or None
            message.cache_read_tokens = cache.get("read") or None
            message.cache_creation_tokens = cache.get("write") or None

        texts: list[str] = []
        part_dir = self.root / "part" / message_id
        part_files = sorted(part_dir.glob("*.json")) if message_id and part_dir.is_dir() else []

        for part_file in part_files:
            part = _load_json(part_file)
            if part is None:
                continue
            part_type = part.get("type")

            if part_type == "text":
                if not part.get("synthetic") and isinstance(part.get("text"), str):
                    texts.append(part["text"])
            elif part_type == "tool":
                self._add_tool_part(message, part, tracker, texts)
            elif part_type == "file":
                source = part.get("source") if isinstance(part.get("source"), dict) else {}
                path = source.get("path") or part.get("filename")
                if isinstance(path, str) and path:
                    self._add_file(message, RawFile(path=path, role="context"), tracker)

        message.content = "\n\n".join(t for t in texts if t)
        return message

    def _add_tool_part(
        self, message: RawMessage, part: dict[str, Any], tracker: FileTracker, texts: list[str]
    ) -> None:
        name = part.get("tool")
        if not name:
            return
        state = part.get("state") if isinstance(part.get("state"), dict) else {}
        tool_input = state.get("input")
        file_path = tool_file_path(tool_input)
        output = _tool_output(state.get("output"))

        message.tool_calls.append(
            RawToolCall(
                id=part.get("callID") or part.get("id") or str(len(message.tool_calls)),
                name=name,
                input=serialize_tool_input(tool_input if tool_input is not None else {}),
                output=output,
                file_path=file_path,
            )
        )
        if output:
            texts.append(format_tool_block(name, output, file_path))

        if file_path:
            self._add_file(message, RawFile(path=file_path, role=classify_file_role(name)), tracker)

        edits = edits_from_tool_call(name, tool_input)
        message.file_edits.extend(edits)
        for edit in edits:
            self._add_file(message, RawFile(path=edit.file_path, role="edited"), tracker)

    @staticmethod
    def _add_file(message: RawMessage, file: RawFile, tracker: FileTracker) -> None:
        if file.path not in {f.path for f in message.files}:
            message.files.append(file)
        tracker.add(file.path, file.role)
