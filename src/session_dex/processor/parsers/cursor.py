"""Reader and adapter for Cursor composer conversations.

Cursor keeps every composer (chat/agent) session in one global SQLite
database, ``User/globalStorage/state.vscdb``, as JSON values in the
``cursorDiskKV(key, value)`` table:

- ``composerData:<composerId>``: session metadata and, depending on the
  Cursor version, the bubbles themselves
- ``bubbleId:<composerId>:<bubbleId>``: one row per bubble (newest format)
- ``codeBlockDiff:<composerId>:<diffId>``: line-range diffs of applied edits

Bubbles appear in one of three shapes:
1. ``conversation``: inline list of bubbles (oldest)
2. ``conversationMap`` keyed by bubble id, ordered by
   ``fullConversationHeadersOnly``
3. ``fullConversationHeadersOnly`` with each bubble in its own row
"""

import json
import sqlite3
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

from session_dex.collector.sources import get_cursor_db_path
from session_dex.logging import get_logger
from session_dex.models import NormalizedConversation, Source, SourceLocation
from session_dex.processor.diff import parse_line_range_blobs
from session_dex.processor.normalizer import normalize_conversation
from session_dex.processor.parsers.base import SourceAdapter, derive_title
from session_dex.processor.parsers.tools import FileTracker
from session_dex.processor.raw import RawConversation, RawFile, RawFileEdit, RawMessage
from session_dex.processor.stats import rollup_raw
from session_dex.processor.workspace import infer_workspace_path

logger = get_logger("parsers.cursor")

GLOBAL_WORKSPACE = "global"

COMPOSER_PREFIX = "composerData:"
BUBBLE_PREFIX = "bubbleId:"
DIFF_PREFIX = "codeBlockDiff:"

BUBBLE_ROLES = {1: "user", 2: "assistant"}


@dataclass
class CursorConversation(RawConversation):
    source: ClassVar[Source] = Source.CURSOR

    mode: str | None = None


def bubble_role(bubble_type: Any) -> str:
    """Map Cursor's numeric bubble type to a role; unknown types are user."""
    if not isinstance(bubble_type, int):
        return "user"
    return BUBBLE_ROLES.get(bubble_type, "user")


def _decode_value(value: Any) -> Any:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if not isinstance(value, str):
        return None
    return json.loads(value)


def _uri_path(uri: Any) -> str | None:
    if isinstance(uri, str):
        return uri or None
    if isinstance(uri, dict):
        return uri.get("fsPath") or uri.get("path") or None
    return None


def _selection_paths(context: Any) -> list[str]:
    if not isinstance(context, dict):
        return []
    selections = context.get("fileSelections")
    if not isinstance(selections, list):
        return []
    paths = []
    for selection in selections:
        if isinstance(selection, dict):
            path = _uri_path(selection.get("uri"))
            if path:
                paths.append(path)
    return paths


def bubble_files(bubble: dict[str, Any]) -> list[RawFile]:
    """Files attached to a single bubble: context selections, then mentions."""
    tracker = FileTracker()
    for path in _selection_paths(bubble.get("context")):
        tracker.add(path, "context")

    relevant = bubble.get("relevantFiles")
    if isinstance(relevant, list):
        for path in relevant:
            if isinstance(path, str):
                tracker.add(path, "mentioned")

    return tracker.files


def _file_key(path: str) -> str:
    """Normalize a file:// URI key to a filesystem path."""
    if path.startswith("file://"):
        return path[len("file://"):]
    return path


class _KeyValueStore:
    """Read-only access to the cursorDiskKV table."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, key: str) -> Any:
        row = self._conn.execute("SELECT value FROM cursorDiskKV WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            return _decode_value(row[0])
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.debug("Skipping malformed value for %s", key)
            return None

    def scan(self, prefix: str) -> list[tuple[str, Any]]:
        """All decodable (key, value) pairs whose key starts with prefix."""
        rows = self._conn.execute(
            "SELECT key, value FROM cursorDiskKV WHERE key LIKE ? ORDER BY rowid",
            (prefix + "%",),
        ).fetchall()

        decoded = []
        for key, value in rows:
            try:
                data = _decode_value(value)
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.debug("Skipping malformed value for %s", key)
                continue
            if isinstance(data, dict):
                decoded.append((key, data))
        return decoded


class CursorAdapter(SourceAdapter):
    """Adapter for the Cursor global state database."""

    source = Source.CURSOR
    raw_type = CursorConversation

    def __init__(self, db_path: Path | None = None):
        self._db_path = db_path

    @property
    def db_path(self) -> Path:
        return self._db_path or get_cursor_db_path()

    def detect(self) -> bool:
        return self.db_path.is_file()

    def discover(self) -> list[SourceLocation]:
        """The global database is the single location."""
        if not self.db_path.is_file():
            return []

        return [
            SourceLocation(
                source=self.source,
                workspace_path=GLOBAL_WORKSPACE,
                db_path=str(self.db_path),
                mtime=self.db_path.stat().st_mtime,
            )
        ]

    def extract(self, location: SourceLocation) -> list[CursorConversation]:
        """Read every composer session from the database.

        Raises:
            sqlite3.Error: If the database cannot be opened or queried
        """
        uri = Path(location.db_path).resolve().as_uri() + "?mode=ro"
        conversations: list[CursorConversation] = []

        with closing(sqlite3.connect(uri, uri=True)) as conn:
            store = _KeyValueStore(conn)
            for key, data in store.scan(COMPOSER_PREFIX):
                composer_id = data.get("composerId") or key[len(COMPOSER_PREFIX):]
                conversation = self._parse_composer(store, composer_id, data)
                if conversation is not None:
                    conversations.append(conversation)

        logger.debug("Extracted %d Cursor conversations from %s", len(conversations), location.db_path)
        return conversations

    def normalize(self, raw: CursorConversation, location: SourceLocation) -> NormalizedConversation:
        return normalize_conversation(raw, location, workspace_path=raw.workspace_path, mode=raw.mode)

    def _bubbles(
        self, store: _KeyValueStore, composer_id: str, data: dict[str, Any]
    ) -> list[tuple[dict[str, Any], Any]]:
        """Resolve the bubble list as (bubble, header type) pairs in order."""
        conversation = data.get("conversation")
        if isinstance(conversation, list) and conversation:
            return [(b, None) for b in conversation if isinstance(b, dict) and b.get("bubbleId")]

        headers = data.get("fullConversationHeadersOnly")
        if not isinstance(headers, list):
            return []

        conversation_map = data.get("conversationMap")
        bubbles: list[tuple[dict[str, Any], Any]] = []
        for header in headers:
            if not isinstance(header, dict) or not header.get("bubbleId"):
                continue
            bubble_id = header["bubbleId"]

            if isinstance(conversation_map, dict) and conversation_map:
                bubble = conversation_map.get(bubble_id)
            else:
                bubble = store.get(f"{BUBBLE_PREFIX}{composer_id}:{bubble_id}")

            if isinstance(bubble, dict):
                bubble.setdefault("bubbleId", bubble_id)
                bubbles.append((bubble, header.get("type")))

        return bubbles

    def _code_block_edits(
        self, store: _KeyValueStore, composer_id: str, data: dict[str, Any]
    ) -> dict[str | None, list[RawFileEdit]]:
        """Edits from codeBlockDiff rows, grouped by the bubble that made them."""
        code_blocks = data.get("codeBlockData")
        if not isinstance(code_blocks, dict):
            return {}

        edits: dict[str | None, list[RawFileEdit]] = {}
        for uri_key, blocks in code_blocks.items():
            if not isinstance(blocks, dict):
                continue
            for block in blocks.values():
                if not isinstance(block, dict) or not block.get("diffId"):
                    continue

                file_path = _uri_path(block.get("uri")) or _file_key(uri_key)
                diff = store.get(f"{DIFF_PREFIX}{composer_id}:{block['diffId']}")
                if not isinstance(diff, dict):
                    continue

                parsed = parse_line_range_blobs(diff.get("newModelDiffWrtV0"), file_path)
                edits.setdefault(block.get("bubbleId"), []).extend(parsed)

        return edits

    def _parse_composer(
        self, store: _KeyValueStore, composer_id: str, data: dict[str, Any]
    ) -> CursorConversation | None:
        bubbles = self._bubbles(store, composer_id, data)
        if not any(isinstance(b.get("text"), str) and b["text"].strip() for b, _ in bubbles):
            return None

        edits_by_bubble = self._code_block_edits(store, composer_id, data)

        tracker = FileTracker()
        for path in _selection_paths(data.get("context")):
            tracker.add(path, "context")

        messages: list[RawMessage] = []
        for bubble, header_type in bubbles:
            bubble_id = bubble["bubbleId"]
            files = bubble_files(bubble)
            edits = edits_by_bubble.pop(bubble_id, [])
            for edit in edits:
                if edit.file_path not in {f.path for f in files}:
                    files.append(RawFile(path=edit.file_path, role="edited"))
            for file in files:
                tracker.add(file.path, file.role)

            token_count = bubble.get("tokenCount")
            if not isinstance(token_count, dict):
                token_count = {}

            text = bubble.get("text")
            messages.append(
                RawMessage(
                    id=bubble_id,
                    role=bubble_role(header_type if header_type is not None else bubble.get("type")),
                    content=text if isinstance(text, str) else "",
                    timestamp=bubble.get("createdAt"),
                    files=files,
                    file_edits=edits,
                    input_tokens=token_count.get("inputTokens") or None,
                    output_tokens=token_count.get("outputTokens") or None,
                )
            )

        # Diffs whose bubble is unknown belong to the last assistant turn
        orphaned = [edit for bubble_edits in edits_by_bubble.values() for edit in bubble_edits]
        if orphaned:
            target = next((m for m in reversed(messages) if m.role == "assistant"), messages[-1])
            target.file_edits.extend(orphaned)
            for edit in orphaned:
                if tracker.add(edit.file_path, "edited") is not None:
                    target.files.append(RawFile(path=edit.file_path, role="edited"))

        file_edits = [edit for msg in messages for edit in msg.file_edits]
        paths = [f.path for f in tracker.files]
        totals = rollup_raw(messages)

        model_config = data.get("modelConfig")
        model = model_config.get("modelName") if isinstance(model_config, dict) else None

        return CursorConversation(
            session_id=composer_id,
            title=derive_title(data.get("name"), messages),
            workspace_path=infer_workspace_path(paths),
            model=model or None,
            mode=data.get("forceMode") or data.get("unifiedMode"),
            created_at=data.get("createdAt"),
            updated_at=data.get("lastUpdatedAt"),
            messages=messages,
            files=tracker.files,
            file_edits=file_edits,
            total_input_tokens=totals.input_tokens,
            total_output_tokens=totals.output_tokens,
            total_lines_added=totals.lines_added,
            total_lines_removed=totals.lines_removed,
        )
