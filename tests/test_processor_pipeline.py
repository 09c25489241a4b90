"""Tests for the ingestion pipeline."""

import json
from pathlib import Path

import pytest

from session_dex.models import NormalizedConversation, Source, SourceLocation
from session_dex.processor.parsers import ClaudeCodeAdapter, CodexAdapter, SourceAdapter
from session_dex.processor.pipeline import ingest_all, ingest_source


class FailingAdapter(SourceAdapter):
    """Adapter whose store exists but cannot be read."""

    source = Source.CURSOR

    def detect(self) -> bool:
        return True

    def discover(self) -> list[SourceLocation]:
        return [SourceLocation(source=self.source, workspace_path="global", db_path="/x", mtime=0.0)]

    def extract(self, location: SourceLocation) -> list:
        raise RuntimeError("database disk image is malformed")

    def normalize(self, raw, location: SourceLocation) -> NormalizedConversation:
        raise AssertionError("not reached")


class MissingAdapter(FailingAdapter):
    source = Source.OPENCODE

    def detect(self) -> bool:
        return False


def write_jsonl(path: Path, entries: list[dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("".join(json.dumps(e) + "\n" for e in entries))


@pytest.fixture
def claude_root(tmp_path: Path) -> Path:
    root = tmp_path / "claude"
    base = {"sessionId": "s1", "cwd": "/home/u/app"}
    write_jsonl(
        root / "-home-u-app" / "s1.jsonl",
        [
            {**base, "type": "user", "uuid": "u1", "timestamp": "2025-01-15T10:00:00Z",
             "message": {"role": "user", "content": "hello"}},
            {**base, "type": "assistant", "uuid": "a1", "timestamp": "2025-01-15T10:00:01Z",
             "message": {"role": "assistant", "content": [{"type": "text", "text": "hi"}]}},
            {**base, "type": "assistant", "uuid": "a2", "timestamp": "2025-01-15T10:00:02Z",
             "message": {"role": "assistant", "content": [
                 {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}}]}},
            {**base, "type": "assistant", "uuid": "a3", "timestamp": "2025-01-15T10:00:03Z",
             "message": {"role": "assistant", "content": [{"type": "text", "text": "done"}]}},
        ],
    )
    return root


@pytest.fixture
def codex_root(tmp_path: Path) -> Path:
    root = tmp_path / "codex"

    def msg(role: str, text: str) -> dict:
        kind = "output_text" if role == "assistant" else "input_text"
        return {"type": "response_item", "payload": {"type": "message", "role": role,
                                                      "content": [{"type": kind, "text": text}]}}

    write_jsonl(
        root / "archived_sessions" / "rollout-2025-01-15T10-00-00-aaaa-bbbb-cccc-dddd-eeee.jsonl",
        [msg("user", "q1"), msg("assistant", "a1"), msg("assistant", "a2"), msg("user", "q2")],
    )
    return root


class TestIngestSource:
    """Tests for ingest_source."""

    def test_undetected_source(self) -> None:
        result = ingest_source(MissingAdapter())

        assert result.detected is False
        assert result.conversations == []

    def test_adapter_failure_propagates(self) -> None:
        with pytest.raises(RuntimeError):
            ingest_source(FailingAdapter())

    def test_normalizes_every_conversation(self, claude_root: Path) -> None:
        result = ingest_source(ClaudeCodeAdapter(claude_root))

        assert result.detected is True
        assert result.locations == 1
        assert len(result.conversations) == 1


class TestIngestAll:
    """Tests for ingest_all."""

    def test_failure_is_isolated_per_source(self, claude_root: Path) -> None:
        report = ingest_all([FailingAdapter(), ClaudeCodeAdapter(claude_root), MissingAdapter()])

        assert report.errors == {Source.CURSOR: "database disk image is malformed"}
        assert set(report.results) == {Source.CLAUDE_CODE, Source.OPENCODE}
        assert report.results[Source.OPENCODE].detected is False
        assert len(report.conversations) == 1

    def test_message_count_matches_messages(self, claude_root: Path, codex_root: Path) -> None:
        """The stored count always equals the number of messages produced."""
        report = ingest_all([ClaudeCodeAdapter(claude_root), CodexAdapter(codex_root)])

        counts = {c.conversation.source: c.conversation.message_count for c in report.conversations}
        assert counts == {Source.CLAUDE_CODE: 3, Source.CODEX: 4}
        for conversation in report.conversations:
            assert conversation.conversation.message_count == len(conversation.messages)
