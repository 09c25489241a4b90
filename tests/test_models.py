"""Tests for canonical records."""

import hashlib
import json

from session_dex.models import (
    SOURCE_DISPLAY_NAMES,
    Conversation,
    FileEdit,
    Source,
    SourceRef,
    stable_hash,
)


class TestStableHash:
    """Tests for stable_hash."""

    def test_truncated_sha256(self) -> None:
        expected = hashlib.sha256(b"claude-code:abc").hexdigest()[:32]

        assert stable_hash("claude-code:abc") == expected
        assert len(stable_hash("")) == 32


class TestSource:
    """Tests for the Source enum."""

    def test_tags(self) -> None:
        assert [s.value for s in Source] == ["claude-code", "codex", "cursor", "opencode"]

    def test_display_names(self) -> None:
        assert set(SOURCE_DISPLAY_NAMES) == set(Source)
        assert SOURCE_DISPLAY_NAMES[Source.OPENCODE] == "OpenCode"


class TestToDict:
    """Tests for the serialized document shape."""

    def test_camel_case_and_omitted_nones(self) -> None:
        conversation = Conversation(
            id="c1",
            source=Source.CLAUDE_CODE,
            title="Fix parser",
            message_count=3,
            source_ref=SourceRef(source=Source.CLAUDE_CODE, original_id="s1", db_path="/p"),
            total_output_tokens=120,
        )

        doc = conversation.to_dict()

        assert doc == {
            "id": "c1",
            "source": "claude-code",
            "title": "Fix parser",
            "messageCount": 3,
            "sourceRef": {"source": "claude-code", "originalId": "s1", "dbPath": "/p"},
            "totalOutputTokens": 120,
        }
        assert json.loads(json.dumps(doc)) == doc

    def test_zero_counts_are_kept(self) -> None:
        edit = FileEdit(
            id="e1",
            message_id="m1",
            conversation_id="c1",
            file_path="a.py",
            edit_type="delete",
            lines_added=0,
            lines_removed=0,
        )

        doc = edit.to_dict()

        assert doc["linesAdded"] == 0
        assert doc["editType"] == "delete"
        assert "newContent" not in doc
