"""Tests for the Codex reader and adapter."""

import json
from pathlib import Path

import pytest

from session_dex.models import Source
from session_dex.processor.parsers import AdapterRegistry, CodexAdapter
from session_dex.processor.parsers.codex import (
    UNKNOWN_WORKSPACE,
    extract_session_id,
    is_system_content,
    patch_edits,
)

ROLLOUT_NAME = "rollout-2025-01-15T10-00-00-0194abcd-1111-7222-8333-944455556666.jsonl"

ADD_PATCH = "*** Begin Patch\n*** Add File: src/helper.py\n+def helper():\n+    return 1\n*** End Patch"
UPDATE_PATCH = "*** Begin Patch\n*** Update File: src/main.py\n@@\n-a\n+b\n+c\n*** End Patch"


def write_rollout(path: Path, entries: list) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        for e in entries:
            f.write((e if isinstance(e, str) else json.dumps(e)) + "\n")
    return path


def item(payload: dict, timestamp: str = "2025-01-15T10:00:01.000Z", entry_type: str = "response_item") -> dict:
    return {"timestamp": timestamp, "type": entry_type, "payload": payload}


def message(role: str, text: str, timestamp: str = "2025-01-15T10:00:01.000Z") -> dict:
    block_type = "output_text" if role == "assistant" else "input_text"
    return item(
        {"type": "message", "role": role, "content": [{"type": block_type, "text": text}]},
        timestamp,
    )


def token_count(input_tokens: int, cached: int, total_output: int) -> dict:
    return item(
        {
            "type": "token_count",
            "info": {
                "last_token_usage": {"input_tokens": input_tokens, "cached_input_tokens": cached},
                "total_token_usage": {"output_tokens": total_output},
            },
        },
        entry_type="event_msg",
    )


@pytest.fixture
def codex_root(tmp_path: Path) -> Path:
    """Create a Codex home with one dated rollout."""
    root = tmp_path / ".codex"
    write_rollout(
        root / "sessions" / "2025" / "01" / "15" / ROLLOUT_NAME,
        [
            item(
                {"id": "sess-1", "cwd": "/home/u/app", "git": {"branch": "feat"}},
                "2025-01-15T10:00:00.000Z",
                "session_meta",
            ),
            item({"model": "gpt-5-codex"}, entry_type="turn_context"),
            message("developer", "You are a coding agent"),
            message("user", "<environment_context>cwd: /home/u/app</environment_context>"),
            message("user", "Add a helper"),
            item(
                {
                    "type": "function_call",
                    "name": "shell",
                    "call_id": "c1",
                    "arguments": json.dumps({"command": ["apply_patch", ADD_PATCH]}),
                },
                "2025-01-15T10:00:02.000Z",
            ),
            item({"type": "function_call_output", "call_id": "c1", "output": "Success"}),
            token_count(1000, 4000, 200),
            message("assistant", "Added the helper.", "2025-01-15T10:00:03.000Z"),
            item(
                {"type": "custom_tool_call", "name": "apply_patch", "call_id": "c2", "input": UPDATE_PATCH},
                "2025-01-15T10:00:04.000Z",
            ),
            item({"type": "custom_tool_call_output", "call_id": "c2", "output": "Done"}),
            token_count(500, 2000, 350),
            item(
                {
                    "type": "function_call",
                    "name": "read_file",
                    "call_id": "c3",
                    "arguments": json.dumps({"path": "src/main.py"}),
                },
                "2025-01-15T10:00:05.000Z",
            ),
        ],
    )
    return root


@pytest.fixture
def adapter(codex_root: Path) -> CodexAdapter:
    return CodexAdapter(codex_root)


class TestHelpers:
    """Tests for module-level helpers."""

    def test_extract_session_id(self) -> None:
        stem = "rollout-2026-01-22T10-52-33-019be668-4c23-7792-8b9c-7995e5bfdeee"

        assert extract_session_id(stem) == "019be668-4c23-7792-8b9c-7995e5bfdeee"

    def test_extract_session_id_fallback(self) -> None:
        assert extract_session_id("rollout-short") == "rollout-short"
        assert extract_session_id("other") == "other"

    def test_is_system_content(self) -> None:
        assert is_system_content("<INSTRUCTIONS>be brief</INSTRUCTIONS>")
        assert is_system_content("# AGENTS.md instructions for /repo")
        assert not is_system_content("please fix the tests")

    def test_patch_edits_from_raw_input(self) -> None:
        edits = patch_edits("apply_patch", UPDATE_PATCH)

        assert [(e.file_path, e.edit_type, e.lines_added, e.lines_removed) for e in edits] == [
            ("src/main.py", "modify", 2, 1)
        ]

    def test_patch_edits_from_json_input(self) -> None:
        edits = patch_edits("apply_patch", {"input": ADD_PATCH})

        assert [(e.file_path, e.edit_type) for e in edits] == [("src/helper.py", "create")]

    def test_patch_edits_from_shell_heredoc(self) -> None:
        command = ["bash", "-lc", f"apply_patch <<'EOF'\n{ADD_PATCH}\nEOF"]

        edits = patch_edits("shell", {"command": command})

        assert [e.file_path for e in edits] == ["src/helper.py"]

    def test_patch_edits_ignores_plain_commands(self) -> None:
        assert patch_edits("shell", {"command": ["ls", "-la"]}) == []


class TestCodexDiscovery:
    """Tests for detect and discover."""

    def test_source(self, adapter: CodexAdapter) -> None:
        assert adapter.source == Source.CODEX
        assert isinstance(AdapterRegistry.get("codex"), CodexAdapter)

    def test_detect(self, adapter: CodexAdapter, tmp_path: Path) -> None:
        assert adapter.detect() is True
        assert CodexAdapter(tmp_path / "missing").detect() is False

    def test_discover_dated_and_archived(self, adapter: CodexAdapter, codex_root: Path) -> None:
        write_rollout(
            codex_root / "archived_sessions" / "rollout-2024-12-01T08-00-00-aaaa-bbbb-cccc-dddd-eeee.jsonl",
            [message("user", "old question")],
        )

        locations = adapter.discover()

        assert len(locations) == 2
        by_name = {Path(loc.db_path).name: loc for loc in locations}
        assert by_name[ROLLOUT_NAME].workspace_path == "/home/u/app"
        archived = next(loc for name, loc in by_name.items() if name != ROLLOUT_NAME)
        assert archived.workspace_path == UNKNOWN_WORKSPACE


class TestCodexExtract:
    """Tests for extract."""

    @pytest.fixture
    def raw(self, adapter: CodexAdapter):
        conversations = adapter.extract(adapter.discover()[0])
        assert len(conversations) == 1
        return conversations[0]

    def test_metadata(self, raw) -> None:
        assert raw.session_id == "sess-1"
        assert raw.cwd == "/home/u/app"
        assert raw.git_branch == "feat"
        assert raw.model == "gpt-5-codex"
        assert raw.title == "Add a helper"
        assert raw.created_at == "2025-01-15T10:00:00.000Z"
        assert raw.updated_at == "2025-01-15T10:00:05.000Z"

    def test_skips_developer_and_injected_messages(self, raw) -> None:
        assert [(m.role, m.content) for m in raw.messages[:2]] == [
            ("user", "Add a helper"),
            ("assistant", "Added the helper."),
        ]

    def test_tool_calls_attach_to_next_assistant(self, raw) -> None:
        assistant = raw.messages[1]

        assert [tc.id for tc in assistant.tool_calls] == ["c1"]
        assert assistant.tool_calls[0].output == "Success"
        assert assistant.tool_calls[0].file_path == "src/helper.py"
        assert [(e.file_path, e.lines_added) for e in assistant.file_edits] == [("src/helper.py", 2)]

    def test_trailing_calls_become_tool_only_message(self, raw) -> None:
        trailing = raw.messages[-1]

        assert len(raw.messages) == 3
        assert trailing.role == "assistant"
        assert trailing.content == ""
        assert [tc.id for tc in trailing.tool_calls] == ["c2", "c3"]
        assert trailing.tool_calls[0].input == UPDATE_PATCH
        assert trailing.tool_calls[0].output == "Done"

    def test_files_first_role_wins(self, raw) -> None:
        assert [(f.path, f.role) for f in raw.files] == [
            ("src/helper.py", "edited"),
            ("src/main.py", "edited"),
        ]

    def test_session_level_totals(self, raw) -> None:
        assert raw.total_input_tokens == 1000
        assert raw.total_cache_read_tokens == 4000
        assert raw.total_output_tokens == 350
        assert raw.total_lines_added == 4
        assert raw.total_lines_removed == 1

    def test_session_id_from_filename_without_meta(self, tmp_path: Path) -> None:
        path = write_rollout(
            tmp_path / "archived_sessions" / ROLLOUT_NAME,
            ["not json", message("user", "hello")],
        )
        adapter = CodexAdapter(tmp_path)

        conversations = adapter.extract(adapter.discover()[0])

        assert conversations[0].session_id == extract_session_id(path.stem)

    def test_no_messages_no_conversation(self, tmp_path: Path) -> None:
        write_rollout(
            tmp_path / "archived_sessions" / ROLLOUT_NAME,
            [message("developer", "instructions"), message("user", "   ")],
        )
        adapter = CodexAdapter(tmp_path)

        assert adapter.extract(adapter.discover()[0]) == []


class TestCodexNormalize:
    """Tests for normalize."""

    @pytest.fixture
    def normalized(self, adapter: CodexAdapter):
        location = adapter.discover()[0]
        return adapter.normalize(adapter.extract(location)[0], location)

    def test_messages_and_count(self, normalized) -> None:
        assert [m.role for m in normalized.messages] == ["user", "assistant"]
        assert normalized.conversation.message_count == 2

    def test_trailing_tool_calls_fold_into_last_assistant(self, normalized) -> None:
        assistant_id = normalized.messages[1].id

        assert [t.type for t in normalized.tool_calls] == ["shell", "apply_patch", "read_file"]
        assert {t.message_id for t in normalized.tool_calls} == {assistant_id}
        assert normalized.messages[1].total_lines_added == 4
        assert normalized.messages[1].total_lines_removed == 1

    def test_conversation_fields(self, normalized) -> None:
        conversation = normalized.conversation

        assert conversation.source == Source.CODEX
        assert conversation.workspace_path == "/home/u/app"
        assert conversation.project_name == "app"
        assert conversation.subtitle == "branch: feat"
        assert conversation.mode == "agent"
        assert conversation.model == "gpt-5-codex"

    def test_session_totals_used_for_tokens(self, normalized) -> None:
        conversation = normalized.conversation

        assert conversation.total_input_tokens == 1000
        assert conversation.total_cache_read_tokens == 4000
        assert conversation.total_output_tokens == 350
        assert conversation.total_lines_added == 4
