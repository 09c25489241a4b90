"""Tests for default session store locations."""

from pathlib import Path
from unittest.mock import patch

from session_dex.collector.sources import (
    default_roots,
    get_claude_code_root,
    get_codex_root,
    get_cursor_db_path,
    get_opencode_root,
)
from session_dex.models import Source


class TestHomeRelativeRoots:
    """Tests for roots under the user's home directory."""

    def test_claude_code_root(self, tmp_path: Path) -> None:
        """Should point at ~/.claude/projects."""
        with patch.object(Path, "home", return_value=tmp_path):
            assert get_claude_code_root() == tmp_path / ".claude" / "projects"

    def test_codex_root(self, tmp_path: Path) -> None:
        """Should point at ~/.codex."""
        with patch.object(Path, "home", return_value=tmp_path):
            assert get_codex_root() == tmp_path / ".codex"

    def test_opencode_root(self, tmp_path: Path) -> None:
        """Should point at the OpenCode storage directory."""
        with patch.object(Path, "home", return_value=tmp_path):
            assert get_opencode_root() == tmp_path / ".local" / "share" / "opencode" / "storage"


class TestGetCursorDbPath:
    """Tests for get_cursor_db_path function."""

    SUFFIX = Path("Cursor") / "User" / "globalStorage" / "state.vscdb"

    def test_linux(self, tmp_path: Path) -> None:
        """Should use ~/.config on Linux."""
        with patch.object(Path, "home", return_value=tmp_path):
            with patch("platform.system", return_value="Linux"):
                assert get_cursor_db_path() == tmp_path / ".config" / self.SUFFIX

    def test_macos(self, tmp_path: Path) -> None:
        """Should use Application Support on macOS."""
        with patch.object(Path, "home", return_value=tmp_path):
            with patch("platform.system", return_value="Darwin"):
                expected = tmp_path / "Library" / "Application Support" / self.SUFFIX
                assert get_cursor_db_path() == expected

    def test_windows_appdata(self, tmp_path: Path, monkeypatch) -> None:
        """Should use %APPDATA% on Windows."""
        monkeypatch.setenv("APPDATA", str(tmp_path / "Roaming"))
        with patch("platform.system", return_value="Windows"):
            assert get_cursor_db_path() == tmp_path / "Roaming" / self.SUFFIX

    def test_windows_without_appdata(self, tmp_path: Path, monkeypatch) -> None:
        """Should fall back to the default roaming directory."""
        monkeypatch.delenv("APPDATA", raising=False)
        with patch.object(Path, "home", return_value=tmp_path):
            with patch("platform.system", return_value="Windows"):
                expected = tmp_path / "AppData" / "Roaming" / self.SUFFIX
                assert get_cursor_db_path() == expected


class TestDefaultRoots:
    """Tests for default_roots function."""

    def test_covers_every_source(self, tmp_path: Path) -> None:
        """Should return a location for each source."""
        with patch.object(Path, "home", return_value=tmp_path):
            roots = default_roots()

        assert set(roots) == set(Source)
        assert roots[Source.CODEX] == tmp_path / ".codex"

    def test_runs_on_local_machine(self) -> None:
        """Should not fail against the real home directory."""
        roots = default_roots()

        assert all(isinstance(path, Path) for path in roots.values())
