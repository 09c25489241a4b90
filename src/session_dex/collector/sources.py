"""Default on-disk locations of each assistant's session store."""

import os
import platform
from pathlib import Path

from session_dex.logging import get_logger
from session_dex.models import Source

logger = get_logger("sources")


def get_claude_code_root() -> Path:
    """Claude Code project directories.

    Location: ~/.claude/projects/<encoded-project-path>/<session-id>.jsonl
    """
    return Path.home() / ".claude" / "projects"


def get_codex_root() -> Path:
    """Codex CLI home.

    Sessions live under:
    - ~/.codex/sessions/YYYY/MM/DD/rollout-*.jsonl
    - ~/.codex/archived_sessions/rollout-*.jsonl
    """
    return Path.home() / ".codex"


def get_cursor_db_path() -> Path:
    """Cursor global state database.

    Locations vary by platform:
    - Linux: ~/.config/Cursor/User/globalStorage/state.vscdb
    - macOS: ~/Library/Application Support/Cursor/User/globalStorage/state.vscdb
    - Windows: %APPDATA%/Cursor/User/globalStorage/state.vscdb
    """
    system = platform.system()

    if system == "Darwin":  # macOS
        base = Path.home() / "Library" / "Application Support"
    elif system == "Windows":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home() / ".config"

    return base / "Cursor" / "User" / "globalStorage" / "state.vscdb"


def get_opencode_root() -> Path:
    """OpenCode (SST) storage root.

    OpenCode stores sessions in a hierarchical structure:
    - storage/session/<projectId>/ses_<sessionId>.json
    - storage/message/<sessionId>/msg_<messageId>.json
    - storage/part/<messageId>/prt_<partId>.json
    - storage/project/<projectId>.json
    """
    return Path.home() / ".local" / "share" / "opencode" / "storage"


def default_roots() -> dict[Source, Path]:
    """Default store location for every source on this machine."""
    roots = {
        Source.CLAUDE_CODE: get_claude_code_root(),
        Source.CODEX: get_codex_root(),
        Source.CURSOR: get_cursor_db_path(),
        Source.OPENCODE: get_opencode_root(),
    }

    logger.debug(
        "Default roots: %s",
        " ".join(f"{source}={path}" for source, path in roots.items()),
    )

    return roots
