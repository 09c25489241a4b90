"""Project root inference from the file paths referenced in a session."""

from collections import Counter
from collections.abc import Iterable

# Conventional directory names that sit directly under a project root
PROJECT_INDICATORS = frozenset(
    {"src", "lib", "packages", "node_modules", "dist", "build", "test", "tests", "scripts"}
)

# Also common as a project name: only a boundary when no strong indicator is
# present and the truncated root would not be a home directory
WEAK_PROJECT_INDICATORS = frozenset({"app"})


def _segments(path: str) -> list[str]:
    return [part for part in path.split("/") if part]


def _is_home_dir(segments: list[str]) -> bool:
    if segments == ["root"]:
        return True
    return len(segments) == 2 and segments[0] in ("home", "Users")


def _indicator_index(segments: list[str]) -> int | None:
    for idx, segment in enumerate(segments):
        if idx > 0 and segment in PROJECT_INDICATORS:
            return idx
    for idx, segment in enumerate(segments):
        if idx > 0 and segment in WEAK_PROJECT_INDICATORS and not _is_home_dir(segments[:idx]):
            return idx
    return None


def _root_from_segments(segments: list[str]) -> str | None:
    """Apply the indicator and filename rules to a run of path segments."""
    idx = _indicator_index(segments)
    if idx is not None:
        return "/" + "/".join(segments[:idx])

    if len(segments) > 1:
        if "." in segments[-1]:
            return "/" + "/".join(segments[:-1])
        return "/" + "/".join(segments)

    return None


def _common_prefix(paths: list[list[str]]) -> list[str]:
    first = paths[0]
    common: list[str] = []
    for idx, segment in enumerate(first):
        if all(len(p) > idx and p[idx] == segment for p in paths):
            common.append(segment)
        else:
            break
    return common


def infer_workspace_path(file_paths: Iterable[str]) -> str | None:
    """Derive a project root directory from absolute file paths.

    The longest shared run of leading segments is truncated before any
    project indicator (``src``, ``lib``, ...), or has a trailing filename
    dropped. When the paths share no usable prefix, a root is computed for
    each path on its own and the most frequent one wins, preferring the
    longer candidate on ties.

    Args:
        file_paths: File paths from file references and edits; relative
            paths are ignored

    Returns:
        Inferred root such as ``/home/user/app``, or None
    """
    paths = [_segments(p) for p in file_paths if p.startswith("/")]
    paths = [p for p in paths if p]
    if not paths:
        return None

    root = _root_from_segments(_common_prefix(paths))
    if root is not None:
        return root

    candidates = Counter(
        candidate
        for candidate in (_root_from_segments(p) for p in paths)
        if candidate is not None
    )
    if not candidates:
        return None

    return max(candidates.items(), key=lambda item: (item[1], len(item[0])))[0]


def project_name_from_path(workspace_path: str | None) -> str | None:
    """Return the final segment of a workspace path."""
    if not workspace_path:
        return None
    segments = _segments(workspace_path)
    return segments[-1] if segments else None
