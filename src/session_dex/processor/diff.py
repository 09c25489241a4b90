"""Line-level edit extraction from the two diff encodings seen in session logs.

Textual patch documents (Codex and OpenCode ``apply_patch``)::

    *** Begin Patch
    *** Add File: path/to/new-file.ts
    +line 1
    +line 2
    *** Update File: path/to/existing.ts
    @@
    -old line
    +new line
    *** End Patch

Structured line-range blobs (Cursor ``codeBlockDiff`` rows)::

    {"original": {"startLineNumber": 5, "endLineNumberExclusive": 8},
     "modified": ["const x = 10;", "const y = 20;"]}
"""

from typing import Any

from session_dex.processor.raw import RawFileEdit

PATCH_MARKERS = {
    "*** Add File:": "create",
    "*** Update File:": "modify",
    "*** Delete File:": "delete",
}


def count_lines(text: str | None) -> int:
    """Count lines the way edit stats are reported.

    An empty string is zero lines; any other string is its newline-split
    length, with or without a trailing newline.
    """
    if not text:
        return 0
    return len(text.split("\n"))


def parse_patch_document(patch: str) -> list[RawFileEdit]:
    """Parse a multi-file textual patch into one edit per file block."""
    edits: list[RawFileEdit] = []
    current: RawFileEdit | None = None

    for line in patch.split("\n"):
        marker = next((m for m in PATCH_MARKERS if line.startswith(m)), None)
        if marker is not None:
            current = RawFileEdit(
                file_path=line[len(marker):].strip(),
                edit_type=PATCH_MARKERS[marker],
            )
            edits.append(current)
            continue

        if current is None:
            continue

        if line.startswith("+") and not line.startswith("+++"):
            current.lines_added += 1
        elif line.startswith("-") and not line.startswith("---"):
            current.lines_removed += 1

    return [edit for edit in edits if edit.file_path]


def is_patch_document(text: str) -> bool:
    """Check whether text looks like a textual patch document."""
    return any(marker in text for marker in PATCH_MARKERS) or "*** Begin Patch" in text


def parse_line_range_blob(blob: Any, file_path: str) -> RawFileEdit | None:
    """Convert one line-range replacement record into an edit.

    Args:
        blob: Decoded record with ``original`` bounds and ``modified`` lines
        file_path: File the record applies to

    Returns:
        RawFileEdit, or None when the record is malformed
    """
    if not isinstance(blob, dict):
        return None

    original = blob.get("original")
    modified = blob.get("modified", [])
    if not isinstance(original, dict) or not isinstance(modified, list):
        return None

    start = original.get("startLineNumber")
    end = original.get("endLineNumberExclusive")
    if not isinstance(start, int) or not isinstance(end, int) or end < start:
        return None

    removed = end - start
    return RawFileEdit(
        file_path=file_path,
        edit_type="create" if removed == 0 else "modify",
        lines_added=len(modified),
        lines_removed=removed,
        start_line=start,
        end_line=end,
    )


def parse_line_range_blobs(blobs: Any, file_path: str) -> list[RawFileEdit]:
    """Parse a list of line-range records, skipping malformed ones."""
    if not isinstance(blobs, list):
        return []

    edits: list[RawFileEdit] = []
    for blob in blobs:
        edit = parse_line_range_blob(blob, file_path)
        if edit is not None:
            edits.append(edit)
    return edits
