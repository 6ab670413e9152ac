"""Helpers that map chunk offsets back onto document text.

Chunk offsets are plain character indices into the original document.
Editors and CLI output want line/column positions and short previews
instead; these helpers do that translation.
"""

from __future__ import annotations

from collections.abc import Iterable

from src.models.chunk import NO_OFFSET

# Preview text for offset-less (title) chunks.
EMPTY_PREVIEW = "empty"
NO_POSITION_PREVIEW = "No position info for preview."


def offset_to_position(content: str, offset: int) -> tuple[int, int]:
    """Convert a character *offset* into a zero-based ``(line, ch)`` pair.

    Offsets past the end of *content* clamp to the end of the text.
    """
    offset = max(0, min(offset, len(content)))
    line = content.count("\n", 0, offset)
    last_newline = content.rfind("\n", 0, offset)
    return line, offset - (last_newline + 1)


def extract_chunk_preview(content: str, start_offset: int | None, end_offset: int | None) -> str:
    """Return the source text a chunk was cut from.

    Title chunks (``-1/-1``) have no source range and preview as
    ``"empty"``.
    """
    if start_offset == NO_OFFSET and end_offset == NO_OFFSET:
        return EMPTY_PREVIEW
    if start_offset is None or end_offset is None:
        return NO_POSITION_PREVIEW
    return content[start_offset:end_offset]


def is_path_ignored(path: str, filters: Iterable[str]) -> bool:
    """Return ``True`` if *path* starts with any of the ignore *filters*.

    Matching is a plain prefix test on forward-slash paths, so a filter of
    ``"archive/"`` ignores a folder while ``"draft"`` also ignores
    ``drafts.md``.  Blank filters are skipped.
    """
    normalized_path = path.replace("\\", "/")
    for raw in filters:
        prefix = raw.strip().replace("\\", "/")
        if prefix and normalized_path.startswith(prefix):
            return True
    return False
