"""Unit tests for offset-to-position mapping, previews, and ignore filters."""

from __future__ import annotations

from src.utils.text_positions import (
    EMPTY_PREVIEW,
    NO_POSITION_PREVIEW,
    extract_chunk_preview,
    is_path_ignored,
    offset_to_position,
)


class TestOffsetToPosition:
    def test_first_line(self) -> None:
        assert offset_to_position("hello\nworld", 3) == (0, 3)

    def test_after_newline(self) -> None:
        assert offset_to_position("hello\nworld", 6) == (1, 0)
        assert offset_to_position("a\nb\ncdef", 6) == (2, 2)

    def test_clamps_out_of_range(self) -> None:
        assert offset_to_position("ab\ncd", 100) == (1, 2)
        assert offset_to_position("ab\ncd", -5) == (0, 0)


class TestExtractChunkPreview:
    def test_slice_of_content(self) -> None:
        assert extract_chunk_preview("Hello world.", 6, 11) == "world"

    def test_title_chunk_preview(self) -> None:
        assert extract_chunk_preview("Anything", -1, -1) == EMPTY_PREVIEW

    def test_missing_offsets(self) -> None:
        assert extract_chunk_preview("Anything", None, 3) == NO_POSITION_PREVIEW


class TestIsPathIgnored:
    def test_prefix_match(self) -> None:
        assert is_path_ignored("archive/old.md", ["archive/"]) is True
        assert is_path_ignored("notes/new.md", ["archive/"]) is False

    def test_plain_prefix_matches_similar_names(self) -> None:
        assert is_path_ignored("drafts.md", ["draft"]) is True

    def test_backslashes_normalized(self) -> None:
        assert is_path_ignored("archive\\old.md", ["archive/"]) is True
        assert is_path_ignored("archive/old.md", ["archive\\"]) is True

    def test_blank_filters_skipped(self) -> None:
        assert is_path_ignored("any.md", ["", "   "]) is False

    def test_filters_are_trimmed(self) -> None:
        assert is_path_ignored("archive/old.md", ["  archive/  "]) is True
