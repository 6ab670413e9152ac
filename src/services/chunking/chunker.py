"""Greedy, offset-preserving chunk assembly.

Turns a Markdown document into :class:`~src.models.chunk.Chunk` objects
sized for the embedding model.

Two preprocessing steps run before segmentation, and neither may disturb
the offset mapping back to the original document:

1. **Front matter** -- a ``---`` fenced block at the very start of the
   document is removed.  Its length is added back to every reported
   offset, so positions refer to the unmodified source.

2. **URLs** -- ``http(s)://`` substrings are replaced by the same number
   of spaces.  They stop polluting the embeddings, and every later index
   stays where it was.

Packing is greedy: spans are joined by single spaces until the next span
would push the chunk past ``max_chunk_characters``.  A span that on its
own meets or exceeds the maximum becomes its own chunk.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

import structlog

from src.models.chunk import NO_OFFSET, Chunk, SentenceSpan
from src.services.chunking.segmenter import SentenceSegmenter
from src.utils.errors import ChunkingError

logger = structlog.get_logger(logger_name=__name__)

_FRONTMATTER_RE = re.compile(r"\A---\s*[\r\n]+(.*?)[\r\n]+---\s*[\r\n]+", re.DOTALL)
_URL_RE = re.compile(r"https?://[^\s)>\]]+")

_SEPARATOR = " "


class ChunkAssembler:
    """Packs sentence spans into bounded chunks with original-text offsets.

    Parameters
    ----------
    segmenter:
        The sentence segmenter to use.  Defaults to one with the standard
        sentence bounds.
    max_chunk_characters:
        Upper bound on a packed chunk's text length (default 1000).
    remove_frontmatter:
        Strip a leading ``---`` block before segmenting.
    remove_urls:
        Blank out URLs with equal-length whitespace.
    """

    def __init__(
        self,
        segmenter: SentenceSegmenter | None = None,
        max_chunk_characters: int = 1000,
        remove_frontmatter: bool = True,
        remove_urls: bool = True,
    ) -> None:
        if max_chunk_characters <= 0:
            raise ValueError("max_chunk_characters must be positive")
        self._segmenter = segmenter or SentenceSegmenter()
        self._max_chars = max_chunk_characters
        self._remove_frontmatter = remove_frontmatter
        self._remove_urls = remove_urls

    @property
    def max_chunk_characters(self) -> int:
        return self._max_chars

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str) -> list[Chunk]:
        """Split *text* into ordered, non-overlapping chunks.

        Returns an empty list when nothing but whitespace remains after
        preprocessing.

        Raises
        ------
        ChunkingError
            If segmentation fails unexpectedly.
        """
        processed, prefix_length = self._preprocess(text)
        if not processed.strip():
            return []

        try:
            spans = self._segmenter.segment(processed)
        except (ValueError, TypeError) as exc:
            raise ChunkingError(message=f"Segmentation failed: {exc}") from exc

        chunks = self._pack(spans, prefix_length)
        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            num_spans=len(spans),
            frontmatter_length=prefix_length,
        )
        return chunks

    def title_chunk(self, file_path: str) -> Chunk | None:
        """Build an offset-less chunk from a document's file name.

        ``notes/Project Plan.md`` yields a chunk with text ``Project Plan``
        and offsets ``-1/-1``.  Returns ``None`` for an empty stem.
        """
        title = PurePosixPath(file_path).stem.strip()
        if not title:
            return None
        return Chunk(text=title, start_offset=NO_OFFSET, end_offset=NO_OFFSET)

    # ------------------------------------------------------------------
    # Preprocessing
    # ------------------------------------------------------------------

    def _preprocess(self, text: str) -> tuple[str, int]:
        """Return the text to segment and the length removed from its front."""
        prefix_length = 0
        if self._remove_frontmatter:
            match = _FRONTMATTER_RE.match(text)
            if match:
                prefix_length = match.end()
                text = text[prefix_length:]
        if self._remove_urls:
            text = _URL_RE.sub(lambda m: " " * len(m.group(0)), text)
        return text, prefix_length

    # ------------------------------------------------------------------
    # Packing
    # ------------------------------------------------------------------

    def _pack(self, spans: list[SentenceSpan], offset_shift: int) -> list[Chunk]:
        chunks: list[Chunk] = []
        parts: list[str] = []
        ids: list[str] = []
        current_length = 0
        start = end = NO_OFFSET

        def flush() -> None:
            nonlocal parts, ids, current_length, start, end
            if parts:
                chunks.append(
                    Chunk(
                        text=_SEPARATOR.join(parts),
                        start_offset=start,
                        end_offset=end,
                        contributing_segment_ids=ids,
                    )
                )
            parts, ids, current_length = [], [], 0
            start = end = NO_OFFSET

        for index, span in enumerate(spans):
            span_start = span.start_offset + offset_shift
            span_end = span.end_offset + offset_shift
            span_length = len(span.text)

            if span_length >= self._max_chars:
                flush()
                chunks.append(
                    Chunk(
                        text=span.text,
                        start_offset=span_start,
                        end_offset=span_end,
                        contributing_segment_ids=[str(index)],
                    )
                )
                continue

            joined_length = current_length + (len(_SEPARATOR) if parts else 0) + span_length
            if parts and joined_length > self._max_chars:
                flush()
                joined_length = span_length

            if not parts:
                start = span_start
            parts.append(span.text)
            ids.append(str(index))
            current_length = joined_length
            end = span_end

        flush()
        return chunks
