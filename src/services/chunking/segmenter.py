"""Sentence segmentation with exact character offsets.

Splits text into :class:`~src.models.chunk.SentenceSpan` objects.  Each
span is trimmed of surrounding whitespace, but its offsets still index
the text that was passed in, so ``text[span.start_offset:span.end_offset]
== span.text`` always holds.

Segmentation works line by line.  Within a line a sentence ends at
``.``, ``!`` or ``?`` followed by whitespace or end of line (closing
quotes and brackets stay with their sentence), or immediately after the
CJK terminators ``。！？``.

Sentences longer than ``max_sentence_characters`` are subdivided.  The
splitter walks backward from the target length looking for whitespace or
one of :data:`_PREFERRED_SPLIT_CHARS`; a piece shorter than
``min_sentence_characters`` is never cut off, and when no boundary exists
the text is force-split at the maximum length.
"""

from __future__ import annotations

import re

import structlog

from src.models.chunk import SentenceSpan

logger = structlog.get_logger(logger_name=__name__)

# Common abbreviations that should NOT trigger a sentence split.
# "Dr. Smith" should remain one sentence, not split at the period.
_ABBREVIATIONS = frozenset(
    {
        "Dr",
        "Mr",
        "Mrs",
        "Ms",
        "Prof",
        "Jr",
        "Sr",
        "St",
        "Ave",
        "Vol",
        "No",
        "vs",
        "etc",
        "approx",
        "dept",
        "est",
        "inc",
        "ltd",
        "e.g",
        "i.e",
        "cf",
        "fig",
        "Fig",
    }
)

# Longest first so "Mrs" wins over "Mr".  Word boundaries keep "Doctor."
# or "Dr" inside a longer word from being masked.
_ABBREVIATION_RE = re.compile(
    r"\b(?:"
    + "|".join(re.escape(a) for a in sorted(_ABBREVIATIONS, key=len, reverse=True))
    + r")\."
)

# Mask character for abbreviation periods (same length keeps indices aligned).
_MASK = "\x00"

_LINE_RE = re.compile(r"[^\r\n]+")

_SENTENCE_END_RE = re.compile(
    r"[.!?]+[\"'”’)\]]*(?=\s|$)"
    r"|[。！？]+[」』）]*"
)

_PREFERRED_SPLIT_CHARS = "。、，．,.!?！？；："


class SentenceSegmenter:
    """Splits text into trimmed, offset-preserving sentence spans.

    Parameters
    ----------
    max_sentence_characters:
        Spans longer than this are subdivided (default 100).
    min_sentence_characters:
        Subdivided pieces are at least this long, except the final
        remainder of a sentence (default 5).
    """

    def __init__(
        self,
        max_sentence_characters: int = 100,
        min_sentence_characters: int = 5,
    ) -> None:
        if max_sentence_characters <= 0:
            raise ValueError("max_sentence_characters must be positive")
        if not 0 < min_sentence_characters <= max_sentence_characters:
            raise ValueError(
                "min_sentence_characters must be between 1 and max_sentence_characters"
            )
        self._max_chars = max_sentence_characters
        self._min_chars = min_sentence_characters

    @property
    def max_sentence_characters(self) -> int:
        return self._max_chars

    def segment(self, text: str) -> list[SentenceSpan]:
        """Split *text* into ordered, non-overlapping sentence spans.

        Empty or whitespace-only input returns an empty list.
        """
        if not text or not text.strip():
            return []

        masked = _ABBREVIATION_RE.sub(lambda m: m.group(0)[:-1] + _MASK, text)

        spans: list[SentenceSpan] = []
        for line in _LINE_RE.finditer(text):
            cursor = line.start()
            for match in _SENTENCE_END_RE.finditer(masked, line.start(), line.end()):
                self._emit(text, cursor, match.end(), spans)
                cursor = match.end()
            if cursor < line.end():
                self._emit(text, cursor, line.end(), spans)

        logger.debug("segmentation_complete", num_spans=len(spans), text_length=len(text))
        return spans

    # ------------------------------------------------------------------
    # Span construction
    # ------------------------------------------------------------------

    def _emit(self, text: str, start: int, end: int, out: list[SentenceSpan]) -> None:
        raw = text[start:end]
        stripped = raw.strip()
        if not stripped:
            return
        base = start + (len(raw) - len(raw.lstrip()))
        if len(stripped) > self._max_chars:
            self._split_by_max_length(stripped, base, out)
        else:
            out.append(
                SentenceSpan(text=stripped, start_offset=base, end_offset=base + len(stripped))
            )

    def _split_by_max_length(
        self, sentence: str, base_offset: int, out: list[SentenceSpan]
    ) -> None:
        """Subdivide an over-long *sentence* that starts at *base_offset*."""
        cursor = 0
        length = len(sentence)
        while cursor < length:
            segment_end = min(cursor + self._max_chars, length)
            if segment_end < length:
                segment_end = self._find_split_index(sentence, cursor, segment_end)
            segment_end = min(max(segment_end, cursor + self._min_chars), length)

            raw = sentence[cursor:segment_end]
            piece = raw.strip()
            if piece:
                start = base_offset + cursor + (len(raw) - len(raw.lstrip()))
                out.append(SentenceSpan(text=piece, start_offset=start, end_offset=start + len(piece)))
            cursor = segment_end

    def _find_split_index(self, text: str, cursor: int, preferred_end: int) -> int:
        """Walk back from *preferred_end* to the closest preferred boundary.

        The returned index is exclusive: the boundary character stays with
        the piece before it.  Falls back to *preferred_end* (a forced split)
        when no boundary leaves at least ``min_sentence_characters``.
        """
        for i in range(preferred_end, cursor, -1):
            if i - cursor < self._min_chars:
                break
            char = text[i - 1]
            if char.isspace() or char in _PREFERRED_SPLIT_CHARS:
                return i
        return max(cursor + self._min_chars, preferred_end)
