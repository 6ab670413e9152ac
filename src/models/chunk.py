"""Chunking data models.

A document passes through two shapes on its way to the embedding model:

    text ──segmenter──→ SentenceSpan[] ──assembler──→ Chunk[]

Both carry half-open ``[start_offset, end_offset)`` character offsets.
Span offsets index the text the segmenter saw; chunk offsets always index
the *original* document, including any front-matter block that was
stripped before segmentation.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Offsets used by chunks that do not map onto document text (title chunks).
NO_OFFSET = -1


class SentenceSpan(BaseModel):
    """A trimmed, sentence-like slice of text with its source offsets."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Span text with surrounding whitespace trimmed.")
    start_offset: int = Field(ge=0, description="Start index in the segmented text.")
    end_offset: int = Field(ge=0, description="End index (exclusive) in the segmented text.")


class Chunk(BaseModel):
    """A bounded-length slice of a document, the unit of embedding.

    ``text`` is the contributing spans joined by single spaces, so it is
    not necessarily a verbatim slice of the document; the offsets are what
    tie a chunk back to its exact source range.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="The chunk's textual content.")
    start_offset: int = Field(
        ge=NO_OFFSET, description="Start index into the original document, or -1."
    )
    end_offset: int = Field(
        ge=NO_OFFSET, description="End index (exclusive) into the original document, or -1."
    )
    contributing_segment_ids: list[str] = Field(
        default_factory=list,
        description="Indices of the segmenter spans packed into this chunk.",
    )

    @model_validator(mode="after")
    def _check_offsets(self) -> Chunk:
        if self.start_offset >= 0 and self.end_offset >= 0 and self.start_offset >= self.end_offset:
            raise ValueError("start_offset must be smaller than end_offset")
        return self

    @property
    def has_offsets(self) -> bool:
        return self.start_offset != NO_OFFSET and self.end_offset != NO_OFFSET


class ChunkMetadata(BaseModel):
    """Externally visible position data for a chunk of a specific file."""

    model_config = ConfigDict(frozen=True)

    file_path: str
    start_position: int
    end_position: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_chunk(cls, file_path: str, chunk: Chunk) -> ChunkMetadata:
        return cls(
            file_path=file_path,
            start_position=chunk.start_offset,
            end_position=chunk.end_offset,
        )
