"""Indexing and retrieval data models.

Defines Pydantic v2 models for the records that travel to the worker, the
hits that come back from the vector store, and the summaries reported by
batch operations.

Wire-facing models use camelCase aliases (``filePath``,
``chunkOffsetStart``) because they are serialized into worker messages;
Python code always uses the snake_case field names.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChunkRecord(BaseModel):
    """One chunk of one file, ready to be embedded and upserted."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    file_path: str = Field(description="Document path relative to the vault root.")
    chunk_offset_start: int = Field(description="Start offset in the original document, or -1.")
    chunk_offset_end: int = Field(description="End offset in the original document, or -1.")
    text: str = Field(description="Text that is embedded for this chunk.")


class SimilarityResultItem(BaseModel):
    """A single nearest-neighbour hit returned by the vector store.

    ``distance`` is the store's cosine distance: non-negative, and smaller
    means more similar.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    file_path: str
    chunk_offset_start: int
    chunk_offset_end: int
    distance: float = Field(ge=0.0)
    text: str | None = Field(default=None, description="Stored chunk text, when available.")


class IndexingResult(BaseModel):
    """Summary of a multi-document indexing run.

    ``total_vectors_processed`` is the count the store reported, never the
    number of chunks that were merely submitted.
    """

    model_config = ConfigDict(frozen=True)

    total_vectors_processed: int = Field(default=0, ge=0)
    documents_processed: int = Field(default=0, ge=0)
    documents_skipped: int = Field(default=0, ge=0)
    documents_failed: int = Field(default=0, ge=0)


class OperationResult(BaseModel):
    """Outcome of a maintenance operation such as ``ensureIndexes``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str = ""
