"""local-vector-search domain models - re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models`` (e.g.
``from src.models import Chunk``) instead of the individual module files.

The models are organized across two submodules by concern:
    - chunk.py  - Sentence spans and offset-preserving chunks
    - rag.py    - Chunk records, similarity hits, and operation summaries

Worker wire messages live in ``src.worker.protocol`` because only the
worker layer speaks them.
"""

from __future__ import annotations

# --- Chunking models: what the segmenter and assembler produce. ---
from src.models.chunk import (
    NO_OFFSET,
    Chunk,
    ChunkMetadata,
    SentenceSpan,
)
# --- Indexing/retrieval models: what crosses the worker boundary and what
# batch operations report back. ---
from src.models.rag import (
    ChunkRecord,
    IndexingResult,
    OperationResult,
    SimilarityResultItem,
)

__all__ = [
    # chunk
    "NO_OFFSET",
    "Chunk",
    "ChunkMetadata",
    "SentenceSpan",
    # rag
    "ChunkRecord",
    "IndexingResult",
    "OperationResult",
    "SimilarityResultItem",
]
