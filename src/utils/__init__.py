"""Utility modules for local-vector-search.

Available utility modules (all re-exported here for convenience):

- **errors** -- Domain-specific exception hierarchy rooted at
  VectorSearchError; chunking, document reads, backends and the worker
  each raise their own subclass so callers can handle failures
  granularly without broad ``except Exception`` blocks.
- **concurrency** -- Semaphore-throttled gather and a cooperative yield
  used by long indexing runs.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **vectors** -- numpy helpers to normalize, truncate and average
  embedding vectors.
- **text_positions** -- Offset to line/column conversion, chunk previews
  and ignore-filter matching.
"""

# -- Domain exception hierarchy --------------------------------------------
from src.utils.errors import (
    BackendError,
    ChunkingError,
    ConfigurationError,
    DocumentReadError,
    VectorSearchError,
    WorkerError,
)

# -- Async concurrency helpers ---------------------------------------------
from src.utils.concurrency import cooperative_yield, throttled_gather

# -- Structured logging setup ----------------------------------------------
from src.utils.logging import configure_logging, get_logger

# -- Vector math ------------------------------------------------------------
from src.utils.vectors import average_vectors, normalize, truncate_and_normalize

# -- Text offsets and previews ---------------------------------------------
from src.utils.text_positions import extract_chunk_preview, is_path_ignored, offset_to_position

__all__ = [
    "BackendError",
    "ChunkingError",
    "ConfigurationError",
    "DocumentReadError",
    "VectorSearchError",
    "WorkerError",
    "average_vectors",
    "configure_logging",
    "cooperative_yield",
    "extract_chunk_preview",
    "get_logger",
    "is_path_ignored",
    "normalize",
    "offset_to_position",
    "throttled_gather",
    "truncate_and_normalize",
]
