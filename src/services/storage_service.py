"""Maintenance operations on the vector store.

Thin coordinator over the worker's storage requests.  Rebuilding the
store also clears the chunk cache so the next indexing run starts from
scratch.  Failures are logged and re-raised for the command layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from src.models.rag import OperationResult
from src.pipeline.progress_tracker import ProgressCallback, ProgressReporter
from src.utils.errors import VectorSearchError

if TYPE_CHECKING:
    from src.services.chunking.chunk_cache import ChunkCache
    from src.worker.proxy import WorkerProxy

logger = structlog.get_logger(logger_name=__name__)


class StorageService:
    """Rebuild, verify and close the worker's vector store."""

    def __init__(self, worker: WorkerProxy, chunk_cache: ChunkCache | None = None) -> None:
        self._worker = worker
        self._cache = chunk_cache

    async def rebuild_storage(self, on_progress: ProgressCallback | None = None) -> OperationResult:
        """Drop every stored vector and recreate an empty store."""
        progress = ProgressReporter(on_progress)
        await progress.report("Rebuilding storage: Initiating database rebuild...", True)
        try:
            result = await self._worker.rebuild_database()
        except VectorSearchError as exc:
            logger.error("storage_rebuild_failed", error=str(exc))
            raise
        if self._cache is not None:
            self._cache.clear()
        await progress.report("Storage rebuild complete.", True)
        logger.info("storage_rebuilt", message=result.message)
        return result

    async def ensure_indexes(self) -> OperationResult:
        result = await self._worker.ensure_indexes()
        if result.success:
            logger.info("storage_indexes_ready", message=result.message)
        else:
            logger.warning("storage_indexes_not_ready", message=result.message)
        return result

    async def close(self) -> OperationResult:
        result = await self._worker.close_database()
        logger.info("storage_closed", message=result.message)
        return result
