"""Unit tests for StorageService - rebuild, index checks and close."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.rag import ChunkRecord
from src.services.chunking.chunk_cache import ChunkCache
from src.services.storage_service import StorageService
from src.utils.errors import WorkerCallError
from src.worker.proxy import WorkerProxy
from tests.conftest import MockVectorStore


def _record(file_path: str) -> ChunkRecord:
    return ChunkRecord(file_path=file_path, chunk_offset_start=0, chunk_offset_end=4, text="text")


class TestRebuildStorage:
    @pytest.mark.asyncio
    async def test_rebuild_empties_store_and_cache(
        self,
        worker_proxy: WorkerProxy,
        mock_vector_store: MockVectorStore,
        chunk_cache: ChunkCache,
    ) -> None:
        await worker_proxy.vectorize_and_store([_record("a.md"), _record("b.md")])
        chunk_cache.get_or_compute("Some cached text.")
        messages: list[tuple[str, bool]] = []

        service = StorageService(worker_proxy, chunk_cache)
        result = await service.rebuild_storage(
            on_progress=lambda message, overall=False: messages.append((message, overall))
        )

        assert result.success
        assert await mock_vector_store.count() == 0
        assert mock_vector_store.rebuild_calls == 1
        assert len(chunk_cache) == 0
        assert messages == [
            ("Rebuilding storage: Initiating database rebuild...", True),
            ("Storage rebuild complete.", True),
        ]

    @pytest.mark.asyncio
    async def test_rebuild_without_cache(self, worker_proxy: WorkerProxy) -> None:
        result = await StorageService(worker_proxy).rebuild_storage()
        assert result.message == "Database rebuilt"

    @pytest.mark.asyncio
    async def test_failure_propagates_and_keeps_cache(self, chunk_cache: ChunkCache) -> None:
        worker = MagicMock(spec=WorkerProxy)
        worker.rebuild_database = AsyncMock(
            side_effect=WorkerCallError(message="disk is read-only", request_type="rebuildDb")
        )
        chunk_cache.get_or_compute("Cached.")
        messages: list[str] = []

        service = StorageService(worker, chunk_cache)
        with pytest.raises(WorkerCallError, match="read-only"):
            await service.rebuild_storage(on_progress=lambda m, overall=False: messages.append(m))

        assert len(chunk_cache) == 1
        assert messages == ["Rebuilding storage: Initiating database rebuild..."]


class TestEnsureIndexesAndClose:
    @pytest.mark.asyncio
    async def test_ensure_indexes_reports_store_status(self, worker_proxy: WorkerProxy) -> None:
        result = await StorageService(worker_proxy).ensure_indexes()
        assert result.success
        assert result.message == "ready (0 chunks)"

    @pytest.mark.asyncio
    async def test_close_then_ensure_reopens(
        self, worker_proxy: WorkerProxy, mock_vector_store: MockVectorStore
    ) -> None:
        service = StorageService(worker_proxy)
        closed = await service.close()
        assert closed.message == "Database closed"
        assert mock_vector_store.closed

        await service.ensure_indexes()
        assert not mock_vector_store.closed
