"""Unit tests for VectorizationService - record building, full runs, single notes."""

from __future__ import annotations

import math
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.models.chunk import NO_OFFSET
from src.providers.documents.filesystem_source import FileSystemDocumentSource
from src.services.chunking.chunk_cache import ChunkCache
from src.services.vectorization_service import VectorizationService
from src.utils.errors import ChunkingError, DocumentReadError
from src.worker.proxy import WorkerProxy
from tests.conftest import MockEmbeddingProvider, MockVectorStore


class _UnreadableSource(FileSystemDocumentSource):
    """Fails to read the listed paths."""

    def __init__(self, root: Path, unreadable: set[str]) -> None:
        super().__init__(root)
        self._unreadable = unreadable

    async def read_document(self, path: str) -> str:
        if path in self._unreadable:
            raise DocumentReadError(message=f"Cannot read {path}: permission denied")
        return await super().read_document(path)


class _Recorder:
    def __init__(self) -> None:
        self.messages: list[tuple[str, bool]] = []

    def __call__(self, message: str, is_overall_progress: bool = False) -> None:
        self.messages.append((message, is_overall_progress))

    @property
    def overall(self) -> list[str]:
        return [m for m, overall in self.messages if overall]


@pytest.fixture()
def service(
    document_source: FileSystemDocumentSource,
    chunk_cache: ChunkCache,
    worker_proxy: WorkerProxy,
) -> VectorizationService:
    return VectorizationService(document_source, chunk_cache, worker_proxy)


# ======================================================================
# build_records
# ======================================================================


@pytest.fixture()
def offline_service(
    document_source: FileSystemDocumentSource, chunk_cache: ChunkCache
) -> VectorizationService:
    return VectorizationService(document_source, chunk_cache, MagicMock(spec=WorkerProxy))


class TestBuildRecords:
    def test_offsets_point_into_the_original_text(
        self, offline_service: VectorizationService
    ) -> None:
        text = (
            "---\ntags: [sleep]\n---\n"
            "Sleep consolidates memory. Deep sleep helps the brain file away facts.\n"
        )
        records = offline_service.build_records("alpha.md", text)

        assert records
        assert all(r.file_path == "alpha.md" for r in records)
        assert text[records[0].chunk_offset_start:].startswith("Sleep consolidates")
        for record in records:
            assert 0 <= record.chunk_offset_start < record.chunk_offset_end <= len(text)

    def test_blank_text_has_no_records(self, offline_service: VectorizationService) -> None:
        assert offline_service.build_records("empty.md", "  \n\n") == []

    def test_title_chunk_comes_first(
        self,
        document_source: FileSystemDocumentSource,
        chunk_cache: ChunkCache,
    ) -> None:
        service = VectorizationService(
            document_source, chunk_cache, MagicMock(spec=WorkerProxy), index_note_titles=True
        )
        records = service.build_records("projects/Plan A.md", "Buy wood first. Then build.")

        assert records[0].text == "Plan A"
        assert records[0].chunk_offset_start == NO_OFFSET
        assert records[0].chunk_offset_end == NO_OFFSET
        assert all(r.chunk_offset_start >= 0 for r in records[1:])

    def test_cache_is_not_mutated_by_title_insert(
        self,
        document_source: FileSystemDocumentSource,
        chunk_cache: ChunkCache,
    ) -> None:
        service = VectorizationService(
            document_source, chunk_cache, MagicMock(spec=WorkerProxy), index_note_titles=True
        )
        first = service.build_records("a.md", "Same text here.")
        second = service.build_records("a.md", "Same text here.")
        assert first == second


# ======================================================================
# index_all
# ======================================================================


class TestIndexAll:
    @pytest.mark.asyncio
    async def test_indexes_the_whole_vault(
        self, service: VectorizationService, mock_vector_store: MockVectorStore
    ) -> None:
        recorder = _Recorder()
        result = await service.index_all(on_progress=recorder)

        assert result.documents_processed == 4
        assert result.documents_skipped == 1
        assert result.documents_failed == 0
        assert result.total_vectors_processed == await mock_vector_store.count()
        assert result.total_vectors_processed >= 4

        assert recorder.overall[0] == "Starting vectorization for all notes..."
        assert recorder.overall[-1] == (
            f"Stored {result.total_vectors_processed} vectors from 4 notes."
        )
        per_document = [m for m, overall in recorder.messages if m.startswith("Vectorizing notes:")]
        assert len(per_document) == 5
        assert per_document[-1] == "Vectorizing notes: 100.0% (5/5) projects/Plan A.md"

    @pytest.mark.asyncio
    async def test_one_worker_call_for_all_documents(
        self, service: VectorizationService, mock_embedding_provider: MockEmbeddingProvider
    ) -> None:
        await service.index_all()
        assert len(mock_embedding_provider.embed_calls) == 1

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate(
        self, service: VectorizationService, mock_vector_store: MockVectorStore
    ) -> None:
        first = await service.index_all()
        await service.index_all()
        assert await mock_vector_store.count() == first.total_vectors_processed

    @pytest.mark.asyncio
    async def test_read_failure_is_counted_and_run_continues(
        self,
        vault: Path,
        chunk_cache: ChunkCache,
        worker_proxy: WorkerProxy,
        mock_vector_store: MockVectorStore,
    ) -> None:
        source = _UnreadableSource(vault, {"beta.md"})
        service = VectorizationService(source, chunk_cache, worker_proxy)
        recorder = _Recorder()

        result = await service.index_all(on_progress=recorder)

        assert result.documents_failed == 1
        assert result.documents_processed == 3
        assert await mock_vector_store.get_vectors_by_file_path("beta.md") is None
        assert any(m.startswith("Skipping beta.md due to error") for m, _ in recorder.messages)

    @pytest.mark.asyncio
    async def test_chunking_failure_is_counted(
        self,
        service: VectorizationService,
        chunk_cache: ChunkCache,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        original = chunk_cache.get_or_compute

        def flaky(text: str):
            if "garden shed" in text:
                raise ChunkingError(message="segmenter exploded")
            return original(text)

        monkeypatch.setattr(chunk_cache, "get_or_compute", flaky)
        result = await service.index_all()

        assert result.documents_failed == 1
        assert result.documents_processed == 3

    @pytest.mark.asyncio
    async def test_empty_vault_stores_nothing(
        self,
        tmp_path: Path,
        chunk_cache: ChunkCache,
        worker_proxy: WorkerProxy,
        mock_embedding_provider: MockEmbeddingProvider,
    ) -> None:
        empty = tmp_path / "empty_vault"
        empty.mkdir()
        service = VectorizationService(FileSystemDocumentSource(empty), chunk_cache, worker_proxy)
        recorder = _Recorder()

        result = await service.index_all(on_progress=recorder)

        assert result.total_vectors_processed == 0
        assert recorder.overall[-1] == "No new vectors to save from any notes."
        assert mock_embedding_provider.embed_calls == []

    @pytest.mark.asyncio
    async def test_async_progress_sink(self, service: VectorizationService) -> None:
        seen: list[str] = []

        async def sink(message: str, is_overall_progress: bool = False) -> None:
            seen.append(message)

        await service.index_all(on_progress=sink)
        assert seen[0] == "Starting vectorization for all notes..."


# ======================================================================
# index_one / reindex_document
# ======================================================================


class TestSingleDocument:
    @pytest.mark.asyncio
    async def test_index_one_returns_a_unit_vector(self, service: VectorizationService) -> None:
        vector = await service.index_one("beta.md")

        assert vector is not None
        assert len(vector) == 32
        assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0, rel_tol=1e-9)

    @pytest.mark.asyncio
    async def test_index_one_stores_nothing(
        self, service: VectorizationService, mock_vector_store: MockVectorStore
    ) -> None:
        await service.index_one("beta.md")
        assert await mock_vector_store.count() == 0

    @pytest.mark.asyncio
    async def test_index_one_uses_supplied_text(self, service: VectorizationService) -> None:
        from_disk = await service.index_one("beta.md")
        unsaved = await service.index_one("beta.md", text="Completely different content here.")
        assert from_disk != unsaved

    @pytest.mark.asyncio
    async def test_index_one_blank_is_none(
        self, service: VectorizationService, mock_embedding_provider: MockEmbeddingProvider
    ) -> None:
        assert await service.index_one("empty.md") is None
        assert mock_embedding_provider.embed_calls == []

    @pytest.mark.asyncio
    async def test_reindex_replaces_stored_chunks(
        self, service: VectorizationService, mock_vector_store: MockVectorStore
    ) -> None:
        first = await service.reindex_document("alpha.md")
        second = await service.reindex_document("alpha.md")

        assert first == second > 0
        assert len(await mock_vector_store.get_vectors_by_file_path("alpha.md") or []) == first

    @pytest.mark.asyncio
    async def test_reindex_blank_returns_zero(self, service: VectorizationService) -> None:
        assert await service.reindex_document("empty.md") == 0

    @pytest.mark.asyncio
    async def test_reindex_missing_document_raises(self, service: VectorizationService) -> None:
        with pytest.raises(DocumentReadError):
            await service.reindex_document("missing.md")
