"""Orchestrator for indexing notes into the vector store.

Pipeline stages: **read -> chunk -> embed -> store**.

:class:`VectorizationService` coordinates the document source, the chunk
cache and the embedding worker without any of them knowing about each
other.  Embedding and storage happen inside the worker; this side only
reads, chunks and ships :class:`~src.models.rag.ChunkRecord` batches.

# ─── HOW A FULL INDEXING RUN WORKS ────────────────────────────────────
#
#   list_documents() ──→ read (bounded concurrency) ──→ per document:
#       blank?          → skipped (reported, not an error)
#       read/chunk fails → failed  (logged, run continues)
#       otherwise       → records += build_records(path, text)
#
#   one vectorizeAndStore(records) call ──→ worker embeds + replaces the
#   stored chunks of every file in the batch
#
# Accumulating records across all documents before the worker call
# amortizes the embedding batch cost.  A failure of that final call is a
# backend failure and propagates to the caller.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

import structlog

from src.models.chunk import ChunkMetadata
from src.models.rag import ChunkRecord, IndexingResult
from src.pipeline.progress_tracker import ProgressCallback, ProgressReporter
from src.utils.concurrency import (
    DEFAULT_READ_CONCURRENCY,
    cooperative_yield,
    throttled_gather,
)
from src.utils.errors import ChunkingError, VectorSearchError

if TYPE_CHECKING:
    from src.interfaces.document_source import IDocumentSource
    from src.services.chunking.chunk_cache import ChunkCache
    from src.worker.proxy import WorkerProxy

logger = structlog.get_logger(logger_name=__name__)


class VectorizationService:
    """Reads, chunks and indexes notes through the embedding worker.

    Parameters
    ----------
    document_source:
        Where notes are listed and read from.
    chunk_cache:
        Memoized chunk assembly, shared with other services.
    worker:
        An initialized :class:`~src.worker.proxy.WorkerProxy`.
    index_note_titles:
        Also index each note's file name as an offset-less title chunk.
    read_concurrency:
        Maximum number of documents read at the same time.
    """

    def __init__(
        self,
        document_source: IDocumentSource,
        chunk_cache: ChunkCache,
        worker: WorkerProxy,
        index_note_titles: bool = False,
        read_concurrency: int = DEFAULT_READ_CONCURRENCY,
    ) -> None:
        self._source = document_source
        self._cache = chunk_cache
        self._worker = worker
        self._index_note_titles = index_note_titles
        self._read_concurrency = max(1, read_concurrency)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_records(self, file_path: str, text: str) -> list[ChunkRecord]:
        """Chunk *text* and attach *file_path* position metadata to each chunk.

        Raises
        ------
        ChunkingError
            If the text cannot be chunked.
        """
        chunks = self._cache.get_or_compute(text)
        if self._index_note_titles and chunks:
            title = self._cache.assembler.title_chunk(file_path)
            if title is not None:
                chunks.insert(0, title)

        records: list[ChunkRecord] = []
        for chunk in chunks:
            metadata = ChunkMetadata.for_chunk(file_path, chunk)
            records.append(
                ChunkRecord(
                    file_path=metadata.file_path,
                    chunk_offset_start=metadata.start_position,
                    chunk_offset_end=metadata.end_position,
                    text=chunk.text,
                )
            )
        return records

    async def index_all(self, on_progress: ProgressCallback | None = None) -> IndexingResult:
        """Index every document of the source in one worker batch.

        Parameters
        ----------
        on_progress:
            Optional sink receiving ``(message, is_overall_progress)``.

        Returns
        -------
        IndexingResult
            Actual counts: vectors the store reported, and documents
            processed, skipped (blank or chunkless) and failed.
        """
        started = time.monotonic()
        progress = ProgressReporter(on_progress)
        await progress.report("Starting vectorization for all notes...", is_overall_progress=True)

        paths = await self._source.list_documents()
        total = len(paths)
        logger.info("indexing_started", documents=total)

        contents = await throttled_gather(
            [self._source.read_document(path) for path in paths],
            semaphore=asyncio.Semaphore(self._read_concurrency),
        )

        records: list[ChunkRecord] = []
        processed = skipped = failed = 0

        for completed, (path, content) in enumerate(zip(paths, contents, strict=True), start=1):
            if isinstance(content, BaseException):
                if not isinstance(content, Exception):
                    raise content
                failed += 1
                logger.error("document_read_failed", file_path=path, error=str(content))
                await progress.report(f"Skipping {path} due to error: {content}")
            elif not content.strip():
                skipped += 1
                logger.debug("document_skipped_empty", file_path=path)
            else:
                try:
                    document_records = self.build_records(path, content)
                except (VectorSearchError, ValueError) as exc:
                    failed += 1
                    logger.error("document_chunking_failed", file_path=path, error=str(exc))
                    await progress.report(f"Skipping {path} due to error: {exc}")
                else:
                    if document_records:
                        records.extend(document_records)
                        processed += 1
                    else:
                        skipped += 1
                        logger.debug("document_skipped_no_chunks", file_path=path)

            await progress.report_document(completed, total, path)
            await cooperative_yield()

        stored = 0
        if records:
            await progress.report(
                f"Vectorizing and storing {len(records)} chunks...", is_overall_progress=True
            )
            stored = await self._worker.vectorize_and_store(records)
            await progress.report(
                f"Stored {stored} vectors from {processed} notes.", is_overall_progress=True
            )
        else:
            await progress.report("No new vectors to save from any notes.", is_overall_progress=True)

        logger.info(
            "indexing_complete",
            vectors=stored,
            processed=processed,
            skipped=skipped,
            failed=failed,
            elapsed_s=round(time.monotonic() - started, 2),
        )
        return IndexingResult(
            total_vectors_processed=stored,
            documents_processed=processed,
            documents_skipped=skipped,
            documents_failed=failed,
        )

    async def index_one(self, file_path: str, text: str | None = None) -> list[float] | None:
        """Return one averaged vector for a single document, without storing it.

        *text* may supply unsaved content; otherwise the document is read
        from the source.  Returns ``None`` for blank or chunkless content.
        """
        if text is None:
            text = await self._source.read_document(file_path)
        if not text.strip():
            logger.debug("document_vector_skipped_empty", file_path=file_path)
            return None

        records = self.build_records(file_path, text)
        if not records:
            logger.debug("document_vector_skipped_no_chunks", file_path=file_path)
            return None

        vectors = await self._worker.vectorize_sentences([record.text for record in records])
        if not vectors:
            logger.warning("document_vector_empty_embedding", file_path=file_path)
            return None
        return await self._worker.average_vectors(vectors)

    async def reindex_document(self, file_path: str) -> int:
        """Re-chunk and re-store one document, replacing its stored chunks.

        Returns the number of vectors stored; ``0`` for blank documents.
        """
        text = await self._source.read_document(file_path)
        if not text.strip():
            logger.info("reindex_skipped_empty", file_path=file_path)
            return 0
        try:
            records = self.build_records(file_path, text)
        except ValueError as exc:
            raise ChunkingError(message=f"Cannot chunk {file_path}: {exc}") from exc

        stored = await self._worker.vectorize_and_store(records)
        logger.info("document_reindexed", file_path=file_path, vectors=stored)
        return stored
