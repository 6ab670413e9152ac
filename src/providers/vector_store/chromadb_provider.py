"""ChromaDB vector store provider adapter.

Wraps `chromadb.PersistentClient` to implement :class:`IVectorStoreProvider`.
Uses an HNSW index with cosine distance for similarity search.  Fully
local, free, and Python-native - no external service required.

Each stored record is one chunk of one file:

    id        sha256("<file_path>:<start>:<end>")
    document  chunk text
    metadata  {file_path, chunk_offset_start, chunk_offset_end}
    embedding pre-computed by the worker (never by ChromaDB)
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from typing import Any

# Disable ChromaDB telemetry completely before importing chromadb.
# ChromaDB uses PostHog for anonymous telemetry, but a version mismatch
# between ChromaDB's bundled PostHog client and the installed version
# causes "capture() takes 1 positional argument but 3 were given" errors.
# Three layers of defense:
#   1. ANONYMIZED_TELEMETRY env var - respected by some ChromaDB versions
#   2. posthog.disabled = True - disables the PostHog SDK directly
#   3. Settings(anonymized_telemetry=False) - passed to PersistentClient
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import posthog

posthog.disabled = True

import chromadb
import structlog

from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord, OperationResult, SimilarityResultItem
from src.utils.errors import BackendError

logger = structlog.get_logger(logger_name=__name__)

# ChromaDB builds internal structures proportional to the batch; paginate.
_UPSERT_BATCH_SIZE = 500
# Keeps `$in` filters well under SQLite's bind-parameter ceiling.
_DELETE_BATCH_SIZE = 500


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    The worker always passes pre-computed embeddings, so ChromaDB's
    built-in embedding is never invoked.  Without this, ChromaDB downloads
    and loads its default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "Embeddings are pre-computed by the worker; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


def record_id(file_path: str, start: int, end: int) -> str:
    """Return the stable primary key for a chunk of *file_path*."""
    return hashlib.sha256(f"{file_path}:{start}:{end}".encode("utf-8")).hexdigest()


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Parameters
    ----------
    persist_directory:
        Directory for ChromaDB's on-disk data.
    collection_name:
        Name of the collection holding chunk records.
    dimension:
        Expected vector length.  :meth:`ensure_indexes` refuses a
        collection whose stored vectors have a different length.
    hnsw_m, hnsw_ef_construction, hnsw_ef_search:
        HNSW index parameters, applied when the collection is created.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_name: str = "embeddings",
        dimension: int | None = None,
        hnsw_m: int = 8,
        hnsw_ef_construction: int = 64,
        hnsw_ef_search: int = 220,
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_name = collection_name
        self._dimension = dimension
        self._collection_metadata = {
            "hnsw:space": "cosine",
            "hnsw:M": hnsw_m,
            "hnsw:construction_ef": hnsw_ef_construction,
            "hnsw:search_ef": hnsw_ef_search,
        }
        self._client: Any = None
        self._collection: Any = None
        self._open()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _open(self) -> None:
        try:
            if self._client is None:
                # Telemetry off via Settings as well; the env var alone is
                # insufficient for some ChromaDB versions.
                self._client = chromadb.PersistentClient(
                    path=self._persist_directory,
                    settings=chromadb.config.Settings(anonymized_telemetry=False),
                )
            self._collection = self._get_or_create_collection()
        except Exception as exc:
            raise BackendError(
                message=f"Failed to open ChromaDB at {self._persist_directory}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def _get_or_create_collection(self) -> Any:
        # Newer ChromaDB versions refuse an embedding function that differs
        # from the persisted one; fall back to whatever was persisted, which
        # is fine because every embedding is pre-computed anyway.
        try:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata=self._collection_metadata,
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            return self._client.get_or_create_collection(
                name=self._collection_name,
                metadata=self._collection_metadata,
            )

    def _require_collection(self) -> Any:
        if self._collection is None:
            raise BackendError(
                message="Vector store is closed",
                provider_name=self.get_provider_name(),
            )
        return self._collection

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(
        self,
        records: list[ChunkRecord],
        embeddings: list[list[float]],
    ) -> int:
        """Upsert pre-embedded chunk records in bounded batches."""
        if len(records) != len(embeddings):
            raise ValueError(
                f"records and embeddings length mismatch: {len(records)} != {len(embeddings)}"
            )
        if not records:
            return 0

        collection = self._require_collection()

        # ChromaDB rejects duplicate ids within one call; the last one wins.
        unique: dict[str, tuple[ChunkRecord, list[float]]] = {}
        for record, embedding in zip(records, embeddings, strict=True):
            key = record_id(record.file_path, record.chunk_offset_start, record.chunk_offset_end)
            unique[key] = (record, embedding)
        items = list(unique.items())

        try:
            total_stored = 0
            for start in range(0, len(items), _UPSERT_BATCH_SIZE):
                batch = items[start : start + _UPSERT_BATCH_SIZE]
                await asyncio.to_thread(
                    collection.upsert,
                    ids=[key for key, _ in batch],
                    embeddings=[embedding for _, (_, embedding) in batch],
                    documents=[record.text for _, (record, _) in batch],
                    metadatas=[self._record_to_metadata(record) for _, (record, _) in batch],
                )
                total_stored += len(batch)

            logger.info(
                "chromadb_upsert",
                count=total_stored,
                batches=(len(items) + _UPSERT_BATCH_SIZE - 1) // _UPSERT_BATCH_SIZE,
            )
            return total_stored

        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def replace_file_chunks(
        self,
        records: list[ChunkRecord],
        embeddings: list[list[float]],
    ) -> int:
        """Delete every stored chunk of the affected files, then upsert."""
        if len(records) != len(embeddings):
            raise ValueError(
                f"records and embeddings length mismatch: {len(records)} != {len(embeddings)}"
            )
        if not records:
            return 0

        collection = self._require_collection()
        file_paths = list(dict.fromkeys(record.file_path for record in records))
        try:
            for start in range(0, len(file_paths), _DELETE_BATCH_SIZE):
                batch = file_paths[start : start + _DELETE_BATCH_SIZE]
                await asyncio.to_thread(collection.delete, where={"file_path": {"$in": batch}})
        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB delete before replace failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_replaced_files", files=len(file_paths))
        return await self.upsert(records, embeddings)

    async def query(
        self,
        vector: list[float],
        limit: int,
        exclude_file_paths: list[str] | None = None,
    ) -> list[SimilarityResultItem]:
        """Return the nearest chunks in ChromaDB's own (ascending distance) order.

        Excluded files are filtered inside the query with ``$nin`` rather
        than afterwards, so excluding the closest match never shrinks the
        result below *limit* when enough other chunks exist.
        """
        if not vector or limit <= 0:
            return []

        collection = self._require_collection()
        try:
            total = await asyncio.to_thread(collection.count)
            if total == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(limit, total),
                "include": ["documents", "metadatas", "distances"],
            }
            if exclude_file_paths:
                kwargs["where"] = {"file_path": {"$nin": list(exclude_file_paths)}}

            results = await asyncio.to_thread(collection.query, **kwargs)
        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        if not ids:
            return []
        documents = results["documents"][0] if results.get("documents") else [None] * len(ids)
        metadatas = results["metadatas"][0] if results.get("metadatas") else [{}] * len(ids)
        distances = results["distances"][0] if results.get("distances") else [0.0] * len(ids)

        hits = [
            SimilarityResultItem(
                id=chunk_id,
                file_path=str(meta.get("file_path", "")),
                chunk_offset_start=int(meta.get("chunk_offset_start", -1)),
                chunk_offset_end=int(meta.get("chunk_offset_end", -1)),
                # Cosine distance can dip just below zero from rounding.
                distance=max(0.0, float(distance)),
                text=text,
            )
            for chunk_id, text, meta, distance in zip(
                ids, documents, metadatas, distances, strict=True
            )
        ]

        logger.info(
            "chromadb_query",
            results_count=len(hits),
            excluded_files=len(exclude_file_paths or []),
            top_distance=hits[0].distance if hits else None,
        )
        return hits

    async def get_vectors_by_file_path(self, file_path: str) -> list[list[float]] | None:
        collection = self._require_collection()
        try:
            stored = await asyncio.to_thread(
                collection.get, where={"file_path": file_path}, include=["embeddings"]
            )
        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB get_vectors_by_file_path failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        embeddings = stored.get("embeddings") if stored else None
        # May be a numpy array; avoid truthiness checks on it.
        if embeddings is None or len(embeddings) == 0:
            return None
        return [[float(x) for x in embedding] for embedding in embeddings]

    async def rebuild(self) -> None:
        """Drop the collection and recreate it empty."""
        if self._client is None:
            self._open()
        try:
            await asyncio.to_thread(self._recreate_collection)
        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB rebuild failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chromadb_rebuilt", collection=self._collection_name)

    async def ensure_indexes(self) -> OperationResult:
        """(Re)open the collection and check stored vector dimensions.

        ChromaDB maintains its HNSW index automatically, so "ensuring
        indexes" means making sure the collection exists and that its
        vectors match the configured dimension.  A closed store is
        reopened.
        """
        try:
            count = await asyncio.to_thread(self._open_and_validate)
        except BackendError as exc:
            logger.error("chromadb_ensure_indexes_failed", error=exc.message)
            return OperationResult(success=False, message=exc.message)
        except Exception as exc:
            logger.error("chromadb_ensure_indexes_failed", error=str(exc))
            return OperationResult(success=False, message=f"ChromaDB ensure_indexes failed: {exc}")

        message = f"Collection '{self._collection_name}' ready ({count} chunks)"
        logger.info("chromadb_indexes_ready", collection=self._collection_name, chunks=count)
        return OperationResult(success=True, message=message)

    async def close(self) -> None:
        """Release the collection handle.  Later calls raise BackendError."""
        self._collection = None
        self._client = None
        logger.info("chromadb_closed", collection=self._collection_name)

    async def count(self) -> int:
        collection = self._require_collection()
        try:
            return await asyncio.to_thread(collection.count)
        except Exception as exc:
            raise BackendError(
                message=f"ChromaDB count failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "chromadb"

    def is_available(self) -> bool:
        """Return ``True`` if the ChromaDB collection is accessible."""
        if self._collection is None:
            return False
        try:
            self._collection.count()
            return True
        except Exception:
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _recreate_collection(self) -> None:
        existing = {getattr(c, "name", c) for c in self._client.list_collections()}
        if self._collection_name in existing:
            self._client.delete_collection(name=self._collection_name)
        self._collection = self._get_or_create_collection()

    def _open_and_validate(self) -> int:
        if self._collection is None:
            self._open()
        count = self._collection.count()
        self._validate_dimension(count)
        return count

    def _validate_dimension(self, count: int) -> None:
        """Fail loudly if stored vectors do not match the configured dimension.

        A mismatch means every query would produce garbage results.
        """
        if self._dimension is None or count == 0:
            return
        sample = self._collection.peek(limit=1)
        embeddings = sample.get("embeddings") if sample else None
        if embeddings is None or len(embeddings) == 0:
            return
        stored_dim = len(embeddings[0])
        if stored_dim != self._dimension:
            logger.error(
                "embedding_dimension_mismatch",
                stored_dim=stored_dim,
                expected_dim=self._dimension,
            )
            raise BackendError(
                message=(
                    f"Embedding dimension mismatch: store has {stored_dim}-dim vectors "
                    f"but {self._dimension} are configured. Rebuild the store or set "
                    f"EMBEDDING_DIMENSION={stored_dim}."
                ),
                provider_name=self.get_provider_name(),
            )

    @staticmethod
    def _record_to_metadata(record: ChunkRecord) -> dict[str, Any]:
        return {
            "file_path": record.file_path,
            "chunk_offset_start": record.chunk_offset_start,
            "chunk_offset_end": record.chunk_offset_end,
        }
