"""Abstract base class for vector-store service providers.

Defines the contract for storing, querying, and managing embedded chunk
records.  Implementations may wrap ChromaDB (local/free) or any other
vector database.  Only the worker talks to the store; the rest of the
application reaches it through worker messages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import ChunkRecord, OperationResult, SimilarityResultItem


# Concrete implementation: ChromaDBProvider (src/providers/vector_store/)
# ChromaDB persists to CHROMADB_PERSIST_DIR (default: ./data/chromadb) and
# builds an HNSW index with cosine distance.
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the worker.

    All query and mutation methods are async so that a disk- or
    network-backed store never blocks the event loop.
    """

    @abstractmethod
    async def upsert(
        self,
        records: list[ChunkRecord],
        embeddings: list[list[float]],
    ) -> int:
        """Insert or overwrite pre-embedded chunk records.

        Parameters
        ----------
        records:
            The chunk records to store.  A record's identity is its
            ``(file_path, chunk_offset_start, chunk_offset_end)`` triple.
        embeddings:
            Embedding vectors corresponding positionally to *records*.

        Returns
        -------
        int
            The number of records the store accepted.

        Raises
        ------
        ValueError
            If ``len(records) != len(embeddings)``.
        src.utils.errors.BackendError
            If the store operation fails.
        """

    @abstractmethod
    async def replace_file_chunks(
        self,
        records: list[ChunkRecord],
        embeddings: list[list[float]],
    ) -> int:
        """Replace every stored chunk of the files that *records* touch.

        Chunks of an affected file that are absent from *records* (e.g.
        because the document got shorter) are deleted.

        Returns
        -------
        int
            The number of records stored.
        """

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        limit: int,
        exclude_file_paths: list[str] | None = None,
    ) -> list[SimilarityResultItem]:
        """Return the *limit* nearest chunks to *vector*.

        Parameters
        ----------
        vector:
            The query vector.
        limit:
            Maximum number of results.
        exclude_file_paths:
            Chunks from these files are never returned, however close.

        Returns
        -------
        list[SimilarityResultItem]
            Hits ordered by ascending distance, in the store's own order.
        """

    @abstractmethod
    async def get_vectors_by_file_path(self, file_path: str) -> list[list[float]] | None:
        """Return every stored vector for *file_path*, or ``None`` if none."""

    @abstractmethod
    async def rebuild(self) -> None:
        """Drop all stored data and recreate an empty collection."""

    @abstractmethod
    async def ensure_indexes(self) -> OperationResult:
        """Make sure the collection and its similarity index exist."""

    @abstractmethod
    async def close(self) -> None:
        """Release the store.  Later calls raise ``BackendError``."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored chunk records."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this vector-store provider.

        Example return value: ``"chromadb"``.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the store is open and reachable."""
