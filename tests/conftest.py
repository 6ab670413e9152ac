"""Shared pytest fixtures for the local-vector-search test suite."""

from __future__ import annotations

import hashlib
import math
import struct
from pathlib import Path

import pytest
import pytest_asyncio

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.models.rag import ChunkRecord, OperationResult, SimilarityResultItem
from src.providers.documents.filesystem_source import FileSystemDocumentSource
from src.services.chunking.chunk_cache import ChunkCache
from src.services.chunking.chunker import ChunkAssembler
from src.services.chunking.segmenter import SentenceSegmenter
from src.utils.errors import BackendError
from src.worker.channels import InProcessWorkerChannel
from src.worker.proxy import WorkerProxy
from src.worker.server import WorkerServer

# ---------------------------------------------------------------------------
# Embedding fixtures
# ---------------------------------------------------------------------------

EMBEDDING_DIM = 32


def hash_to_vector(text: str, dim: int = EMBEDDING_DIM) -> list[float]:
    """Generate a deterministic fixed-length vector by hashing *text*.

    Uses SHA-256 to hash the text, then unpacks bytes into floats and
    normalises to unit length.  Deterministic - same text always produces
    the same vector.
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    raw = digest
    while len(raw) < dim * 2:
        raw += hashlib.sha256(raw).digest()
    raw = raw[: dim * 2]
    # Signed 16-bit ints avoid the NaN/inf patterns raw float bytes can hit.
    values = [float(v) for v in struct.unpack(f"<{dim}h", raw)]
    magnitude = max(math.sqrt(sum(v * v for v in values)), 1e-10)
    return [v / magnitude for v in values]


class MockEmbeddingProvider(IEmbeddingProvider):
    """In-memory deterministic embedding provider for tests."""

    def __init__(self, dimension: int = EMBEDDING_DIM) -> None:
        self._dimension = dimension
        self.warm_up_calls = 0
        self.embed_calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.embed_calls.append(list(texts))
        return [hash_to_vector(t, self._dimension) for t in texts]

    async def embed_single(self, text: str) -> list[float]:
        return hash_to_vector(text, self._dimension)

    async def warm_up(self) -> None:
        self.warm_up_calls += 1

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return "mock-embedding"

    def is_available(self) -> bool:
        return True


# ---------------------------------------------------------------------------
# Vector store fixtures
# ---------------------------------------------------------------------------


class MockVectorStore(IVectorStoreProvider):
    """In-memory vector store backed by a dict.

    Ranks by cosine distance with insertion order breaking ties, and
    applies file exclusions before the limit, like the real store.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[ChunkRecord, list[float]]] = {}
        self.closed = False
        self.rebuild_calls = 0

    def _check_open(self) -> None:
        if self.closed:
            raise BackendError(message="Vector store is closed", provider_name="mock")

    async def upsert(self, records: list[ChunkRecord], embeddings: list[list[float]]) -> int:
        self._check_open()
        if len(records) != len(embeddings):
            raise ValueError("records and embeddings length mismatch")
        for record, embedding in zip(records, embeddings, strict=True):
            key = f"{record.file_path}:{record.chunk_offset_start}:{record.chunk_offset_end}"
            self._store[key] = (record, embedding)
        return len(records)

    async def replace_file_chunks(
        self, records: list[ChunkRecord], embeddings: list[list[float]]
    ) -> int:
        self._check_open()
        paths = {record.file_path for record in records}
        self._store = {k: v for k, v in self._store.items() if v[0].file_path not in paths}
        return await self.upsert(records, embeddings)

    async def query(
        self,
        vector: list[float],
        limit: int,
        exclude_file_paths: list[str] | None = None,
    ) -> list[SimilarityResultItem]:
        self._check_open()
        excluded = set(exclude_file_paths or [])
        scored = []
        for key, (record, embedding) in self._store.items():
            if record.file_path in excluded:
                continue
            dot = sum(a * b for a, b in zip(vector, embedding, strict=False))
            scored.append((max(0.0, 1.0 - dot), key, record))
        scored.sort(key=lambda item: item[0])
        return [
            SimilarityResultItem(
                id=key,
                file_path=record.file_path,
                chunk_offset_start=record.chunk_offset_start,
                chunk_offset_end=record.chunk_offset_end,
                distance=distance,
                text=record.text,
            )
            for distance, key, record in scored[:limit]
        ]

    async def get_vectors_by_file_path(self, file_path: str) -> list[list[float]] | None:
        self._check_open()
        vectors = [emb for record, emb in self._store.values() if record.file_path == file_path]
        return vectors or None

    async def rebuild(self) -> None:
        self._store.clear()
        self.closed = False
        self.rebuild_calls += 1

    async def ensure_indexes(self) -> OperationResult:
        self.closed = False
        return OperationResult(success=True, message=f"ready ({len(self._store)} chunks)")

    async def close(self) -> None:
        self.closed = True

    async def count(self) -> int:
        self._check_open()
        return len(self._store)

    def get_provider_name(self) -> str:
        return "mock-vector-store"

    def is_available(self) -> bool:
        return not self.closed


@pytest.fixture
def mock_embedding_provider() -> MockEmbeddingProvider:
    """Mock IEmbeddingProvider returning deterministic hash-based vectors."""
    return MockEmbeddingProvider()


@pytest.fixture
def mock_vector_store() -> MockVectorStore:
    """Mock IVectorStoreProvider backed by an in-memory dict."""
    return MockVectorStore()


# ---------------------------------------------------------------------------
# Settings / chunking fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Settings isolated from the developer's environment and .env file."""
    monkeypatch.chdir(tmp_path)
    return Settings(
        vault_path=str(tmp_path / "vault"),
        chromadb_persist_dir=str(tmp_path / "chroma"),
        embedding_dimension=EMBEDDING_DIM,
    )


@pytest.fixture
def chunk_cache() -> ChunkCache:
    assembler = ChunkAssembler(SentenceSegmenter(), max_chunk_characters=200)
    return ChunkCache(assembler)


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """A small vault of linked Markdown notes."""
    root = tmp_path / "vault"
    (root / "projects").mkdir(parents=True)
    (root / "archive").mkdir()
    (root / ".obsidian").mkdir()

    (root / "alpha.md").write_text(
        "---\ntags: [sleep]\n---\n"
        "Sleep consolidates memory. Deep sleep helps the brain file away facts.\n"
        "See [[beta]] and [the plan](projects/Plan%20A.md).\n",
        encoding="utf-8",
    )
    (root / "beta.md").write_text(
        "Memory research often studies sleep. Naps can help too!\n",
        encoding="utf-8",
    )
    (root / "projects" / "Plan A.md").write_text(
        "Plan: build a garden shed. Buy wood first. Links back to [[alpha|the alpha note]].\n",
        encoding="utf-8",
    )
    (root / "archive" / "old.md").write_text(
        "Old notes about sleep and memory from last year.\n",
        encoding="utf-8",
    )
    (root / "empty.md").write_text("   \n\n", encoding="utf-8")
    (root / ".obsidian" / "hidden.md").write_text("Never listed.", encoding="utf-8")
    (root / "image.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture
def document_source(vault: Path) -> FileSystemDocumentSource:
    return FileSystemDocumentSource(vault)


# ---------------------------------------------------------------------------
# Worker fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def worker_server(
    mock_embedding_provider: MockEmbeddingProvider,
    mock_vector_store: MockVectorStore,
) -> WorkerServer:
    return WorkerServer(
        embedding_provider=mock_embedding_provider,
        vector_store=mock_vector_store,
        dimension=EMBEDDING_DIM,
    )


@pytest_asyncio.fixture
async def worker_proxy(worker_server: WorkerServer):
    """An initialized proxy talking to an in-process worker server."""
    channel = InProcessWorkerChannel(worker_server)
    await channel.start()
    proxy = WorkerProxy(channel, call_timeout=5.0, init_timeout=5.0)
    await proxy.initialize()
    yield proxy
    await proxy.terminate()
