"""Public interface definitions for all external collaborators.

Every external library or service in the pipeline is accessed exclusively
through the abstract base classes defined in this package.  Concrete
adapters implement these interfaces and are injected at runtime.

ADAPTER PATTERN EXPLAINED:
    Instead of calling ``chromadb.PersistentClient(...)`` directly in the
    worker, the worker calls ``vector_store.query(...)`` where
    ``vector_store`` is any object implementing ``IVectorStoreProvider``.
    This means:
        - Swapping fastembed for sentence-transformers changes ONE line
          (the provider choice in src/main.py).
        - Unit tests inject fakes or mocks instead of loading real models.
        - Several providers can be tried in priority order (fallback chains).

CONCRETE PROVIDER MAP:
    Interface                  →  Concrete implementations
    ─────────────────────────────────────────────────────────────────────
    IEmbeddingProvider         →  FastEmbedEmbeddingProvider,
                                  SentenceTransformerEmbeddingProvider,
                                  OpenAIEmbeddingProvider
    IVectorStoreProvider       →  ChromaDBProvider
    IDocumentSource            →  FileSystemDocumentSource
    IWorkerChannel             →  InProcessWorkerChannel,
                                  SubprocessWorkerChannel, StdioChannel
"""

from src.interfaces.document_source import IDocumentSource
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.interfaces.worker_channel import IWorkerChannel

__all__ = [
    "IDocumentSource",
    "IEmbeddingProvider",
    "IVectorStoreProvider",
    "IWorkerChannel",
]
