"""local-vector-search application wiring.

Builds providers, the embedding worker and the services from a
:class:`~src.config.settings.Settings` instance.  Both the CLI and the
subprocess worker entry point (``python -m src.worker``) assemble their
components here, so the same configuration always yields the same
embedding model and vector store.

# ─── COMPONENT GRAPH ──────────────────────────────────────────────────
#
#   caller side                         worker side
#   ───────────                         ───────────
#   VectorizationService ─┐
#   RetrievalService ─────┼─→ WorkerProxy ══channel══→ WorkerServer
#   StorageService ───────┘                              ├─ IEmbeddingProvider
#                                                        └─ ChromaDBProvider
#   ChunkCache (shared by the services)
#   FileSystemDocumentSource
#
# The channel is either in-process (queues, one event loop) or a child
# process speaking JSON lines (settings.worker_mode).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.providers.documents.filesystem_source import FileSystemDocumentSource
from src.providers.vector_store.chromadb_provider import ChromaDBProvider
from src.services.chunking.chunk_cache import ChunkCache
from src.services.chunking.chunker import ChunkAssembler
from src.services.chunking.segmenter import SentenceSegmenter
from src.services.retrieval_service import RetrievalService
from src.services.storage_service import StorageService
from src.services.vectorization_service import VectorizationService
from src.utils.errors import ConfigurationError, WorkerError
from src.worker.channels import InProcessWorkerChannel, SubprocessWorkerChannel
from src.worker.proxy import WorkerProxy
from src.worker.server import WorkerServer

logger = structlog.get_logger(logger_name=__name__)

_EMBEDDING_CHOICES = ("auto", "fastembed", "sentence-transformers", "openai")


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider named in settings, or the first available.

    Priority for ``"auto"``: FastEmbed (ONNX, no PyTorch) ->
    SentenceTransformer (PyTorch) -> OpenAI-compatible (if API key set).

    Imports are deferred so a missing optional dependency only matters
    when that provider is actually chosen.
    """
    choice = app_settings.embedding_provider.lower()
    if choice not in _EMBEDDING_CHOICES:
        raise ConfigurationError(
            message=f"Unknown embedding_provider '{choice}' "
            f"(expected one of: {', '.join(_EMBEDDING_CHOICES)})"
        )
    model_name = app_settings.embedding_model or None

    if choice in ("auto", "fastembed"):
        from src.providers.embedding.fastembed_embedding_provider import (
            FastEmbedEmbeddingProvider,
        )

        provider: IEmbeddingProvider = FastEmbedEmbeddingProvider(model_name=model_name)
        if provider.is_available():
            return provider
        if choice == "fastembed":
            raise ConfigurationError(message="fastembed is not installed")

    if choice in ("auto", "sentence-transformers"):
        from src.providers.embedding.sentence_transformer_embedding_provider import (
            SentenceTransformerEmbeddingProvider,
        )

        provider = SentenceTransformerEmbeddingProvider(model_name=model_name)
        if provider.is_available():
            return provider
        if choice == "sentence-transformers":
            raise ConfigurationError(message="sentence-transformers is not installed")

    from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if provider.is_available():
        return provider

    raise ConfigurationError(
        message=(
            "No embedding provider available. Install fastembed or "
            "sentence-transformers, or set OPENAI_API_KEY."
        )
    )


def build_vector_store(
    app_settings: Settings,
    embedding_provider: IEmbeddingProvider | None = None,
) -> ChromaDBProvider:
    """Open the ChromaDB store configured in settings.

    When *embedding_provider* is given, its native dimension must be at
    least ``embedding_dimension``; vectors can be truncated but not padded.
    """
    if (
        embedding_provider is not None
        and embedding_provider.get_dimension() < app_settings.embedding_dimension
    ):
        raise ConfigurationError(
            message=(
                f"{embedding_provider.get_provider_name()} produces "
                f"{embedding_provider.get_dimension()}-dim vectors but "
                f"embedding_dimension is {app_settings.embedding_dimension}"
            )
        )
    return ChromaDBProvider(
        persist_directory=app_settings.chromadb_persist_dir,
        collection_name=app_settings.chromadb_collection,
        dimension=app_settings.embedding_dimension,
        hnsw_m=app_settings.hnsw_m,
        hnsw_ef_construction=app_settings.hnsw_ef_construction,
        hnsw_ef_search=app_settings.hnsw_ef_search,
    )


def build_worker_server(app_settings: Settings) -> WorkerServer:
    """Assemble the worker side: embedding provider plus vector store."""
    embedding_provider = build_embedding_provider(app_settings)
    vector_store = build_vector_store(app_settings, embedding_provider)
    logger.info(
        "worker_server_built",
        embedding=embedding_provider.get_provider_name(),
        store=vector_store.get_provider_name(),
        dimension=app_settings.embedding_dimension,
    )
    return WorkerServer(
        embedding_provider=embedding_provider,
        vector_store=vector_store,
        dimension=app_settings.embedding_dimension,
    )


def build_chunk_cache(app_settings: Settings) -> ChunkCache:
    segmenter = SentenceSegmenter(
        max_sentence_characters=app_settings.max_sentence_characters,
        min_sentence_characters=app_settings.min_sentence_characters,
    )
    assembler = ChunkAssembler(
        segmenter=segmenter,
        max_chunk_characters=app_settings.max_chunk_characters,
        remove_frontmatter=app_settings.remove_frontmatter,
        remove_urls=app_settings.remove_urls,
    )
    return ChunkCache(
        assembler,
        ttl_seconds=app_settings.chunk_cache_ttl_seconds,
        max_entries=app_settings.chunk_cache_max_entries,
    )


# ---------------------------------------------------------------------------
# Worker lifecycle
# ---------------------------------------------------------------------------


async def start_worker(
    app_settings: Settings,
    config_path: str | None = None,
    on_worker_message: Callable[..., Any] | None = None,
) -> WorkerProxy:
    """Start the embedding worker and complete the initialize handshake.

    Parameters
    ----------
    app_settings:
        Chooses the transport (``worker_mode``) and the call timeouts.
    config_path:
        YAML file handed to a subprocess worker so it loads the same
        configuration.
    on_worker_message:
        Receives the worker's unsolicited status messages.
    """
    if app_settings.worker_mode == "subprocess":
        channel: InProcessWorkerChannel | SubprocessWorkerChannel = SubprocessWorkerChannel(
            config_path=config_path
        )
    else:
        channel = InProcessWorkerChannel(build_worker_server(app_settings))
    await channel.start()

    proxy = WorkerProxy(
        channel,
        call_timeout=app_settings.worker_call_timeout_seconds,
        init_timeout=app_settings.worker_init_timeout_seconds,
        on_worker_message=on_worker_message,
    )
    try:
        result = await proxy.initialize()
    except BaseException:
        await proxy.terminate()
        raise
    logger.info(
        "worker_ready",
        mode=app_settings.worker_mode,
        provider=result.provider_name,
        dimension=result.dimension,
    )
    return proxy


# ---------------------------------------------------------------------------
# Service bundle
# ---------------------------------------------------------------------------


@dataclass
class AppServices:
    """Everything a command needs, plus orderly shutdown."""

    settings: Settings
    worker: WorkerProxy
    chunk_cache: ChunkCache
    document_source: FileSystemDocumentSource
    vectorization: VectorizationService
    retrieval: RetrievalService
    storage: StorageService

    async def shutdown(self) -> None:
        """Close the vector store, then stop the worker."""
        try:
            await self.storage.close()
        except WorkerError as exc:
            logger.warning("storage_close_failed", error=str(exc))
        await self.worker.terminate()


async def build_services(
    app_settings: Settings,
    config_path: str | None = None,
    on_worker_message: Callable[..., Any] | None = None,
) -> AppServices:
    """Construct every service for a vault and start the worker."""
    document_source = FileSystemDocumentSource(app_settings.vault_path)
    chunk_cache = build_chunk_cache(app_settings)
    worker = await start_worker(
        app_settings, config_path=config_path, on_worker_message=on_worker_message
    )

    vectorization = VectorizationService(
        document_source=document_source,
        chunk_cache=chunk_cache,
        worker=worker,
        index_note_titles=app_settings.index_note_titles,
    )
    retrieval = RetrievalService(
        worker=worker,
        document_source=document_source,
        search_result_limit=app_settings.search_result_limit,
        related_chunks_result_limit=app_settings.related_chunks_result_limit,
        exclude_outgoing_links=app_settings.exclude_outgoing_links_from_related_chunks,
        exclude_backlinks=app_settings.exclude_backlinks_from_related_chunks,
        enable_user_ignore_filters=app_settings.enable_user_ignore_filters,
        user_ignore_filters=app_settings.user_ignore_filters,
    )
    storage = StorageService(worker=worker, chunk_cache=chunk_cache)

    return AppServices(
        settings=app_settings,
        worker=worker,
        chunk_cache=chunk_cache,
        document_source=document_source,
        vectorization=vectorization,
        retrieval=retrieval,
        storage=storage,
    )
