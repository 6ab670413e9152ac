"""Worker-side request handling.

:class:`WorkerServer` owns the embedding provider and the vector store.
It reads requests from a channel, runs each one in its own task, and
answers with the paired response type (or ``error``) under the request's
id.  Because every request gets its own task, replies may leave in a
different order than requests arrived.

Until an ``initialize`` request succeeds, every other request is answered
with an ``error`` reply.  Initialization loads the embedding model and
makes sure the vector store's collection and index exist.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import ValidationError

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.interfaces.vector_store_provider import IVectorStoreProvider
from src.interfaces.worker_channel import IWorkerChannel
from src.models.rag import OperationResult
from src.utils.errors import BackendError, WorkerNotInitializedError
from src.utils.vectors import average_vectors, truncate_and_normalize
from src.worker.protocol import (
    ERROR_TYPE,
    STATUS_TYPE,
    AverageVectorsRequest,
    AverageVectorsResult,
    ErrorPayload,
    GetVectorsByFilePathRequest,
    GetVectorsByFilePathResult,
    InitializeResult,
    RequestType,
    SearchRequest,
    SearchResult,
    StatusPayload,
    VectorizeAndStoreRequest,
    VectorizeAndStoreResult,
    VectorizeSentencesRequest,
    VectorizeSentencesResult,
    WorkerMessage,
    operation_result_to_wire,
    response_type_for,
)

logger = structlog.get_logger(logger_name=__name__)

_Handler = Callable[[Any], Awaitable[Any]]


class WorkerServer:
    """Executes embedding and storage requests received over a channel.

    Parameters
    ----------
    embedding_provider:
        Produces raw embedding vectors.
    vector_store:
        Persists and queries chunk vectors.
    dimension:
        Every vector is truncated to this many components, then
        L2-normalized, before it is returned or stored.
    """

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        vector_store: IVectorStoreProvider,
        dimension: int,
    ) -> None:
        self._embedding = embedding_provider
        self._store = vector_store
        self._dimension = dimension
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._channel: IWorkerChannel | None = None
        self._handlers: dict[RequestType, _Handler] = {
            RequestType.INITIALIZE: self._handle_initialize,
            RequestType.VECTORIZE_SENTENCES: self._handle_vectorize_sentences,
            RequestType.AVERAGE_VECTORS: self._handle_average_vectors,
            RequestType.VECTORIZE_AND_STORE: self._handle_vectorize_and_store,
            RequestType.SEARCH: self._handle_search,
            RequestType.GET_VECTORS_BY_FILE_PATH: self._handle_get_vectors_by_file_path,
            RequestType.REBUILD_DB: self._handle_rebuild_db,
            RequestType.ENSURE_INDEXES: self._handle_ensure_indexes,
            RequestType.CLOSE_DB: self._handle_close_db,
        }

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def serve(self, channel: IWorkerChannel) -> None:
        """Handle requests from *channel* until it closes.

        When the channel ends, in-flight requests finish before this
        returns. Cancelling this coroutine cancels them instead.
        """
        self._channel = channel
        tasks: set[asyncio.Task] = set()
        logger.info("worker_server_started", provider=self._embedding.get_provider_name())
        try:
            async for raw in channel.receive():
                task = asyncio.create_task(self.handle_message(raw))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("worker_server_stopped")

    async def handle_message(self, raw: Any) -> None:
        """Process one raw request and send exactly one reply for it."""
        try:
            message = WorkerMessage.model_validate(raw)
        except ValidationError as exc:
            logger.warning("worker_request_malformed", error=str(exc))
            request_id = raw.get("id") if isinstance(raw, dict) else None
            if isinstance(request_id, str):
                await self._reply_error(request_id, None, f"Malformed request: {exc}")
            elif request_id is not None:
                logger.warning("worker_request_unanswerable", id=repr(request_id))
            return

        if message.id is None:
            logger.warning("worker_request_without_id", type=message.type)
            return

        try:
            request_type = RequestType(message.type)
        except ValueError:
            logger.warning("worker_request_unknown_type", id=message.id, type=message.type)
            await self._reply_error(message.id, message.type, f"Unknown message type: {message.type}")
            return

        try:
            if request_type is not RequestType.INITIALIZE and not self._initialized:
                raise WorkerNotInitializedError()
            result = await self._handlers[request_type](message.payload)
        except Exception as exc:
            logger.error(
                "worker_request_failed",
                id=message.id,
                type=message.type,
                error=str(exc),
            )
            await self._reply_error(
                message.id, message.type, f"Error processing {message.type}: {exc}"
            )
            return

        await self._send(
            WorkerMessage(id=message.id, type=response_type_for(request_type), payload=result)
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _handle_initialize(self, payload: Any) -> dict[str, Any]:
        async with self._init_lock:
            if self._initialized:
                await self._status("Worker is already initialized.")
            else:
                await self._status("Initializing worker...")
                await self._embedding.warm_up()
                indexes = await self._store.ensure_indexes()
                if not indexes.success:
                    raise BackendError(
                        message=indexes.message,
                        provider_name=self._store.get_provider_name(),
                    )
                self._initialized = True
                await self._status("Worker initialization completed.")
        return InitializeResult(
            success=True,
            provider_name=self._embedding.get_provider_name(),
            dimension=self._dimension,
        ).to_wire()

    async def _handle_vectorize_sentences(self, payload: Any) -> dict[str, Any]:
        request = VectorizeSentencesRequest.model_validate(payload)
        vectors = await self._embed(request.sentences)
        return VectorizeSentencesResult(vectors=vectors).to_wire()

    async def _handle_average_vectors(self, payload: Any) -> dict[str, Any]:
        request = AverageVectorsRequest.model_validate(payload)
        return AverageVectorsResult(vector=average_vectors(request.vectors)).to_wire()

    async def _handle_vectorize_and_store(self, payload: Any) -> dict[str, Any]:
        request = VectorizeAndStoreRequest.model_validate(payload)
        if not request.chunks:
            return VectorizeAndStoreResult(count=0).to_wire()
        vectors = await self._embed([record.text for record in request.chunks])
        count = await self._store.replace_file_chunks(request.chunks, vectors)
        logger.info(
            "vectorize_and_store_complete",
            records=len(request.chunks),
            stored=count,
        )
        return VectorizeAndStoreResult(count=count).to_wire()

    async def _handle_search(self, payload: Any) -> dict[str, Any]:
        request = SearchRequest.model_validate(payload)
        results = await self._store.query(
            request.vector,
            request.limit,
            exclude_file_paths=request.exclude_file_paths or None,
        )
        return SearchResult(results=results).to_wire()

    async def _handle_get_vectors_by_file_path(self, payload: Any) -> dict[str, Any]:
        request = GetVectorsByFilePathRequest.model_validate(payload)
        vectors = await self._store.get_vectors_by_file_path(request.file_path)
        return GetVectorsByFilePathResult(vectors=vectors).to_wire()

    async def _handle_rebuild_db(self, payload: Any) -> dict[str, Any]:
        await self._store.rebuild()
        return operation_result_to_wire(OperationResult(success=True, message="Database rebuilt"))

    async def _handle_ensure_indexes(self, payload: Any) -> dict[str, Any]:
        result = await self._store.ensure_indexes()
        return operation_result_to_wire(result)

    async def _handle_close_db(self, payload: Any) -> dict[str, Any]:
        await self._store.close()
        return operation_result_to_wire(OperationResult(success=True, message="Database closed"))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        raw = await self._embedding.embed(texts)
        if len(raw) != len(texts):
            raise ValueError(f"Embedding provider returned {len(raw)} vectors for {len(texts)} texts")
        return truncate_and_normalize(raw, self._dimension)

    async def _status(self, message: str, level: str = "info") -> None:
        logger.info("worker_status", message=message)
        await self._send(
            WorkerMessage(
                id=None,
                type=STATUS_TYPE,
                payload=StatusPayload(message=message, level=level).to_wire(),
            )
        )

    async def _reply_error(self, request_id: str, request_type: str | None, message: str) -> None:
        await self._send(
            WorkerMessage(
                id=request_id,
                type=ERROR_TYPE,
                payload=ErrorPayload(message=message, request_type=request_type).to_wire(),
            )
        )

    async def _send(self, message: WorkerMessage) -> None:
        if self._channel is None or self._channel.is_closed:
            logger.warning("worker_reply_dropped", id=message.id, type=message.type)
            return
        await self._channel.send(message.to_wire())
