"""Caller-side correlation layer for the embedding worker.

:class:`WorkerProxy` turns awaitable method calls into ``{id, type,
payload}`` messages on an :class:`~src.interfaces.worker_channel.IWorkerChannel`
and matches the worker's replies back to the waiting callers.

# ─── HOW CALL CORRELATION WORKS ───────────────────────────────────────
#
#   caller ──search()──→ WorkerProxy ──{id: a1, type: search}──→ worker
#     ▲                     │  pending[a1] = PendingCall(future)
#     │                     ▼
#     └── future result ── dispatcher ◀──{id: a1, type: searchResult}──┘
#
#   1. Each call gets a fresh uuid4 id and a PendingCall entry holding an
#      asyncio.Future.  The entry exists before the message is sent, so
#      even an instant reply finds it.
#   2. One dispatcher task reads every reply.  It looks the id up, pops
#      the entry, and resolves or rejects that entry's future.
#   3. Replies may arrive in any order; only the id matters.
#   4. Replies with an unknown or already-answered id are logged and
#      dropped.  They never resolve the wrong caller.
#   5. terminate() rejects everything still pending with
#      WorkerCancelledError and closes the channel.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog
from pydantic import ValidationError

from src.interfaces.worker_channel import IWorkerChannel
from src.models.rag import ChunkRecord, OperationResult, SimilarityResultItem
from src.utils.errors import (
    WorkerCallError,
    WorkerCancelledError,
    WorkerError,
    WorkerInitializationError,
    WorkerNotInitializedError,
    WorkerProtocolError,
    WorkerTimeoutError,
)
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
    VectorizeAndStoreRequest,
    VectorizeAndStoreResult,
    VectorizeSentencesRequest,
    VectorizeSentencesResult,
    WorkerMessage,
    response_type_for,
)

logger = structlog.get_logger(logger_name=__name__)

WorkerMessageCallback = Callable[[WorkerMessage], object]

# Sentinel distinguishing "use the proxy default" from an explicit None.
_DEFAULT = object()


@dataclass
class PendingCall:
    """Correlation record for one in-flight request.

    Owned exclusively by :class:`WorkerProxy`; nothing else reads or
    writes the pending table.
    """

    id: str
    request_type: RequestType
    future: asyncio.Future
    timeout_handle: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None


class WorkerProxy:
    """Awaitable facade over the worker's message protocol.

    Parameters
    ----------
    channel:
        The duplex channel to the worker.
    call_timeout:
        Seconds to wait for any reply before raising
        :class:`WorkerTimeoutError`.  ``None`` waits forever.
    init_timeout:
        Timeout for the ``initialize`` handshake, which loads the model and
        may take much longer than an ordinary call.
    on_worker_message:
        Optional sync or async callable receiving unsolicited ``status``
        messages from the worker.
    """

    def __init__(
        self,
        channel: IWorkerChannel,
        call_timeout: float | None = None,
        init_timeout: float | None = None,
        on_worker_message: WorkerMessageCallback | None = None,
    ) -> None:
        self._channel = channel
        self._call_timeout = call_timeout
        self._init_timeout = init_timeout
        self._on_worker_message = on_worker_message
        self._pending: dict[str, PendingCall] = {}
        self._dispatcher: asyncio.Task | None = None
        self._init_task: asyncio.Task | None = None
        self._init_result: InitializeResult | None = None
        self._terminated = False

    @property
    def is_initialized(self) -> bool:
        return self._init_result is not None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> InitializeResult:
        """Run the ``initialize`` handshake, at most once at a time.

        Concurrent callers share one in-flight handshake and all receive
        its outcome.  On failure the proxy returns to the uninitialized
        state, so a later call may retry.

        Raises
        ------
        WorkerInitializationError
            If the worker fails or refuses to initialize.
        WorkerCancelledError
            If the proxy is terminated, or the channel closes, mid-handshake.
        """
        if self._init_result is not None:
            return self._init_result
        if self._terminated:
            raise WorkerInitializationError(message="Worker proxy has been terminated")
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._run_initialize(), name="worker-initialize")
        # Shield so one waiter being cancelled does not abort the shared handshake.
        return await asyncio.shield(self._init_task)

    async def _run_initialize(self) -> InitializeResult:
        logger.info("worker_initializing")
        try:
            payload = await self._call(RequestType.INITIALIZE, {}, timeout=self._init_timeout)
            result = InitializeResult.model_validate(payload)
            if not result.success:
                raise WorkerInitializationError(
                    message=result.message or "Worker reported initialization failure"
                )
        except WorkerInitializationError:
            self._init_task = None
            logger.error("worker_initialization_failed")
            raise
        except WorkerCancelledError:
            self._init_task = None
            logger.warning("worker_initialization_cancelled")
            raise
        except (WorkerError, ValidationError) as exc:
            self._init_task = None
            logger.error("worker_initialization_failed", error=str(exc))
            raise WorkerInitializationError(
                message=f"Worker initialization failed: {exc}"
            ) from exc

        self._init_result = result
        logger.info(
            "worker_initialized",
            provider=result.provider_name,
            dimension=result.dimension,
        )
        return result

    async def terminate(self) -> None:
        """Cancel every pending call and close the channel.

        Pending callers receive :class:`WorkerCancelledError`.  Safe to
        call more than once.
        """
        if self._terminated:
            return
        self._terminated = True
        cancelled = self._reject_all("Worker terminated before the call completed")
        if self._dispatcher is not None and not self._dispatcher.done():
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
        self._dispatcher = None
        self._init_task = None
        self._init_result = None
        await self._channel.close()
        logger.info("worker_terminated", cancelled_calls=cancelled)

    # ------------------------------------------------------------------
    # Typed operations
    # ------------------------------------------------------------------

    async def vectorize_sentences(self, sentences: list[str]) -> list[list[float]]:
        """Embed *sentences*; vectors come back truncated and normalized."""
        if not sentences:
            return []
        payload = await self._call(
            RequestType.VECTORIZE_SENTENCES,
            VectorizeSentencesRequest(sentences=sentences).to_wire(),
        )
        return self._parse(VectorizeSentencesResult, payload, RequestType.VECTORIZE_SENTENCES).vectors

    async def average_vectors(self, vectors: list[list[float]]) -> list[float]:
        """Return the normalized mean of *vectors*."""
        if not vectors:
            return []
        payload = await self._call(
            RequestType.AVERAGE_VECTORS,
            AverageVectorsRequest(vectors=vectors).to_wire(),
        )
        return self._parse(AverageVectorsResult, payload, RequestType.AVERAGE_VECTORS).vector

    async def vectorize_and_store(self, records: list[ChunkRecord]) -> int:
        """Embed and persist *records*; returns the count the store reported."""
        if not records:
            return 0
        payload = await self._call(
            RequestType.VECTORIZE_AND_STORE,
            VectorizeAndStoreRequest(chunks=records).to_wire(),
        )
        return self._parse(VectorizeAndStoreResult, payload, RequestType.VECTORIZE_AND_STORE).count

    async def search_similar_by_vector(
        self,
        vector: list[float],
        limit: int,
        exclude_file_paths: list[str] | None = None,
    ) -> list[SimilarityResultItem]:
        """Return up to *limit* nearest chunks, skipping excluded files."""
        payload = await self._call(
            RequestType.SEARCH,
            SearchRequest(
                vector=vector,
                limit=limit,
                exclude_file_paths=list(exclude_file_paths or []),
            ).to_wire(),
        )
        return self._parse(SearchResult, payload, RequestType.SEARCH).results

    async def get_vectors_by_file_path(self, file_path: str) -> list[list[float]] | None:
        """Return the stored vectors of *file_path*, or ``None`` if none exist."""
        payload = await self._call(
            RequestType.GET_VECTORS_BY_FILE_PATH,
            GetVectorsByFilePathRequest(file_path=file_path).to_wire(),
        )
        return self._parse(
            GetVectorsByFilePathResult, payload, RequestType.GET_VECTORS_BY_FILE_PATH
        ).vectors

    async def rebuild_database(self) -> OperationResult:
        payload = await self._call(RequestType.REBUILD_DB, {})
        return self._parse(OperationResult, payload, RequestType.REBUILD_DB)

    async def ensure_indexes(self) -> OperationResult:
        payload = await self._call(RequestType.ENSURE_INDEXES, {})
        return self._parse(OperationResult, payload, RequestType.ENSURE_INDEXES)

    async def close_database(self) -> OperationResult:
        payload = await self._call(RequestType.CLOSE_DB, {})
        return self._parse(OperationResult, payload, RequestType.CLOSE_DB)

    # ------------------------------------------------------------------
    # Call machinery
    # ------------------------------------------------------------------

    async def _call(
        self,
        request_type: RequestType,
        payload: Any = None,
        timeout: Any = _DEFAULT,
    ) -> Any:
        """Send one request and wait for its correlated reply payload."""
        if self._terminated:
            raise WorkerCancelledError(message="Worker proxy has been terminated")
        if request_type is not RequestType.INITIALIZE and self._init_result is None:
            raise WorkerNotInitializedError()

        self._ensure_dispatcher()
        loop = asyncio.get_running_loop()
        call_id = uuid.uuid4().hex
        entry = PendingCall(id=call_id, request_type=request_type, future=loop.create_future())
        self._pending[call_id] = entry

        effective_timeout = self._call_timeout if timeout is _DEFAULT else timeout
        if effective_timeout is not None:
            entry.timeout_handle = loop.call_later(
                effective_timeout, self._expire, call_id, effective_timeout
            )

        logger.debug("worker_call_sent", id=call_id, type=request_type.value)
        try:
            await self._channel.send(
                WorkerMessage(id=call_id, type=request_type.value, payload=payload).to_wire()
            )
            return await entry.future
        finally:
            # Covers success, rejection, and the caller being cancelled.
            stale = self._pending.pop(call_id, None)
            if stale is not None:
                stale.cancel_timer()

    def _ensure_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="worker-dispatcher")

    async def _dispatch_loop(self) -> None:
        try:
            async for raw in self._channel.receive():
                await self._handle_message(raw)
        except WorkerError as exc:
            logger.error("worker_channel_failed", error=str(exc))

        if not self._terminated:
            # The worker went away on its own.
            rejected = self._reject_all("Worker channel closed before the call completed")
            self._init_task = None
            self._init_result = None
            logger.warning("worker_channel_closed", rejected_calls=rejected)

    async def _handle_message(self, raw: Any) -> None:
        try:
            message = WorkerMessage.model_validate(raw)
        except ValidationError as exc:
            logger.warning("worker_message_malformed", error=str(exc))
            return

        if message.id is None:
            if message.type == STATUS_TYPE:
                await self._forward_status(message)
            else:
                logger.warning("worker_message_without_id", type=message.type)
            return

        entry = self._pending.pop(message.id, None)
        if entry is None:
            logger.warning("worker_reply_unmatched", id=message.id, type=message.type)
            return
        entry.cancel_timer()
        if entry.future.done():
            return

        if message.type == ERROR_TYPE:
            entry.future.set_exception(
                WorkerCallError(
                    message=_error_message(message.payload),
                    request_type=entry.request_type.value,
                )
            )
            return

        expected = response_type_for(entry.request_type)
        if message.type != expected:
            logger.warning(
                "worker_reply_type_mismatch",
                id=message.id,
                expected=expected,
                received=message.type,
            )
            entry.future.set_exception(
                WorkerProtocolError(
                    message=(
                        f"Expected '{expected}' reply to '{entry.request_type.value}', "
                        f"got '{message.type}'"
                    )
                )
            )
            return

        logger.debug("worker_call_completed", id=message.id, type=message.type)
        entry.future.set_result(message.payload)

    async def _forward_status(self, message: WorkerMessage) -> None:
        logger.info("worker_status", payload=message.payload)
        if self._on_worker_message is None:
            return
        try:
            result = self._on_worker_message(message)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning("worker_message_callback_error", error=str(exc))

    def _expire(self, call_id: str, timeout: float) -> None:
        entry = self._pending.pop(call_id, None)
        if entry is None or entry.future.done():
            return
        logger.warning("worker_call_timeout", id=call_id, type=entry.request_type.value)
        entry.future.set_exception(
            WorkerTimeoutError(
                message=f"'{entry.request_type.value}' got no reply within {timeout:g}s"
            )
        )

    def _reject_all(self, reason: str) -> int:
        entries = list(self._pending.values())
        self._pending.clear()
        rejected = 0
        for entry in entries:
            entry.cancel_timer()
            if not entry.future.done():
                entry.future.set_exception(WorkerCancelledError(message=reason))
                rejected += 1
        return rejected

    @staticmethod
    def _parse(model: type, payload: Any, request_type: RequestType):
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise WorkerProtocolError(
                message=f"Malformed '{response_type_for(request_type)}' payload: {exc}"
            ) from exc


def _error_message(payload: Any) -> str:
    try:
        return ErrorPayload.model_validate(payload).message
    except ValidationError:
        return str(payload) if payload is not None else "Worker reported an error"
