"""Custom exception hierarchy for local-vector-search.

All application exceptions inherit from :class:`VectorSearchError`, which
carries an optional ``provider_name`` so error handlers can identify which
backend (e.g. "chromadb", "fastembed", "worker") caused the failure.

The hierarchy is organized by pipeline domain:

    VectorSearchError  (base -- catch-all for any application error)
    +-- ConfigurationError       (startup / invalid settings)
    +-- ChunkingError            (segmentation / chunk assembly)
    +-- DocumentReadError        (host document source)
    +-- BackendError             (embedding model or vector-store failure)
    +-- WorkerError              (remote-procedure layer)
        +-- WorkerNotInitializedError
        +-- WorkerInitializationError
        +-- WorkerCallError          (worker replied with an error)
        +-- WorkerTimeoutError
        +-- WorkerCancelledError     (proxy terminated while call pending)
        +-- WorkerProtocolError      (malformed or mismatched message)

Callers can handle failures at exactly the right level -- e.g. skip one
document on DocumentReadError, surface BackendError to the user, or treat
WorkerCancelledError as a non-retryable outcome of a single call.
"""


class VectorSearchError(Exception):
    """Base exception for all local-vector-search errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which backend triggered the error.  The
    ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[chromadb] Query failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Configuration / input errors
# ---------------------------------------------------------------------------


class ConfigurationError(VectorSearchError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkingError(VectorSearchError):
    """Raised when a document cannot be segmented or assembled into chunks."""

    def __init__(
        self,
        message: str = "Chunking failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentReadError(VectorSearchError):
    """Raised when the document source cannot list or read a document."""

    def __init__(
        self,
        message: str = "Document could not be read",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Backend errors
# ---------------------------------------------------------------------------


class BackendError(VectorSearchError):
    """Raised when the embedding model or the vector store fails."""

    def __init__(
        self,
        message: str = "Embedding or storage backend failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Worker RPC errors
# ---------------------------------------------------------------------------


class WorkerError(VectorSearchError):
    """Base class for failures of the worker remote-procedure layer."""

    def __init__(
        self,
        message: str = "Worker call failed",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerNotInitializedError(WorkerError):
    """Raised when a call is issued before the initialize handshake completed."""

    def __init__(
        self,
        message: str = "Worker not initialized. Call initialize first.",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerInitializationError(WorkerError):
    """Raised to every waiter when the initialize handshake fails."""

    def __init__(
        self,
        message: str = "Worker initialization failed",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerCallError(WorkerError):
    """Raised when the worker answers a request with an ``error`` message.

    ``request_type`` names the request that failed so callers can log
    which operation the backend rejected.
    """

    def __init__(
        self,
        message: str = "Worker reported an error",
        request_type: str | None = None,
        provider_name: str | None = "worker",
    ) -> None:
        self._request_type = request_type
        super().__init__(message=message, provider_name=provider_name)

    @property
    def request_type(self) -> str | None:
        return self._request_type


class WorkerTimeoutError(WorkerError):
    """Raised when no reply arrives before the call deadline."""

    def __init__(
        self,
        message: str = "Worker call timed out",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerCancelledError(WorkerError):
    """Raised for calls still pending when the worker proxy is terminated."""

    def __init__(
        self,
        message: str = "Worker terminated before the call completed",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class WorkerProtocolError(WorkerError):
    """Raised when a reply does not match the request's expected response type."""

    def __init__(
        self,
        message: str = "Unexpected worker message",
        provider_name: str | None = "worker",
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
