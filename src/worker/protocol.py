"""Wire protocol between the caller and the embedding worker.

Every message in either direction is a JSON-compatible dict::

    {"id": "<correlation id>", "type": "<message type>", "payload": ...}

Each request type has exactly one success response type, and every reply
echoes the id of its request.  A failed request is answered with an
``error`` message instead.  The worker may also emit unsolicited
``status`` messages, which carry ``id: null``.

    Request               →  Response
    ─────────────────────────────────────────────────────
    initialize            →  initialized
    vectorizeSentences    →  vectorizeSentencesResult
    averageVectors        →  averageVectorsResult
    vectorizeAndStore     →  vectorizeAndStoreResult
    search                →  searchResult
    getVectorsByFilePath  →  getVectorsByFilePathResult
    rebuildDb             →  rebuildDbResult
    ensureIndexes         →  ensureIndexesResult
    closeDb               →  dbClosed

Payload models serialize with camelCase keys (``excludeFilePaths``,
``filePath``) via ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.models.rag import ChunkRecord, OperationResult, SimilarityResultItem


class RequestType(str, Enum):
    """Request message types understood by the worker."""

    INITIALIZE = "initialize"
    VECTORIZE_SENTENCES = "vectorizeSentences"
    AVERAGE_VECTORS = "averageVectors"
    VECTORIZE_AND_STORE = "vectorizeAndStore"
    SEARCH = "search"
    GET_VECTORS_BY_FILE_PATH = "getVectorsByFilePath"
    REBUILD_DB = "rebuildDb"
    ENSURE_INDEXES = "ensureIndexes"
    CLOSE_DB = "closeDb"


ERROR_TYPE = "error"
STATUS_TYPE = "status"

RESPONSE_TYPES: dict[RequestType, str] = {
    RequestType.INITIALIZE: "initialized",
    RequestType.VECTORIZE_SENTENCES: "vectorizeSentencesResult",
    RequestType.AVERAGE_VECTORS: "averageVectorsResult",
    RequestType.VECTORIZE_AND_STORE: "vectorizeAndStoreResult",
    RequestType.SEARCH: "searchResult",
    RequestType.GET_VECTORS_BY_FILE_PATH: "getVectorsByFilePathResult",
    RequestType.REBUILD_DB: "rebuildDbResult",
    RequestType.ENSURE_INDEXES: "ensureIndexesResult",
    RequestType.CLOSE_DB: "dbClosed",
}


def response_type_for(request_type: RequestType | str) -> str:
    """Return the success response type paired with *request_type*.

    Raises
    ------
    ValueError
        If *request_type* is not a known request.
    """
    return RESPONSE_TYPES[RequestType(request_type)]


class WorkerMessage(BaseModel):
    """The ``{id, type, payload}`` envelope shared by both directions."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(default=None, description="Correlation id; null for status messages.")
    type: str = Field(min_length=1)
    payload: Any = None

    def to_wire(self) -> dict[str, Any]:
        return {"id": self.id, "type": self.type, "payload": self.payload}


class _WirePayload(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class VectorizeSentencesRequest(_WirePayload):
    sentences: list[str]


class AverageVectorsRequest(_WirePayload):
    vectors: list[list[float]]


class VectorizeAndStoreRequest(_WirePayload):
    chunks: list[ChunkRecord]


class SearchRequest(_WirePayload):
    vector: list[float]
    limit: int = Field(gt=0)
    exclude_file_paths: list[str] = Field(default_factory=list)


class GetVectorsByFilePathRequest(_WirePayload):
    file_path: str


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class InitializeResult(_WirePayload):
    success: bool
    provider_name: str = ""
    dimension: int = 0
    message: str = ""


class VectorizeSentencesResult(_WirePayload):
    vectors: list[list[float]]


class AverageVectorsResult(_WirePayload):
    vector: list[float]


class VectorizeAndStoreResult(_WirePayload):
    count: int = Field(ge=0)


class SearchResult(_WirePayload):
    results: list[SimilarityResultItem]


class GetVectorsByFilePathResult(_WirePayload):
    vectors: list[list[float]] | None = None


class ErrorPayload(_WirePayload):
    message: str
    request_type: str | None = None


class StatusPayload(_WirePayload):
    message: str
    level: str = "info"


def operation_result_to_wire(result: OperationResult) -> dict[str, Any]:
    return result.model_dump(mode="json")
