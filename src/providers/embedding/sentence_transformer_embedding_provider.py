"""Local sentence-transformers embedding provider adapter.

Wraps the ``sentence-transformers`` library to implement
:class:`IEmbeddingProvider` using any HuggingFace embedding model locally.
Fully free - runs on CPU/GPU with no API key required.

Default model: ``sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2``
(384 dimensions), the same model the fastembed provider defaults to, so a
store built by one can be queried with the other.
"""

from __future__ import annotations

import asyncio
import threading

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import BackendError

logger = structlog.get_logger(logger_name=__name__)

# Known model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "intfloat/multilingual-e5-large-instruct": 1024,
    "intfloat/e5-base-v2": 768,
    "BAAI/bge-base-en-v1.5": 768,
}

_DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
_BATCH_LIMIT = 64  # Conservative batch size for CPU inference


class SentenceTransformerEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by a local sentence-transformers model.

    Loads the model into memory on first use (lazy initialization) or on
    :meth:`warm_up`.  Inference runs on a worker thread.
    """

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, 384)
        self._model = None  # Lazy-loaded
        self._load_lock = threading.Lock()

    def _load_model(self) -> None:
        """Lazy-load the sentence-transformers model."""
        with self._load_lock:
            if self._model is not None:
                return
            try:
                from sentence_transformers import SentenceTransformer
                logger.info(
                    "loading_sentence_transformer",
                    model=self._model_name,
                    msg="Loading model (first use downloads the weights)...",
                )
                self._model = SentenceTransformer(self._model_name)
                logger.info(
                    "sentence_transformer_loaded",
                    model=self._model_name,
                    dimension=self._dimension,
                )
            except Exception as exc:
                raise BackendError(
                    message=f"Failed to load sentence-transformers model '{self._model_name}': {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

    def _embed_blocking(self, texts: list[str]) -> list[list[float]]:
        self._load_model()
        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _BATCH_LIMIT):
                batch = texts[start : start + _BATCH_LIMIT]
                vectors = self._model.encode(
                    batch,
                    show_progress_bar=False,
                )
                all_embeddings.extend(vectors.tolist())
                logger.debug(
                    "sentence_transformer_embedding_batch",
                    model=self._model_name,
                    batch_size=len(batch),
                )
            return all_embeddings
        except Exception as exc:
            raise BackendError(
                message=f"Sentence-transformers embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Automatically splits into batches for memory-safe CPU inference.
        """
        if not texts:
            return []
        return await asyncio.to_thread(self._embed_blocking, texts)

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    async def warm_up(self) -> None:
        await asyncio.to_thread(self._load_model)

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"sentence_transformer_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if sentence-transformers is installed."""
        try:
            import sentence_transformers  # noqa: F401
            return True
        except ImportError:
            return False
