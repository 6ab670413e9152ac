"""Local ONNX-based embedding provider using fastembed.

Wraps the ``fastembed`` library to implement :class:`IEmbeddingProvider`
using ONNX Runtime - **no PyTorch dependency required**.  Fully free,
runs on CPU with minimal RAM footprint.

Default model: ``sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2``
(384 dimensions), which handles mixed-language notes reasonably well at a
small download size.

Model loading and inference are blocking, so both run on a worker thread
via ``asyncio.to_thread`` to keep the event loop free for message traffic.
"""

from __future__ import annotations

import asyncio
import threading

import structlog

from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import BackendError

logger = structlog.get_logger(logger_name=__name__)

# Known model dimensions for fastembed-supported models.
_MODEL_DIMENSIONS: dict[str, int] = {
    "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "intfloat/multilingual-e5-large": 1024,
}

_DEFAULT_MODEL = "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
_BATCH_LIMIT = 64


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by fastembed (ONNX Runtime).

    Loads the ONNX model on first use (lazy initialization) or on
    :meth:`warm_up`.  Downloads model weights on first run, then caches
    locally.
    """

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, 384)
        self._model = None  # Lazy-loaded
        self._load_lock = threading.Lock()

    def _load_model(self) -> None:
        """Lazy-load the fastembed model (runs on a worker thread)."""
        with self._load_lock:
            if self._model is not None:
                return
            try:
                from fastembed import TextEmbedding

                logger.info(
                    "loading_fastembed_model",
                    model=self._model_name,
                    msg="Loading ONNX model (first use downloads the weights)...",
                )
                self._model = TextEmbedding(model_name=self._model_name)
                logger.info(
                    "fastembed_model_loaded",
                    model=self._model_name,
                    dimension=self._dimension,
                )
            except Exception as exc:
                raise BackendError(
                    message=f"Failed to load fastembed model '{self._model_name}': {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

    def _embed_blocking(self, texts: list[str]) -> list[list[float]]:
        self._load_model()
        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _BATCH_LIMIT):
                batch = texts[start : start + _BATCH_LIMIT]
                # fastembed returns a generator of numpy arrays
                vectors = list(self._model.embed(batch))
                all_embeddings.extend([v.tolist() for v in vectors])
            return all_embeddings
        except Exception as exc:
            raise BackendError(
                message=f"Fastembed embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts."""
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
        return f"fastembed_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        """Return ``True`` if fastembed is installed."""
        try:
            import fastembed  # noqa: F401

            return True
        except ImportError:
            return False
