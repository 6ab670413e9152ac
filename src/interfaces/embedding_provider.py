"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations may wrap fastembed (ONNX), Sentence Transformers, an
OpenAI-compatible embeddings endpoint, or any other embedding backend.
Providers are only ever called from inside the worker, which truncates
and normalizes their output before it leaves.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   FastEmbedEmbeddingProvider           - lightweight ONNX (no PyTorch), default
#   SentenceTransformerEmbeddingProvider - local, needs PyTorch
#   OpenAIEmbeddingProvider              - any OpenAI-compatible endpoint
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the worker.

    Embeddings are stored through
    :class:`~src.interfaces.vector_store_provider.IVectorStoreProvider`
    and compared at query time.
    """

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.  Implementations should
            handle batching internally if the underlying API has a per-call
            limit.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.

        Raises
        ------
        src.utils.errors.BackendError
            If the embedding model call fails.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        A convenience wrapper around :meth:`embed` for the single-text case
        (e.g. embedding a search query).
        """

    @abstractmethod
    async def warm_up(self) -> None:
        """Load the underlying model so the first real call is fast.

        Called once by the worker's ``initialize`` handler.  Must be safe to
        call more than once.

        Raises
        ------
        src.utils.errors.BackendError
            If the model cannot be loaded.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the raw embedding vectors.

        This value must remain constant for the lifetime of the provider
        instance.  The worker may truncate vectors to a smaller configured
        dimension.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider.

        Example return values: ``"fastembed"``, ``"openai"``.
        """

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable.

        Implementations should verify that the library is installed and any
        credentials are present without generating an actual embedding.
        """
