"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
The worker stores them in ChromaDB and compares them at query time.

Three implementations of IEmbeddingProvider (listed in fallback order):
    1. FastEmbedEmbeddingProvider - ONNX-based, no PyTorch needed.
       Default. Uses paraphrase-multilingual-MiniLM-L12-v2 (384 dims).
    2. SentenceTransformerEmbeddingProvider - PyTorch-based, same default
       model, heavier install.
    3. OpenAIEmbeddingProvider    - any OpenAI-compatible endpoint.
       Requires an API key.

Note: Only the OpenAI provider is re-exported here. FastEmbed and
SentenceTransformer providers are imported directly where needed to avoid
import errors when their optional dependencies aren't installed.
"""

from src.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider"]
