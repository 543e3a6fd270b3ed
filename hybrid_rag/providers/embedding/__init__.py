"""
Embedding Provider Implementations

Modules:
    openai: OpenAI embeddings (text-embedding-3-small / -large)

Each provider implements the EmbeddingProvider interface with:
    - embed(): Batch embedding generation
    - embed_single(): Single text embedding
    - dimensions: Vector dimensionality
    - model_name: Current model identifier

Example:
    >>> from hybrid_rag.providers.embedding import OpenAIEmbeddingProvider
    >>> provider = OpenAIEmbeddingProvider(model="text-embedding-3-small")
    >>> vectors = await provider.embed(["Hello", "World"])
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hybrid_rag.providers.embedding.openai import OpenAIEmbeddingProvider


def __getattr__(name: str):
    """Lazy import of providers to avoid requiring all dependencies."""
    if name == "OpenAIEmbeddingProvider":
        from hybrid_rag.providers.embedding.openai import OpenAIEmbeddingProvider
        return OpenAIEmbeddingProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["OpenAIEmbeddingProvider"]
