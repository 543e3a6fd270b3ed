"""
Provider Abstractions

Modules:
    base: EmbeddingProvider abstract base class
    embedding: Concrete embedding providers (OpenAI)
"""

from hybrid_rag.providers.base import EmbeddingProvider

__all__ = ["EmbeddingProvider"]
