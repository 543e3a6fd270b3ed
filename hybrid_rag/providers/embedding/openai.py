"""
OpenAI Embedding Provider (LangChain-based)

Implements EmbeddingProvider using LangChain's OpenAIEmbeddings. The
LangChain client is synchronous, so calls are pushed to a worker thread.

Models:
    - text-embedding-3-small: 1536 dimensions (default)
    - text-embedding-3-large: 3072 dimensions (reducible)
    - text-embedding-ada-002: 1536 dimensions (fixed)

A dimension other than the model's native size is sent as the API's
`dimensions` parameter, so documents and queries are embedded at the size
the document table is configured for.

Example:
    >>> provider = OpenAIEmbeddingProvider(model="text-embedding-3-small")
    >>> vectors = await provider.embed(["Eino is great", "Hello world"])
    >>> len(vectors[0])
    1536
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from hybrid_rag.providers.base import EmbeddingProvider

if TYPE_CHECKING:
    from langchain_openai import OpenAIEmbeddings

logger = logging.getLogger(__name__)

MODEL_DIMENSIONS = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}

DEFAULT_MODEL = "text-embedding-3-small"


def _get_openai_embeddings(
    api_key: str | None,
    model: str,
    dimensions: int | None,
) -> "OpenAIEmbeddings":
    """
    Build an OpenAIEmbeddings client.

    Uses lazy import to avoid requiring langchain-openai unless actually used.

    Raises:
        ImportError: If langchain-openai package is not installed
    """
    try:
        from langchain_openai import OpenAIEmbeddings
    except ImportError as e:
        raise ImportError(
            "OpenAI embedding provider requires the 'langchain-openai' package. "
            "Install with: pip install hybrid-rag"
        ) from e

    kwargs: dict = {"model": model}
    if dimensions is not None:
        kwargs["dimensions"] = dimensions
    if api_key:
        from pydantic import SecretStr
        kwargs["api_key"] = SecretStr(api_key)
    return OpenAIEmbeddings(**kwargs)


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """
    OpenAI embedding provider using LangChain.

    Args:
        api_key: OpenAI API key. If None, uses OPENAI_API_KEY environment variable.
        model: Model to use (default: "text-embedding-3-small")
        dimensions: Output size. None, or the model's native size, means
            no reduction is requested.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        dimensions: int | None = None,
    ) -> None:
        native = MODEL_DIMENSIONS.get(model)
        self._api_key = api_key
        self._model = model
        self._dimensions = dimensions or native or 1536
        self._requested_dimensions = dimensions if dimensions and dimensions != native else None
        # Created on first embed
        self._client: OpenAIEmbeddings | None = None

    def _get_client(self) -> "OpenAIEmbeddings":
        if self._client is None:
            self._client = _get_openai_embeddings(
                api_key=self._api_key,
                model=self._model,
                dimensions=self._requested_dimensions,
            )
        return self._client

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts in one request.

        Returns:
            One vector per text, in input order
        """
        if not texts:
            return []

        client = self._get_client()
        logger.debug(f"Embedding {len(texts)} text(s) with {self._model}")
        return await asyncio.to_thread(client.embed_documents, texts)

    async def embed_single(self, text: str) -> list[float]:
        """Embed one text (same request path as embed())."""
        vectors = await self.embed([text])
        return vectors[0]
