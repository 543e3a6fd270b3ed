"""
Vector Index

Cosine-similarity search over stored document vectors, computed inside
DuckDB with list_cosine_similarity. Only documents whose embedding is
completed take part. Zero-norm vectors (stored or query) score 0.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from hybrid_rag.errors import EmbeddingError
from hybrid_rag.providers.base import EmbeddingProvider
from hybrid_rag.storage.documents import DocumentStore
from hybrid_rag.storage.duckdb import rows_to_dicts, translated_errors
from hybrid_rag.types import EmbeddingStatus, QueryResult, RetrievalMode
from hybrid_rag.utils.similarity import vector_norm

logger = logging.getLogger(__name__)


class VectorIndex:
    """
    Dense-vector search strategy.

    Args:
        documents: Document table to search
        embeddings: Provider used by search_text() to embed the query
    """

    def __init__(
        self,
        documents: DocumentStore,
        embeddings: EmbeddingProvider | None = None,
    ) -> None:
        self.documents = documents
        self.embeddings = embeddings

    async def search(
        self,
        query_vector: list[float],
        limit: int,
        threshold: float = 0.0,
        filters: Mapping[str, Any] | None = None,
    ) -> list[QueryResult]:
        """
        Rank completed documents by cosine similarity to query_vector.

        Args:
            query_vector: Query embedding
            limit: Maximum results
            threshold: If > 0, drop rows whose distance (1 - similarity)
                exceeds 1 - threshold
            filters: Metadata equality filters

        Returns:
            Results by similarity descending (id ascending on ties)
        """
        if limit <= 0 or not query_vector:
            return []

        zero_query = vector_norm(query_vector) == 0.0
        filter_sql, filter_params = self.documents.filter_sql(filters)
        table = self.documents.table

        sql = f"""
            SELECT id, content, metadata, score FROM (
                SELECT id, content, metadata,
                    CASE
                        WHEN ? THEN 0.0
                        WHEN len(vector) <> ? THEN 0.0
                        WHEN list_dot_product(vector, vector) = 0 THEN 0.0
                        ELSE list_cosine_similarity(vector, ?::FLOAT[])
                    END AS score
                FROM {table}
                WHERE embedding_status = ?
                    AND vector IS NOT NULL
                    AND len(vector) = ?
                    {filter_sql}
            )
            WHERE (? <= 0 OR 1 - score <= 1 - ?)
            ORDER BY score DESC, id ASC
            LIMIT ?
        """
        params: list[Any] = [
            zero_query,
            len(query_vector),
            list(query_vector),
            EmbeddingStatus.COMPLETED.value,
            len(query_vector),
            *filter_params,
            threshold,
            threshold,
            limit,
        ]

        def _query() -> list[QueryResult]:
            conn = self.documents.db.cursor()
            with translated_errors():
                rows = conn.execute(sql, params).fetchall()
                records = rows_to_dicts(rows, conn)
            results = []
            for record in records:
                doc = self.documents.row_to_document(record)
                results.append(QueryResult(
                    id=doc.id,
                    content=doc.content,
                    metadata=doc.metadata,
                    score=float(record["score"]),
                    source=RetrievalMode.VECTOR,
                ))
            return results

        results = await self.documents.db.run(_query)
        logger.debug(f"Vector search returned {len(results)} result(s)")
        return results

    async def search_text(
        self,
        query: str,
        limit: int,
        threshold: float = 0.0,
        filters: Mapping[str, Any] | None = None,
    ) -> list[QueryResult]:
        """
        Embed query with the provider, then search().

        Raises:
            EmbeddingError: If no provider is configured, or it fails or
                returns other than one vector
        """
        if self.embeddings is None:
            raise EmbeddingError("vector search needs an embedding provider")
        try:
            vectors = await self.embeddings.embed([query])
        except Exception as e:
            raise EmbeddingError(f"failed to embed query: {e}") from e
        if len(vectors) != 1:
            raise EmbeddingError(f"expected 1 query vector, got {len(vectors)}")
        return await self.search(vectors[0], limit, threshold=threshold, filters=filters)
