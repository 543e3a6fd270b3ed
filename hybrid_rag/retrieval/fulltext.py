"""
Full-Text Index

Keyword matching by case-insensitive substring. A token matches a document
if it occurs in the lower-cased content or in the stored tokenizer output
(content_tokens), which lets segmenting tokenizers improve recall.

Match policies:
    and: every query token must match; every hit scores 1.0
    or:  any token may match; score = matched tokens / query tokens
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from hybrid_rag.storage.documents import DocumentStore
from hybrid_rag.storage.duckdb import rows_to_dicts, translated_errors
from hybrid_rag.types import QueryResult, RetrievalMode
from hybrid_rag.utils.text import Tokenizer, like_pattern, query_tokens

logger = logging.getLogger(__name__)

MATCH_POLICIES = ("and", "or")


def fulltext_score(content: str, tokens: list[str], content_tokens: str | None = None) -> float:
    """Fraction of tokens found (as substrings) in content or content_tokens."""
    if not tokens:
        return 0.0
    haystacks = [content.lower()]
    if content_tokens:
        haystacks.append(content_tokens.lower())
    matched = sum(1 for token in tokens if any(token in h for h in haystacks))
    return matched / len(tokens)


class FulltextIndex:
    """
    Keyword search strategy.

    Args:
        documents: Document table to search
        tokenizer: Optional segmenting tokenizer applied to queries
        match: "and" (default) or "or"
    """

    def __init__(
        self,
        documents: DocumentStore,
        tokenizer: Tokenizer | None = None,
        match: str = "and",
    ) -> None:
        if match not in MATCH_POLICIES:
            raise ValueError(f"Unknown fulltext match policy: {match}")
        self.documents = documents
        self.tokenizer = tokenizer
        self.match = match

    async def search(
        self,
        query: str,
        limit: int,
        filters: Mapping[str, Any] | None = None,
    ) -> list[QueryResult]:
        """Documents matching the query tokens, best score first (id on ties)."""
        tokens = query_tokens(query, self.tokenizer)
        if not tokens or limit <= 0:
            return []

        clause = (
            "(lower(content) LIKE ? ESCAPE '\\' "
            "OR coalesce(content_tokens, '') LIKE ? ESCAPE '\\')"
        )
        joiner = " AND " if self.match == "and" else " OR "
        where = joiner.join([clause] * len(tokens))
        params: list[Any] = []
        for token in tokens:
            pattern = like_pattern(token)
            params.extend([pattern, pattern])

        filter_sql, filter_params = self.documents.filter_sql(filters)
        params.extend(filter_params)

        sql = (
            f"SELECT id, content, metadata, content_tokens FROM {self.documents.table} "
            f"WHERE ({where}){filter_sql} ORDER BY id"
        )
        # Under AND every hit scores 1.0, so id order is already final
        if self.match == "and":
            sql += " LIMIT ?"
            params.append(limit)

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
                    score=fulltext_score(doc.content, tokens, record.get("content_tokens")),
                    source=RetrievalMode.FULLTEXT,
                ))
            results.sort(key=lambda r: (-r.score, r.id))
            return results[:limit]

        results = await self.documents.db.run(_query)
        logger.debug(f"Fulltext search for {len(tokens)} token(s) returned {len(results)} result(s)")
        return results
