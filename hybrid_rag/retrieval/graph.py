"""
Graph Index

Seeds are documents whose content contains any query token; the seed set
is expanded with each seed's neighbours along the "related" predicate.
The strategy does not rank: every result gets the same flat score.
"""

from __future__ import annotations

import logging

from hybrid_rag.storage.documents import DocumentStore
from hybrid_rag.storage.duckdb import translated_errors
from hybrid_rag.storage.triples import TripleStore
from hybrid_rag.types import QueryResult, RetrievalMode
from hybrid_rag.utils.text import Tokenizer, like_pattern, query_tokens

logger = logging.getLogger(__name__)


class GraphIndex:
    """
    Graph-expansion search strategy.

    Args:
        documents: Document table for seeds and result content
        triples: Graph used to expand seeds
        tokenizer: Optional segmenting tokenizer applied to queries
        predicate: Edge predicate followed from seeds
        score: Score given to every result
    """

    def __init__(
        self,
        documents: DocumentStore,
        triples: TripleStore,
        tokenizer: Tokenizer | None = None,
        predicate: str = "related",
        score: float = 0.5,
    ) -> None:
        self.documents = documents
        self.triples = triples
        self.tokenizer = tokenizer
        self.predicate = predicate
        self.score = score

    def _seed_ids(self, tokens: list[str], per_token: int) -> list[str]:
        """Ids of documents containing each token, token by token, in id order."""
        sql = (
            f"SELECT id FROM {self.documents.table} "
            "WHERE lower(content) LIKE ? ESCAPE '\\' ORDER BY id LIMIT ?"
        )
        conn = self.documents.db.cursor()
        seeds: dict[str, None] = {}
        with translated_errors():
            for token in tokens:
                for (doc_id,) in conn.execute(sql, [like_pattern(token), per_token]).fetchall():
                    seeds.setdefault(doc_id, None)
        return list(seeds)

    async def search(self, query: str, limit: int) -> list[QueryResult]:
        """Seed documents first, then their related neighbours, capped at limit."""
        tokens = query_tokens(query, self.tokenizer)
        if not tokens or limit <= 0:
            return []

        seeds = await self.documents.db.run(self._seed_ids, tokens, 2 * limit)

        candidates: dict[str, None] = dict.fromkeys(seeds)
        for seed in seeds:
            for neighbor in await self.triples.neighbors(seed, self.predicate):
                candidates.setdefault(neighbor, None)

        # Neighbours need not be documents; those are dropped by get_many
        documents = await self.documents.get_many(list(candidates))
        results = [
            QueryResult(
                id=doc.id,
                content=doc.content,
                metadata=doc.metadata,
                score=self.score,
                source=RetrievalMode.GRAPH,
            )
            for doc in documents[:limit]
        ]
        logger.debug(
            f"Graph search: {len(seeds)} seed(s), {len(candidates)} candidate(s), "
            f"{len(results)} result(s)"
        )
        return results
