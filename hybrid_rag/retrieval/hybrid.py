"""
Hybrid Retriever

Runs one strategy, or fuses vector and full-text search.

Fusion:
    Both strategies run concurrently, each asked for 2 * limit candidates.
    Scores are merged by document id:
        found by both:      vector_weight * v + fulltext_weight * f
        found by one:       that score * that strategy's weight
    The merged list is sorted by fused score (id on ties) and cut to limit.

    A failing strategy does not fail the hybrid call: its error is logged
    and reported in RetrievalResult.errors, and the other strategy still
    contributes. Pass strict=True to raise instead. Single-strategy modes
    always raise. Graph search is never part of the fusion.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from hybrid_rag.retrieval.fulltext import FulltextIndex
from hybrid_rag.retrieval.graph import GraphIndex
from hybrid_rag.retrieval.vector import VectorIndex
from hybrid_rag.types import QueryResult, RetrievalMode, RetrievalResult

logger = logging.getLogger(__name__)


class HybridRetriever:
    """
    Mode dispatch and score fusion over the three indexes.

    Args:
        vector: Vector strategy
        fulltext: Full-text strategy
        graph: Graph strategy
        default_limit: Used when the caller passes limit <= 0
        default_mode: Used when the caller passes no mode
        vector_weight: Weight of vector scores in fusion
        fulltext_weight: Weight of full-text scores in fusion
    """

    def __init__(
        self,
        vector: VectorIndex,
        fulltext: FulltextIndex,
        graph: GraphIndex,
        *,
        default_limit: int = 5,
        default_mode: str = "hybrid",
        vector_weight: float = 0.6,
        fulltext_weight: float = 0.4,
    ) -> None:
        self.vector = vector
        self.fulltext = fulltext
        self.graph = graph
        self.default_limit = default_limit
        self.default_mode = RetrievalMode.parse(default_mode)
        self.vector_weight = vector_weight
        self.fulltext_weight = fulltext_weight

    async def retrieve(
        self,
        query: str,
        mode: str | RetrievalMode | None = None,
        limit: int = 0,
        *,
        threshold: float = 0.0,
        filters: Mapping[str, Any] | None = None,
        strict: bool = False,
    ) -> RetrievalResult:
        """
        Retrieve ranked documents for a query.

        Args:
            query: Query text
            mode: "vector", "fulltext", "graph" or "hybrid" (None or "" for default)
            limit: Maximum results (<= 0 for default)
            threshold: Vector similarity threshold (vector and hybrid modes)
            filters: Metadata equality filters (vector, fulltext, hybrid)
            strict: In hybrid mode, raise the first strategy failure

        Returns:
            RetrievalResult with ranked results and any per-mode errors

        Raises:
            UnknownModeError: If mode is not recognized
        """
        resolved = RetrievalMode.parse(mode) if mode else self.default_mode
        if limit <= 0:
            limit = self.default_limit

        if resolved == RetrievalMode.VECTOR:
            results = await self.vector.search_text(query, limit, threshold=threshold, filters=filters)
        elif resolved == RetrievalMode.FULLTEXT:
            results = await self.fulltext.search(query, limit, filters=filters)
        elif resolved == RetrievalMode.GRAPH:
            results = await self.graph.search(query, limit)
        else:
            return await self._hybrid(query, limit, threshold, filters, strict)

        return RetrievalResult(mode=resolved, results=results)

    async def search(
        self,
        query: str,
        mode: str | RetrievalMode | None = None,
        limit: int = 0,
        **kwargs: Any,
    ) -> list[QueryResult]:
        """retrieve() returning only the ranked list."""
        return (await self.retrieve(query, mode, limit, **kwargs)).results

    async def _hybrid(
        self,
        query: str,
        limit: int,
        threshold: float,
        filters: Mapping[str, Any] | None,
        strict: bool,
    ) -> RetrievalResult:
        candidates = 2 * limit
        outcomes = await asyncio.gather(
            self.vector.search_text(query, candidates, threshold=threshold, filters=filters),
            self.fulltext.search(query, candidates, filters=filters),
            return_exceptions=True,
        )

        per_mode: dict[RetrievalMode, list[QueryResult]] = {}
        errors: dict[RetrievalMode, str] = {}
        for mode, outcome in zip((RetrievalMode.VECTOR, RetrievalMode.FULLTEXT), outcomes):
            if isinstance(outcome, BaseException):
                if strict or not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(f"Hybrid retrieval: {mode.value} search failed: {outcome}")
                errors[mode] = f"{type(outcome).__name__}: {outcome}"
                per_mode[mode] = []
            else:
                per_mode[mode] = outcome

        results = self.fuse(per_mode[RetrievalMode.VECTOR], per_mode[RetrievalMode.FULLTEXT], limit)
        return RetrievalResult(mode=RetrievalMode.HYBRID, results=results, errors=errors)

    def fuse(
        self,
        vector_results: list[QueryResult],
        fulltext_results: list[QueryResult],
        limit: int,
    ) -> list[QueryResult]:
        """Weighted merge by id, sorted by fused score then id, cut to limit."""
        merged: dict[str, QueryResult] = {}
        scores: dict[str, float] = {}

        for result in vector_results:
            merged.setdefault(result.id, result)
            scores[result.id] = scores.get(result.id, 0.0) + self.vector_weight * result.score
        for result in fulltext_results:
            merged.setdefault(result.id, result)
            scores[result.id] = scores.get(result.id, 0.0) + self.fulltext_weight * result.score

        fused = [
            merged[doc_id].model_copy(update={"score": score, "source": RetrievalMode.HYBRID})
            for doc_id, score in scores.items()
        ]
        fused.sort(key=lambda r: (-r.score, r.id))
        return fused[:limit]
