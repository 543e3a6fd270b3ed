"""
Tests for HybridRetriever.

Tests cover:
- Mode dispatch and defaults
- Weighted fusion arithmetic and ordering
- Partial failures in hybrid mode (recorded, or raised with strict=True)
- Unknown modes
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from hybrid_rag.errors import EmbeddingError, PermanentStorageError, UnknownModeError
from hybrid_rag.retrieval import HybridRetriever
from hybrid_rag.types import QueryResult, RetrievalMode


def _result(doc_id, score, source):
    return QueryResult(id=doc_id, content=f"content of {doc_id}", score=score, source=source)


def _vector(*pairs):
    return [_result(i, s, RetrievalMode.VECTOR) for i, s in pairs]


def _fulltext(*pairs):
    return [_result(i, s, RetrievalMode.FULLTEXT) for i, s in pairs]


@pytest.fixture
def indexes():
    vector = MagicMock()
    vector.search_text = AsyncMock(return_value=_vector(("both", 0.9), ("vec_only", 0.8)))
    fulltext = MagicMock()
    fulltext.search = AsyncMock(return_value=_fulltext(("both", 0.5), ("text_only", 1.0)))
    graph = MagicMock()
    graph.search = AsyncMock(return_value=[_result("g", 0.5, RetrievalMode.GRAPH)])
    return vector, fulltext, graph


@pytest.fixture
def retriever(indexes):
    return HybridRetriever(*indexes)


class TestFusion:
    """Tests for weighted score fusion."""

    @pytest.mark.asyncio
    async def test_fusion_arithmetic(self, retriever):
        """Both-found documents sum weighted scores; single-found are weighted alone."""
        results = await retriever.search("query", "hybrid", 10)
        scores = {r.id: r.score for r in results}

        assert scores["both"] == pytest.approx(0.6 * 0.9 + 0.4 * 0.5)
        assert scores["both"] == pytest.approx(0.74)
        assert scores["vec_only"] == pytest.approx(0.48)
        assert scores["text_only"] == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_sorted_and_truncated(self, retriever):
        """Fused results are sorted by score and cut to limit."""
        results = await retriever.search("query", "hybrid", 2)

        assert [r.id for r in results] == ["both", "vec_only"]
        assert all(r.source == RetrievalMode.HYBRID for r in results)

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self, indexes):
        """Equal fused scores are ordered by id."""
        vector, fulltext, graph = indexes
        vector.search_text.return_value = _vector(("b", 0.5), ("a", 0.5))
        fulltext.search.return_value = []

        results = await HybridRetriever(vector, fulltext, graph).search("q", "hybrid", 5)

        assert [r.id for r in results] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_subsearches_get_double_limit(self, retriever, indexes):
        """Each sub-search is asked for twice the limit; graph is not used."""
        vector, fulltext, graph = indexes

        await retriever.retrieve("query", "hybrid", 3)

        assert vector.search_text.await_args.args[1] == 6
        assert fulltext.search.await_args.args[1] == 6
        graph.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_weights(self, indexes):
        """Fusion weights are configurable."""
        retriever = HybridRetriever(*indexes, vector_weight=0.5, fulltext_weight=0.5)

        results = await retriever.search("query", "hybrid", 10)

        assert {r.id: r.score for r in results}["both"] == pytest.approx(0.7)

    def test_fuse_does_not_mutate_inputs(self, retriever):
        """Fusion returns copies; strategy results keep their scores."""
        vector_results = _vector(("x", 0.9))
        retriever.fuse(vector_results, [], 5)
        assert vector_results[0].score == 0.9
        assert vector_results[0].source == RetrievalMode.VECTOR


class TestPartialFailure:
    """Tests for hybrid-mode error handling."""

    @pytest.mark.asyncio
    async def test_failed_subsearch_recorded(self, retriever, indexes):
        """A failing sub-search contributes nothing and is reported."""
        vector, _, _ = indexes
        vector.search_text.side_effect = EmbeddingError("provider down")

        result = await retriever.retrieve("query", "hybrid", 10)

        assert result.partial is True
        assert RetrievalMode.VECTOR in result.errors
        assert "provider down" in result.errors[RetrievalMode.VECTOR]
        assert result.ids == ["text_only", "both"]
        assert result.results[0].score == pytest.approx(0.4)

    @pytest.mark.asyncio
    async def test_both_failed_returns_empty(self, retriever, indexes):
        """If every sub-search fails, hybrid returns no results and both errors."""
        vector, fulltext, _ = indexes
        vector.search_text.side_effect = EmbeddingError("provider down")
        fulltext.search.side_effect = PermanentStorageError("disk gone")

        result = await retriever.retrieve("query", "hybrid", 10)

        assert result.results == []
        assert set(result.errors) == {RetrievalMode.VECTOR, RetrievalMode.FULLTEXT}

    @pytest.mark.asyncio
    async def test_strict_raises(self, retriever, indexes):
        """strict=True surfaces the sub-search error."""
        vector, _, _ = indexes
        vector.search_text.side_effect = EmbeddingError("provider down")

        with pytest.raises(EmbeddingError):
            await retriever.retrieve("query", "hybrid", 10, strict=True)

    @pytest.mark.asyncio
    async def test_single_mode_propagates(self, retriever, indexes):
        """Single-strategy modes never swallow errors."""
        _, fulltext, _ = indexes
        fulltext.search.side_effect = PermanentStorageError("disk gone")

        with pytest.raises(PermanentStorageError):
            await retriever.retrieve("query", "fulltext", 10)


class TestModeDispatch:
    """Tests for mode resolution and defaults."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode,expected", [
        ("vector", "vec_only"),
        ("FULLTEXT", "text_only"),
        (" graph ", "g"),
        (RetrievalMode.VECTOR, "vec_only"),
    ])
    async def test_single_modes(self, retriever, mode, expected):
        """Each single mode runs only its strategy."""
        result = await retriever.retrieve("query", mode, 10)
        assert expected in result.ids
        assert result.errors == {}

    @pytest.mark.asyncio
    async def test_unknown_mode(self, retriever):
        """An unrecognized mode raises UnknownModeError (a ValueError)."""
        with pytest.raises(UnknownModeError) as exc_info:
            await retriever.retrieve("query", "semantic", 5)

        assert exc_info.value.mode == "semantic"
        assert isinstance(exc_info.value, ValueError)

    @pytest.mark.asyncio
    async def test_default_limit(self, retriever, indexes):
        """limit <= 0 uses the default of 5."""
        _, fulltext, _ = indexes

        await retriever.retrieve("query", "fulltext", 0)

        assert fulltext.search.await_args.args[1] == 5

    @pytest.mark.asyncio
    async def test_default_mode_is_hybrid(self, retriever):
        """No mode means hybrid."""
        result = await retriever.retrieve("query")
        assert result.mode == RetrievalMode.HYBRID

    @pytest.mark.asyncio
    async def test_filters_and_threshold_forwarded(self, retriever, indexes):
        """Vector gets threshold and filters; full-text gets filters."""
        vector, fulltext, _ = indexes

        await retriever.retrieve("query", "hybrid", 2, threshold=0.3, filters={"lang": "en"})

        assert vector.search_text.await_args.kwargs == {"threshold": 0.3, "filters": {"lang": "en"}}
        assert fulltext.search.await_args.kwargs == {"filters": {"lang": "en"}}

    def test_invalid_default_mode(self, indexes):
        """A bad default mode is rejected at construction."""
        with pytest.raises(UnknownModeError):
            HybridRetriever(*indexes, default_mode="nope")
