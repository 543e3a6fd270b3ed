"""
Tests for the KnowledgeBase facade and CLI.

Tests cover:
- Instantiation and lazy initialization
- Provider factory
- Store / retrieve / graph operations end to end (fake embeddings)
- Stats, persistence, context managers, sync wrappers
- CLI commands
"""

import asyncio
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from fakes import FakeEmbeddingProvider
from hybrid_rag.api.knowledge_base import KnowledgeBase
from hybrid_rag.cli import app
from hybrid_rag.config import RAGConfig
from hybrid_rag.errors import UnknownModeError
from hybrid_rag.types import EmbeddingStatus, RetrievalMode

DOCS = [
    {"id": "doc1", "content": "Eino is great", "lang": "en"},
    {"id": "doc2", "content": "Hello world", "lang": "en"},
    {"id": "doc3", "content": "Hallo Welt", "lang": "de"},
]


@pytest.fixture
def kb(tmp_path):
    return KnowledgeBase(tmp_path / "kb", embeddings=FakeEmbeddingProvider())


class TestInstantiation:
    """Tests for KnowledgeBase instantiation."""

    def test_path_resolved(self, tmp_path):
        """The path is resolved and nothing is opened yet."""
        kb = KnowledgeBase(tmp_path / "kb")

        assert kb.path == (tmp_path / "kb").resolve()
        assert kb.is_initialized is False
        assert not (tmp_path / "kb").exists()

    def test_custom_config(self, tmp_path):
        """A given config is used as-is."""
        config = RAGConfig(default_limit=3)
        assert KnowledgeBase(tmp_path, config=config).config is config

    def test_query_before_init_raises(self, kb):
        """Traversals need an initialized knowledge base."""
        with pytest.raises(RuntimeError, match="not initialized"):
            kb.query()


class TestLazyInit:
    """Tests for lazy initialization."""

    @pytest.mark.asyncio
    async def test_creates_directory_and_database(self, kb):
        """First use creates the directory and the DuckDB file."""
        await kb.initialize()
        try:
            assert kb.is_initialized
            assert (kb.path / "rag.duckdb").exists()
        finally:
            await kb.close()

    @pytest.mark.asyncio
    async def test_missing_directory_with_create_false(self, tmp_path):
        """create=False refuses to make a new knowledge base."""
        kb = KnowledgeBase(tmp_path / "absent", create=False)

        with pytest.raises(FileNotFoundError, match="Knowledge base not found"):
            await kb.initialize()

    @pytest.mark.asyncio
    async def test_concurrent_first_use_sets_up_once(self, kb):
        """Concurrent first calls share one setup."""
        original = kb._setup
        calls = []

        async def counting_setup():
            calls.append(1)
            await asyncio.sleep(0)
            await original()

        kb._setup = counting_setup
        try:
            await asyncio.gather(*(kb.stats() for _ in range(5)))
            assert calls == [1]
        finally:
            await kb.close()

    @pytest.mark.asyncio
    async def test_in_memory_database(self, tmp_path):
        """database_file=":memory:" keeps nothing on disk."""
        config = RAGConfig(database_file=":memory:")
        kb = KnowledgeBase(tmp_path / "mem", config=config, embeddings=FakeEmbeddingProvider())

        async with kb:
            await kb.store(DOCS)
            assert (await kb.stats())["documents"] == 3

        assert not (tmp_path / "mem" / ":memory:").exists()


class TestProviderFactory:
    """Tests for embedding provider creation."""

    def test_openai_provider(self, tmp_path):
        """The OpenAI provider gets the configured key and model."""
        config = RAGConfig(embedding_provider="openai", openai_api_key="test-key")
        kb = KnowledgeBase(tmp_path, config=config)

        with patch("hybrid_rag.providers.embedding.openai.OpenAIEmbeddingProvider") as mock_provider:
            mock_provider.return_value = MagicMock()
            kb._create_embedding_provider()

        mock_provider.assert_called_once_with(
            api_key="test-key",
            model=config.embedding_model,
            dimensions=config.embedding_dimensions,
        )

    def test_unknown_provider(self, tmp_path):
        """Unknown providers raise ValueError."""
        kb = KnowledgeBase(tmp_path, config=RAGConfig(embedding_provider="unknown"))

        with pytest.raises(ValueError, match="Unknown embedding provider"):
            kb._create_embedding_provider()


class TestStoreAndRetrieve:
    """End-to-end tests through the facade."""

    @pytest.mark.asyncio
    async def test_hybrid_retrieval(self, kb):
        """The exact text ranks its document first in hybrid mode."""
        async with kb:
            ids = await kb.store(DOCS)
            results = await kb.retrieve("Eino is great", mode="hybrid", limit=5)

        assert ids == ["doc1", "doc2", "doc3"]
        assert results[0].id == "doc1"
        assert results[0].source == RetrievalMode.HYBRID
        assert results[0].score == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_fulltext_retrieval(self, kb):
        """Full-text mode returns only keyword matches."""
        async with kb:
            await kb.store(DOCS)
            results = await kb.retrieve("Eino", mode="fulltext", limit=10)

        assert [(r.id, r.score) for r in results] == [("doc1", 1.0)]

    @pytest.mark.asyncio
    async def test_filters(self, kb):
        """Metadata filters reach the strategies."""
        async with kb:
            await kb.store(DOCS)
            results = await kb.retrieve("Hallo Welt", mode="vector", filters={"lang": "en"})

        assert "doc3" not in [r.id for r in results]

    @pytest.mark.asyncio
    async def test_graph_retrieval_follows_relate(self, kb):
        """relate() adds the edge graph mode expands along."""
        async with kb:
            await kb.store(DOCS)
            await kb.relate("doc1", "doc3")
            results = await kb.retrieve("eino", mode="graph", limit=10)

        assert [r.id for r in results] == ["doc1", "doc3"]
        assert all(r.score == 0.5 for r in results)

    @pytest.mark.asyncio
    async def test_retrieve_detailed_reports_errors(self, kb):
        """retrieve_detailed exposes sub-search failures in hybrid mode."""
        async with kb:
            await kb.store(DOCS)
            kb._embeddings.fail_on_call = len(kb._embeddings.calls) + 1
            result = await kb.retrieve_detailed("Eino", mode="hybrid")

        assert result.partial
        assert RetrievalMode.VECTOR in result.errors
        assert result.ids == ["doc1"]

    @pytest.mark.asyncio
    async def test_unknown_mode(self, kb):
        """Unknown modes raise UnknownModeError."""
        async with kb:
            with pytest.raises(UnknownModeError):
                await kb.retrieve("Eino", mode="semantic")

    @pytest.mark.asyncio
    async def test_graph_operations(self, kb):
        """link, neighbors, find_path and query work through the facade."""
        async with kb:
            await kb.link("doc1", "related", "doc2")
            await kb.link("doc2", "related", "doc3")

            assert await kb.neighbors("doc1", "related") == ["doc2"]
            assert await kb.neighbors("doc2", "related", incoming=True) == ["doc1"]
            assert await kb.find_path("doc1", "doc3", max_depth=5, predicate="related") == [
                ["doc1", "doc2", "doc3"]
            ]
            assert await kb.query().v("doc1").out("related").out("related").values() == ["doc3"]

            await kb.unlink("doc1", "related", "doc2")
            assert await kb.neighbors("doc1", "related") == []

    @pytest.mark.asyncio
    async def test_documents_listing(self, kb):
        """get_document and list_documents read back stored rows."""
        async with kb:
            await kb.store(DOCS)
            doc = await kb.get_document("doc3")
            listed = await kb.list_documents(limit=2)

        assert doc.metadata == {"lang": "de"}
        assert doc.status == EmbeddingStatus.COMPLETED
        assert [d.id for d in listed] == ["doc1", "doc2"]

    @pytest.mark.asyncio
    async def test_stats(self, kb):
        """stats counts documents by status and triples."""
        async with kb:
            await kb.store(DOCS)
            await kb.relate("doc1", "doc2")
            stats = await kb.stats()

        assert stats["documents"] == 3
        assert stats["completed"] == 3
        assert stats["pending"] == 0
        # Three self-links plus one related edge
        assert stats["triples"] == 4

    @pytest.mark.asyncio
    async def test_deferred_embeddings(self, tmp_path):
        """With deferred embeddings, drain() leaves nothing pending."""
        config = RAGConfig(defer_embeddings=True, embedding_rate_limit=1000.0)
        kb = KnowledgeBase(tmp_path, config=config, embeddings=FakeEmbeddingProvider())

        async with kb:
            await kb.store(DOCS)
            await kb.drain()
            stats = await kb.stats()

        assert stats["pending"] == 0
        assert stats["completed"] == 3

    @pytest.mark.asyncio
    async def test_data_persists_across_instances(self, tmp_path):
        """A reopened knowledge base sees earlier writes."""
        async with KnowledgeBase(tmp_path, embeddings=FakeEmbeddingProvider()) as kb:
            await kb.store(DOCS)

        async with KnowledgeBase(tmp_path, embeddings=FakeEmbeddingProvider(), create=False) as kb:
            doc = await kb.get_document("doc1")

        assert doc.content == "Eino is great"


class TestSyncAPI:
    """Tests for sync wrappers."""

    def test_sync_round_trip(self, tmp_path):
        """Sync wrappers work across separate event loops."""
        with KnowledgeBase(tmp_path, embeddings=FakeEmbeddingProvider()) as kb:
            kb.store_sync(DOCS)
            results = kb.retrieve_sync("Eino", mode="fulltext")
            paths = kb.find_path_sync("doc1", "doc1")
            stats = kb.stats_sync()

        assert [r.id for r in results] == ["doc1"]
        assert paths == [["doc1"]]
        assert stats["documents"] == 3
        assert kb.is_initialized is False

    def test_store_sync_waits_for_deferred_drain(self, tmp_path):
        """store_sync returns after background embeddings finish."""
        config = RAGConfig(defer_embeddings=True, embedding_rate_limit=1000.0)
        with KnowledgeBase(tmp_path, config=config, embeddings=FakeEmbeddingProvider()) as kb:
            kb.store_sync(DOCS[:1])
            stats = kb.stats_sync()

        assert stats["completed"] == 1


class TestCLI:
    """Tests for CLI commands."""

    @pytest.fixture
    def populated(self, tmp_path):
        with KnowledgeBase(tmp_path, embeddings=FakeEmbeddingProvider()) as kb:
            kb.store_sync(DOCS)
            asyncio.run(kb.relate("doc1", "doc2"))
        return tmp_path

    def test_cli_help(self):
        """Help lists every command."""
        result = CliRunner().invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("info", "neighbors", "path", "drain"):
            assert command in result.stdout

    def test_cli_info(self, populated):
        """info prints document and triple counts."""
        result = CliRunner().invoke(app, ["info", "--kb", str(populated)])

        assert result.exit_code == 0
        assert "Documents" in result.stdout
        assert "Triples" in result.stdout

    def test_cli_neighbors(self, populated):
        """neighbors prints one-hop neighbours."""
        result = CliRunner().invoke(
            app, ["neighbors", "doc1", "--predicate", "related", "--kb", str(populated)]
        )

        assert result.exit_code == 0
        assert "doc2" in result.stdout

    def test_cli_path(self, populated):
        """path prints the found path."""
        result = CliRunner().invoke(app, ["path", "doc1", "doc2", "--kb", str(populated)])

        assert result.exit_code == 0
        assert "doc1 -> doc2" in result.stdout

    def test_cli_drain_nothing_pending(self, populated):
        """drain reports zero work when nothing is pending."""
        result = CliRunner().invoke(app, ["drain", "--kb", str(populated)])

        assert result.exit_code == 0
        assert "Completed: 0" in result.stdout

    def test_cli_missing_kb(self, tmp_path):
        """A missing knowledge base directory is a usage error."""
        result = CliRunner().invoke(app, ["info", "--kb", str(tmp_path / "absent")])
        assert result.exit_code != 0
