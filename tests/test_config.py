"""Tests for RAGConfig."""

import pytest

from hybrid_rag.config import RAGConfig

ENV_VARS = [
    "OPENAI_API_KEY",
    "HYBRID_RAG_EMBEDDING_PROVIDER",
    "HYBRID_RAG_EMBEDDING_MODEL",
    "HYBRID_RAG_EMBEDDING_BATCH_SIZE",
    "HYBRID_RAG_EMBEDDING_RATE_LIMIT",
    "HYBRID_RAG_DEFER_EMBEDDINGS",
    "HYBRID_RAG_DEFAULT_MODE",
    "HYBRID_RAG_FULLTEXT_MATCH",
    "HYBRID_RAG_DATABASE_FILE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for default values."""

    def test_defaults(self):
        """Defaults match the documented behaviour."""
        config = RAGConfig()

        assert config.embedding_provider == "openai"
        assert config.embedding_batch_size == 10
        assert config.embedding_rate_limit == 5.0
        assert config.defer_embeddings is False
        assert config.default_limit == 5
        assert config.default_mode == "hybrid"
        assert config.vector_weight == 0.6
        assert config.fulltext_weight == 0.4
        assert config.graph_score == 0.5
        assert config.fulltext_match == "and"
        assert config.path_max_depth == 10
        assert config.path_max_results == 100
        assert config.database_file == "rag.duckdb"
        assert config.openai_api_key is None

    def test_keyword_overrides(self):
        """Keyword arguments override defaults."""
        config = RAGConfig(default_limit=20, fulltext_match="or")
        assert config.default_limit == 20
        assert config.fulltext_match == "or"

    def test_unknown_option_raises(self):
        """Unknown options are rejected."""
        with pytest.raises(ValueError, match="Unknown configuration option"):
            RAGConfig(no_such_setting=1)


class TestEnvironment:
    """Tests for environment loading."""

    def test_env_overrides(self, monkeypatch):
        """HYBRID_RAG_* and OPENAI_API_KEY are read at construction."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("HYBRID_RAG_DEFAULT_MODE", "vector")
        monkeypatch.setenv("HYBRID_RAG_EMBEDDING_BATCH_SIZE", "32")
        monkeypatch.setenv("HYBRID_RAG_EMBEDDING_RATE_LIMIT", "2.5")
        monkeypatch.setenv("HYBRID_RAG_DEFER_EMBEDDINGS", "true")

        config = RAGConfig.from_env()

        assert config.openai_api_key == "sk-test"
        assert config.default_mode == "vector"
        assert config.embedding_batch_size == 32
        assert config.embedding_rate_limit == 2.5
        assert config.defer_embeddings is True

    def test_explicit_beats_env(self, monkeypatch):
        """Explicit arguments win over the environment."""
        monkeypatch.setenv("HYBRID_RAG_DEFAULT_MODE", "vector")
        assert RAGConfig(default_mode="graph").default_mode == "graph"

    def test_falsy_defer_flag(self, monkeypatch):
        """Values other than 1/true/yes/on disable deferral."""
        monkeypatch.setenv("HYBRID_RAG_DEFER_EMBEDDINGS", "0")
        assert RAGConfig().defer_embeddings is False


class TestFiles:
    """Tests for TOML loading and saving."""

    def test_from_file_sections(self, tmp_path):
        """Sections are flattened into config keys."""
        path = tmp_path / "rag.toml"
        path.write_text(
            "[embedding]\n"
            'model = "text-embedding-3-large"\n'
            "batch_size = 16\n"
            "rate_limit = 1.5\n"
            "\n"
            "[ingestion]\n"
            "defer_embeddings = true\n"
            "\n"
            "[retry]\n"
            "attempts = 3\n"
            "\n"
            "[retrieval]\n"
            'fulltext_match = "or"\n'
            "\n"
            "[graph]\n"
            "max_depth = 4\n"
            "\n"
            "[storage]\n"
            'triples_table = "edges"\n'
            "\n"
            "[api_keys]\n"
            'openai = "sk-file"\n'
        )

        config = RAGConfig.from_file(path)

        assert config.embedding_model == "text-embedding-3-large"
        assert config.embedding_batch_size == 16
        assert config.embedding_rate_limit == 1.5
        assert config.defer_embeddings is True
        assert config.write_retry_attempts == 3
        assert config.fulltext_match == "or"
        assert config.path_max_depth == 4
        assert config.triples_table == "edges"
        assert config.openai_api_key == "sk-file"

    def test_from_file_unknown_key(self, tmp_path):
        """Unknown keys in a file are rejected."""
        path = tmp_path / "rag.toml"
        path.write_text("[retrieval]\nbogus = 1\n")

        with pytest.raises(ValueError):
            RAGConfig.from_file(path)

    def test_from_file_missing(self, tmp_path):
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            RAGConfig.from_file(tmp_path / "absent.toml")

    def test_to_file_round_trip(self, tmp_path):
        """A saved config loads back with the same values (keys excluded)."""
        original = RAGConfig(
            embedding_batch_size=25,
            defer_embeddings=True,
            write_retry_max_wait=1.0,
            path_max_results=7,
            openai_api_key="sk-secret",
        )
        path = tmp_path / "nested" / "rag.toml"

        original.to_file(path)
        loaded = RAGConfig.from_file(path)

        assert "sk-secret" not in path.read_text()
        assert loaded.embedding_batch_size == 25
        assert loaded.defer_embeddings is True
        assert loaded.write_retry_max_wait == 1.0
        assert loaded.path_max_results == 7


class TestWithOverrides:
    """Tests for with_overrides."""

    def test_returns_new_config(self):
        """Overrides produce a copy and leave the original untouched."""
        base = RAGConfig()
        changed = base.with_overrides(default_limit=9)

        assert changed.default_limit == 9
        assert base.default_limit == 5
        assert changed.vector_weight == base.vector_weight

    def test_unknown_override(self):
        """Unknown overrides are rejected."""
        with pytest.raises(ValueError):
            RAGConfig().with_overrides(nope=True)
