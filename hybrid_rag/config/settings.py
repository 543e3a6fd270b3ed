"""
RAGConfig - Configuration Management

Sensible defaults with full override capability.

Example:
    >>> # Use defaults (reads from environment)
    >>> kb = KnowledgeBase("./kb")

    >>> # Explicit configuration
    >>> config = RAGConfig(
    ...     embedding_model="text-embedding-3-small",
    ...     defer_embeddings=True,
    ... )
    >>> kb = KnowledgeBase("./kb", config=config)

    >>> # From config file
    >>> config = RAGConfig.from_file("./rag.toml")

Environment Variables:
    HYBRID_RAG_EMBEDDING_PROVIDER - Embedding provider name
    HYBRID_RAG_EMBEDDING_MODEL - Embedding model name
    HYBRID_RAG_EMBEDDING_BATCH_SIZE - Documents per embedding call during ingestion
    HYBRID_RAG_EMBEDDING_RATE_LIMIT - Embedding requests per second during drains
    HYBRID_RAG_DEFER_EMBEDDINGS - "1"/"true" to store documents as pending
    HYBRID_RAG_DEFAULT_MODE - Retrieval mode used when none is given
    HYBRID_RAG_FULLTEXT_MATCH - "and" (every token) or "or" (any token)
    HYBRID_RAG_DATABASE_FILE - DuckDB file name inside the knowledge base
    OPENAI_API_KEY - OpenAI API key (standard name)
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, cast

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return cast(dict[str, Any], tomllib.load(f))


class RAGConfig:
    """Configuration for HybridRAG."""

    # === Embedding Configuration ===

    embedding_provider: str = "openai"
    """Embedding provider: "openai" """

    embedding_model: str = "text-embedding-3-small"
    """Embedding model name"""

    embedding_dimensions: int = 1536
    """Embedding vector dimensions (provider-dependent)"""

    # === API Keys ===

    openai_api_key: str | None = None

    # === Ingestion Configuration ===

    embedding_batch_size: int = 10
    """Documents per embedding call (and per write transaction) in insert_batch"""

    embedding_rate_limit: float = 5.0
    """Embedding requests per second allowed during pending drains"""

    embedding_rate_burst: int = 1
    """Token bucket capacity for the drain rate limiter"""

    defer_embeddings: bool = False
    """Store documents as pending and embed them in background drains"""

    drain_batch_size: int = 10
    """Pending rows pulled per drain pass"""

    drain_interval_seconds: float = 2.0
    """Delay between passes of the background drain worker"""

    # === Write Retry Configuration ===

    write_retry_attempts: int = 5
    """Attempts for a graph write under transaction contention"""

    write_retry_initial_wait: float = 0.01
    """First backoff delay in seconds (doubles per attempt, plus jitter)"""

    write_retry_max_wait: float = 0.5
    """Upper bound on a single backoff delay in seconds"""

    # === Retrieval Configuration ===

    default_limit: int = 5
    """Results returned when the caller passes limit <= 0"""

    default_mode: str = "hybrid"
    """Retrieval mode used when the caller passes none"""

    vector_weight: float = 0.6
    """Weight of the vector score in hybrid fusion"""

    fulltext_weight: float = 0.4
    """Weight of the full-text score in hybrid fusion"""

    graph_score: float = 0.5
    """Flat score assigned to every graph-mode result"""

    fulltext_match: str = "and"
    """Full-text policy: "and" requires every token, "or" accepts any"""

    related_predicate: str = "related"
    """Predicate followed when graph search expands seed documents"""

    # === Graph Configuration ===

    path_max_depth: int = 10
    """Default depth bound for find_path when the caller passes <= 0"""

    path_max_results: int = 100
    """Paths collected before find_path stops searching"""

    # === Storage Configuration ===

    database_file: str = "rag.duckdb"
    """DuckDB file inside the knowledge base directory (":memory:" for tests)"""

    documents_table: str = "documents"
    """Table holding documents"""

    triples_table: str = "quads"
    """Table holding graph triples"""

    def __init__(self, **kwargs: Any) -> None:
        """
        Initialize configuration.

        Args:
            **kwargs: Override any configuration option
        """
        # Load from environment first
        self._load_from_env()

        # Apply explicit overrides
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
            else:
                raise ValueError(f"Unknown configuration option: {key}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables."""
        import os

        # API keys (standard names)
        self.openai_api_key = os.getenv("OPENAI_API_KEY")

        # HYBRID_RAG_* prefixed settings
        if provider := os.getenv("HYBRID_RAG_EMBEDDING_PROVIDER"):
            self.embedding_provider = provider
        if model := os.getenv("HYBRID_RAG_EMBEDDING_MODEL"):
            self.embedding_model = model
        if batch_size := os.getenv("HYBRID_RAG_EMBEDDING_BATCH_SIZE"):
            self.embedding_batch_size = int(batch_size)
        if rate := os.getenv("HYBRID_RAG_EMBEDDING_RATE_LIMIT"):
            self.embedding_rate_limit = float(rate)
        if defer := os.getenv("HYBRID_RAG_DEFER_EMBEDDINGS"):
            self.defer_embeddings = defer.strip().lower() in _TRUE_VALUES
        if mode := os.getenv("HYBRID_RAG_DEFAULT_MODE"):
            self.default_mode = mode
        if match := os.getenv("HYBRID_RAG_FULLTEXT_MATCH"):
            self.fulltext_match = match
        if database_file := os.getenv("HYBRID_RAG_DATABASE_FILE"):
            self.database_file = database_file

    @classmethod
    def from_file(cls, path: str | Path) -> "RAGConfig":
        """
        Load configuration from TOML file.

        Nested sections are flattened into config keys.

        Example TOML:
            [embedding]
            provider = "openai"
            model = "text-embedding-3-small"
            batch_size = 10

            [retrieval]
            default_limit = 5
            fulltext_match = "or"

            [api_keys]
            openai = "sk-..."

        Args:
            path: Path to TOML configuration file

        Returns:
            RAGConfig instance with values from file

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file names an unknown option
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        data = _load_toml(path)

        # Flatten nested sections into config keys
        flat_config: dict[str, Any] = {}

        # Map section names to config key prefixes
        section_mapping = {
            "embedding": "embedding_",
            "api_keys": "",  # api_keys.openai -> openai_api_key
            "ingestion": "",
            "retry": "write_retry_",
            "retrieval": "",
            "graph": "path_",
            "storage": "",
        }

        for section, prefix in section_mapping.items():
            if section in data:
                for key, value in data[section].items():
                    if section == "api_keys":
                        flat_config[f"{key}_api_key"] = value
                    else:
                        flat_config[f"{prefix}{key}"] = value

        # Also support flat top-level keys
        for key, value in data.items():
            if key not in section_mapping and not isinstance(value, dict):
                flat_config[key] = value

        return cls(**flat_config)

    @classmethod
    def from_env(cls) -> "RAGConfig":
        """Load configuration from environment variables only."""
        return cls()

    def to_file(self, path: str | Path) -> None:
        """
        Save configuration to TOML file.

        The layout round-trips through from_file. API keys are excluded.

        Args:
            path: Path to write TOML configuration file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        sections: dict[str, dict[str, str | int | float | bool | None]] = {
            "embedding": {
                "provider": self.embedding_provider,
                "model": self.embedding_model,
                "dimensions": self.embedding_dimensions,
                "batch_size": self.embedding_batch_size,
                "rate_limit": self.embedding_rate_limit,
                "rate_burst": self.embedding_rate_burst,
            },
            "ingestion": {
                "defer_embeddings": self.defer_embeddings,
                "drain_batch_size": self.drain_batch_size,
                "drain_interval_seconds": self.drain_interval_seconds,
            },
            "retry": {
                "attempts": self.write_retry_attempts,
                "initial_wait": self.write_retry_initial_wait,
                "max_wait": self.write_retry_max_wait,
            },
            "retrieval": {
                "default_limit": self.default_limit,
                "default_mode": self.default_mode,
                "vector_weight": self.vector_weight,
                "fulltext_weight": self.fulltext_weight,
                "graph_score": self.graph_score,
                "fulltext_match": self.fulltext_match,
                "related_predicate": self.related_predicate,
            },
            "graph": {
                "max_depth": self.path_max_depth,
                "max_results": self.path_max_results,
            },
            "storage": {
                "database_file": self.database_file,
                "documents_table": self.documents_table,
                "triples_table": self.triples_table,
            },
        }

        # Build TOML string manually (avoids extra dependency)
        lines = ["# HybridRAG Configuration", ""]

        for section_name, section_values in sections.items():
            lines.append(f"[{section_name}]")
            for key, value in section_values.items():
                if isinstance(value, str):
                    lines.append(f'{key} = "{value}"')
                elif isinstance(value, bool):
                    lines.append(f"{key} = {str(value).lower()}")
                elif isinstance(value, (int, float)):
                    lines.append(f"{key} = {value}")
            lines.append("")

        lines.extend([
            "# API keys should be set via environment variables:",
            "# OPENAI_API_KEY",
            "",
        ])

        path.write_text("\n".join(lines))

    def with_overrides(self, **kwargs: Any) -> "RAGConfig":
        """Return new config with specified overrides."""
        new_config = RAGConfig.__new__(RAGConfig)
        for key in dir(self):
            if not key.startswith("_") and not callable(getattr(self, key)):
                setattr(new_config, key, getattr(self, key))
        for key, value in kwargs.items():
            if not hasattr(new_config, key):
                raise ValueError(f"Unknown configuration option: {key}")
            setattr(new_config, key, value)
        return new_config
