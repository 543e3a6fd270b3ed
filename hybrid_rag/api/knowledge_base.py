"""
KnowledgeBase - Primary Entry Point

The KnowledgeBase class manages a knowledge base directory and exposes
storage, retrieval and graph navigation.

A knowledge base is a directory containing one DuckDB file (rag.duckdb by
default) with two tables:
    - documents: content, metadata, embedding vector and status
    - quads: graph triples (subject, predicate, object)

Example:
    >>> async with KnowledgeBase("./my_kb") as kb:
    ...     await kb.store([{"id": "doc1", "content": "Eino is great"}])
    ...     results = await kb.retrieve("Eino", mode="hybrid", limit=5)

    # Or with sync API
    >>> kb = KnowledgeBase("./my_kb")
    >>> kb.store_sync([{"id": "doc1", "content": "Eino is great"}])
    >>> results = kb.retrieve_sync("Eino")
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hybrid_rag.config.settings import RAGConfig
    from hybrid_rag.ingestion.pipeline import IngestionPipeline
    from hybrid_rag.providers.base import EmbeddingProvider
    from hybrid_rag.retrieval.hybrid import HybridRetriever
    from hybrid_rag.storage.documents import DocumentStore
    from hybrid_rag.storage.duckdb import DuckDBDatabase
    from hybrid_rag.storage.triples import GraphQuery, TripleStore
    from hybrid_rag.types import (
        Document,
        DocumentInput,
        DrainReport,
        GraphData,
        QueryResult,
        RetrievalMode,
        RetrievalResult,
        Triple,
    )
    from hybrid_rag.utils.text import Tokenizer

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"


class KnowledgeBase:
    """
    An embedded hybrid-retrieval knowledge base.

    Args:
        path: Directory for the knowledge base. Created if doesn't exist.
        config: Optional configuration. Uses defaults if not provided.
        embeddings: Optional embedding provider. Built from config if not provided.
        tokenizer: Optional segmenting tokenizer for full-text and graph search.
        create: If True, create directory if missing. Default True.
    """

    def __init__(
        self,
        path: str | Path,
        config: "RAGConfig | None" = None,
        embeddings: "EmbeddingProvider | None" = None,
        tokenizer: "Tokenizer | None" = None,
        create: bool = True,
    ) -> None:
        self._path = Path(path).resolve()
        self._create = create

        # Lazy import to avoid circular imports
        if config is None:
            from hybrid_rag.config import RAGConfig
            config = RAGConfig()
        self._config = config
        self._tokenizer = tokenizer

        # Lazy-initialized components
        self._embeddings: "EmbeddingProvider | None" = embeddings
        self._db: "DuckDBDatabase | None" = None
        self._documents: "DocumentStore | None" = None
        self._triples: "TripleStore | None" = None
        self._pipeline: "IngestionPipeline | None" = None
        self._retriever: "HybridRetriever | None" = None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> None:
        """Lazy initialization of storage and providers on first use."""
        if self._initialized:
            return

        # Concurrent first calls share one setup
        async with self._init_lock:
            if self._initialized:
                return
            await self._setup()
            self._initialized = True

    async def _setup(self) -> None:
        from hybrid_rag.ingestion.pipeline import IngestionPipeline
        from hybrid_rag.retrieval import FulltextIndex, GraphIndex, HybridRetriever, VectorIndex
        from hybrid_rag.storage import DocumentStore, DuckDBDatabase, TripleStore, WritePolicy
        from hybrid_rag.utils.ratelimit import TokenBucket

        config = self._config

        # Create directory if needed
        if self._create:
            self._path.mkdir(parents=True, exist_ok=True)
        elif not self._path.exists():
            raise FileNotFoundError(f"Knowledge base not found: {self._path}")

        if config.database_file == MEMORY_DATABASE:
            db = DuckDBDatabase(MEMORY_DATABASE)
        else:
            db = DuckDBDatabase(self._path / config.database_file)
        await asyncio.to_thread(db.open)

        policy = WritePolicy(
            attempts=config.write_retry_attempts,
            initial_wait=config.write_retry_initial_wait,
            max_wait=config.write_retry_max_wait,
        )
        documents = DocumentStore(db, table=config.documents_table, policy=policy)
        triples = TripleStore(
            db,
            table=config.triples_table,
            policy=policy,
            max_depth=config.path_max_depth,
            max_paths=config.path_max_results,
        )
        await documents.initialize()
        await triples.initialize()

        if self._embeddings is None:
            self._embeddings = self._create_embedding_provider()

        self._pipeline = IngestionPipeline(
            documents,
            triples,
            self._embeddings,
            tokenizer=self._tokenizer,
            batch_size=config.embedding_batch_size,
            defer_embeddings=config.defer_embeddings,
            drain_batch_size=config.drain_batch_size,
            limiter=TokenBucket(config.embedding_rate_limit, config.embedding_rate_burst),
            policy=policy,
        )
        self._retriever = HybridRetriever(
            VectorIndex(documents, self._embeddings),
            FulltextIndex(documents, self._tokenizer, match=config.fulltext_match),
            GraphIndex(
                documents,
                triples,
                self._tokenizer,
                predicate=config.related_predicate,
                score=config.graph_score,
            ),
            default_limit=config.default_limit,
            default_mode=config.default_mode,
            vector_weight=config.vector_weight,
            fulltext_weight=config.fulltext_weight,
        )
        self._db = db
        self._documents = documents
        self._triples = triples
        logger.info(f"Knowledge base ready at {self._path}")

    def _create_embedding_provider(self) -> "EmbeddingProvider":
        """Create embedding provider based on config."""
        provider = self._config.embedding_provider.lower()

        if provider == "openai":
            from hybrid_rag.providers.embedding.openai import OpenAIEmbeddingProvider
            return OpenAIEmbeddingProvider(
                api_key=self._config.openai_api_key,
                model=self._config.embedding_model,
                dimensions=self._config.embedding_dimensions,
            )
        else:
            raise ValueError(f"Unknown embedding provider: {provider}")

    # === Lifecycle ===

    async def initialize(self) -> "KnowledgeBase":
        """Open storage now instead of on first use."""
        await self._ensure_initialized()
        return self

    def __enter__(self) -> "KnowledgeBase":
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit with resource cleanup."""
        self.close_sync()

    async def __aenter__(self) -> "KnowledgeBase":
        """Async context manager entry."""
        await self._ensure_initialized()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Stop background work and release the database (async)."""
        if self._pipeline is not None:
            await self._pipeline.close()
            self._pipeline = None
        if self._db is not None:
            await asyncio.to_thread(self._db.close)
            self._db = None
        self._documents = None
        self._triples = None
        self._retriever = None
        self._initialized = False

    def close_sync(self) -> None:
        """Release all resources (sync)."""
        if self._initialized:
            asyncio.run(self.close())

    # === Properties ===

    @property
    def path(self) -> Path:
        """Path to the knowledge base directory."""
        return self._path

    @property
    def config(self) -> "RAGConfig":
        """Current configuration."""
        return self._config

    @property
    def is_initialized(self) -> bool:
        """Whether storage has been opened."""
        return self._initialized

    @property
    def pipeline(self) -> "IngestionPipeline":
        """Ingestion pipeline (available after initialization)."""
        self._require_initialized()
        assert self._pipeline is not None
        return self._pipeline

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "KnowledgeBase not initialized. Use 'async with' or await initialize() first."
            )

    # === Documents ===

    async def store(
        self,
        documents: Iterable["DocumentInput | Mapping[str, Any]"],
    ) -> list[str]:
        """
        Store documents (upsert by id) and give each a graph self-link.

        Args:
            documents: Mappings with a non-empty string "id", optional
                "content", any other keys kept as metadata

        Returns:
            Stored ids in input order

        Raises:
            ValidationError: If any document is malformed (nothing stored)
            IngestionError: If a chunk fails; committed_ids lists what was kept
        """
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.insert_batch(documents)

    async def get_document(self, doc_id: str) -> "Document | None":
        """Get a document by id."""
        await self._ensure_initialized()
        assert self._documents is not None
        return await self._documents.get(doc_id)

    async def list_documents(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list["Document"]:
        """List documents with pagination, ordered by id."""
        await self._ensure_initialized()
        assert self._documents is not None
        return await self._documents.list_documents(limit=limit, offset=offset)

    async def process_pending_embeddings(self) -> "DrainReport":
        """Run one drain pass over pending embeddings."""
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.process_pending_embeddings()

    async def drain(self) -> "DrainReport":
        """Drain until no pending embeddings remain."""
        await self._ensure_initialized()
        assert self._pipeline is not None
        return await self._pipeline.drain_all()

    async def start_worker(self, interval: float | None = None) -> None:
        """Start the background embedding worker."""
        await self._ensure_initialized()
        assert self._pipeline is not None
        self._pipeline.start_worker(interval or self._config.drain_interval_seconds)

    async def wait(self) -> None:
        """Wait for background embedding drains started by store()."""
        if self._pipeline is not None:
            await self._pipeline.wait()

    # === Retrieval ===

    async def retrieve(
        self,
        query: str,
        mode: "str | RetrievalMode | None" = None,
        limit: int = 0,
        *,
        threshold: float = 0.0,
        filters: Mapping[str, Any] | None = None,
    ) -> list["QueryResult"]:
        """
        Ranked documents for a query.

        Hybrid mode tolerates a failing strategy; use retrieve_detailed()
        to see which one failed.

        Raises:
            UnknownModeError: If mode is not recognized
        """
        result = await self.retrieve_detailed(
            query, mode, limit, threshold=threshold, filters=filters
        )
        return result.results

    async def retrieve_detailed(
        self,
        query: str,
        mode: "str | RetrievalMode | None" = None,
        limit: int = 0,
        *,
        threshold: float = 0.0,
        filters: Mapping[str, Any] | None = None,
        strict: bool = False,
    ) -> "RetrievalResult":
        """Ranked documents plus per-strategy errors (strict=True raises them)."""
        await self._ensure_initialized()
        assert self._retriever is not None
        return await self._retriever.retrieve(
            query,
            mode,
            limit,
            threshold=threshold,
            filters=filters,
            strict=strict,
        )

    # === Graph ===

    async def link(self, subject: str, predicate: str, obj: str) -> None:
        """Add an edge (no-op if it exists)."""
        await self._ensure_initialized()
        assert self._triples is not None
        await self._triples.link(subject, predicate, obj)

    async def unlink(self, subject: str, predicate: str, obj: str) -> None:
        """Remove an edge (no-op if absent)."""
        await self._ensure_initialized()
        assert self._triples is not None
        await self._triples.unlink(subject, predicate, obj)

    async def relate(self, source: str, target: str) -> None:
        """Add the edge graph search follows: source -related-> target."""
        await self.link(source, self._config.related_predicate, target)

    async def neighbors(
        self,
        node: str,
        predicate: str = "",
        *,
        incoming: bool = False,
    ) -> list[str]:
        """One-hop neighbours of node ("" predicate matches any)."""
        await self._ensure_initialized()
        assert self._triples is not None
        if incoming:
            return await self._triples.in_neighbors(node, predicate)
        return await self._triples.neighbors(node, predicate)

    async def find_path(
        self,
        source: str,
        target: str,
        max_depth: int = 0,
        predicate: str = "",
    ) -> list[list[str]]:
        """Shortest path from source to target (see TripleStore.find_path)."""
        await self._ensure_initialized()
        assert self._triples is not None
        return await self._triples.find_path(source, target, max_depth, predicate)

    def query(self) -> "GraphQuery":
        """
        Start a graph traversal.

        Example:
            >>> await kb.query().v("A").out("next").values()
        """
        self._require_initialized()
        assert self._triples is not None
        return self._triples.query()

    async def triples(self) -> list["Triple"]:
        """Every stored edge."""
        await self._ensure_initialized()
        assert self._triples is not None
        return await self._triples.all_triples()

    async def subgraph(self, node: str, depth: int = 1) -> "GraphData":
        """Neighbourhood of node within depth hops, ignoring direction."""
        await self._ensure_initialized()
        assert self._triples is not None
        return await self._triples.subgraph(node, depth)

    # === Statistics ===

    async def stats(self) -> dict[str, int]:
        """Document counts (total and per embedding status) and triple count."""
        await self._ensure_initialized()
        assert self._documents is not None
        assert self._triples is not None

        by_status = await self._documents.count_by_status()
        stats = {"documents": sum(by_status.values())}
        stats.update({status.value: count for status, count in by_status.items()})
        stats["triples"] = await self._triples.count()
        return stats

    # Sync wrappers
    async def _store_and_wait(self, documents: Any) -> list[str]:
        ids = await self.store(documents)
        # Background drains would be cancelled when asyncio.run() returns
        await self.wait()
        return ids

    def store_sync(self, documents: Iterable[Any]) -> list[str]:
        """Sync wrapper for store (waits for any background drain)."""
        return asyncio.run(self._store_and_wait(documents))

    def retrieve_sync(self, query: str, **kwargs: Any) -> list["QueryResult"]:
        """Sync wrapper for retrieve."""
        return asyncio.run(self.retrieve(query, **kwargs))

    def find_path_sync(self, source: str, target: str, **kwargs: Any) -> list[list[str]]:
        """Sync wrapper for find_path."""
        return asyncio.run(self.find_path(source, target, **kwargs))

    def stats_sync(self) -> dict[str, int]:
        """Sync wrapper for stats."""
        return asyncio.run(self.stats())
