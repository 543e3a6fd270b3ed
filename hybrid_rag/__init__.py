"""
HybridRAG - Embedded Hybrid Retrieval Engine

A pip-installable retrieval backend that stores documents and entity
relationships in a single DuckDB file and answers queries by fusing
vector similarity, keyword full-text matching and graph traversal.

Example:
    >>> from hybrid_rag import KnowledgeBase
    >>> kb = KnowledgeBase("./my_kb")
    >>> await kb.store([{"id": "doc1", "content": "Eino is great"}])
    >>> results = await kb.retrieve("Eino", mode="hybrid", limit=5)
    >>> print(results[0].id, results[0].score)

Main Classes:
    KnowledgeBase: Primary entry point for all operations
    RAGConfig: Configuration management
"""

__version__ = "0.1.0"

# Public API - lazy imports to avoid loading optional dependencies
def __getattr__(name: str):
    """Lazy import public API components."""

    if name == "KnowledgeBase":
        from hybrid_rag.api.knowledge_base import KnowledgeBase
        return KnowledgeBase

    if name == "RAGConfig":
        from hybrid_rag.config.settings import RAGConfig
        return RAGConfig

    # Types
    if name in (
        "Document",
        "DocumentInput",
        "EmbeddingStatus",
        "QueryResult",
        "RetrievalMode",
        "RetrievalResult",
        "Triple",
    ):
        from hybrid_rag import types
        return getattr(types, name)

    raise AttributeError(f"module 'hybrid_rag' has no attribute {name!r}")


__all__ = [
    # Main classes
    "KnowledgeBase",
    "RAGConfig",

    # Types
    "Document",
    "DocumentInput",
    "EmbeddingStatus",
    "QueryResult",
    "RetrievalMode",
    "RetrievalResult",
    "Triple",

    # Version
    "__version__",
]
