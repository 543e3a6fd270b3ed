"""
Type Definitions

Pydantic models for all data structures.

Storage Models (persisted to DuckDB):
    - Document, EmbeddingStatus - Documents and their embedding lifecycle
    - Triple - Directed labeled graph edges

Input Models (used during ingestion):
    - DocumentInput - Validated document payload

Result Models:
    - QueryResult, RetrievalResult, RetrievalMode - Retrieval output
    - DrainReport - Pending-embedding drain outcome
    - GraphData - Subgraph export
"""

from hybrid_rag.types.documents import Document, DocumentInput, EmbeddingStatus
from hybrid_rag.types.graph import GraphData, Triple
from hybrid_rag.types.results import DrainReport, QueryResult, RetrievalMode, RetrievalResult

__all__ = [
    # Storage Models
    "Document",
    "EmbeddingStatus",
    "Triple",
    # Input Models
    "DocumentInput",
    # Result Models
    "QueryResult",
    "RetrievalResult",
    "RetrievalMode",
    "DrainReport",
    "GraphData",
]
