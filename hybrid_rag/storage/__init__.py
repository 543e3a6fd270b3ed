"""
Storage Layer

Modules:
    duckdb: Database handle, transactions, identifier checks, retry policy
    triples: TripleStore graph and GraphQuery traversal builder
    documents: DocumentStore table, embedding status transitions

Both stores share one DuckDBDatabase so ingestion can write documents and
their graph self-links in a single transaction.
"""

from hybrid_rag.storage.documents import DocumentRow, DocumentStore
from hybrid_rag.storage.duckdb import DuckDBDatabase, WritePolicy
from hybrid_rag.storage.triples import GraphQuery, TripleStore

__all__ = [
    "DocumentRow",
    "DocumentStore",
    "DuckDBDatabase",
    "GraphQuery",
    "TripleStore",
    "WritePolicy",
]
