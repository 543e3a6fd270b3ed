"""
Error Types

Every failure raised by the package derives from RAGError so callers can
catch the whole family with one clause.

Hierarchy:
    RAGError
    ├── ValidationError         - malformed document, illegal status transition
    ├── StorageError
    │   ├── TransientStorageError  - write contention, surfaced after retries
    │   └── PermanentStorageError  - anything else from the database
    ├── EmbeddingError          - provider failure or vector count mismatch
    ├── UnknownModeError        - invalid retrieval mode (also a ValueError)
    ├── GraphQueryError         - traversal executed without a start node
    └── IngestionError          - a chunk failed; earlier chunks stay committed
"""

from __future__ import annotations


class RAGError(Exception):
    """Base class for all hybrid_rag errors."""


class ValidationError(RAGError):
    """Input rejected at a boundary (document shape, identifier, transition)."""


class StorageError(RAGError):
    """Failure reported by the backing database."""


class TransientStorageError(StorageError):
    """Write contention that persisted after all retry attempts."""


class PermanentStorageError(StorageError):
    """Database failure that retrying cannot fix."""


class EmbeddingError(RAGError):
    """Embedding provider failed or returned the wrong number of vectors."""


class UnknownModeError(RAGError, ValueError):
    """Retrieval mode is not one of vector, fulltext, graph, hybrid."""

    def __init__(self, mode: str) -> None:
        super().__init__(f"unknown mode: {mode!r}")
        self.mode = mode


class GraphQueryError(RAGError):
    """Traversal query is incomplete (for example, no start node)."""


class IngestionError(RAGError):
    """
    A batch insert stopped part-way.

    Attributes:
        committed_ids: Document ids from chunks that were durably written
            before the failure. These are not rolled back.
    """

    def __init__(self, message: str, committed_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.committed_ids = list(committed_ids or [])
