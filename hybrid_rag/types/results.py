"""
Result Types

API Result Models:
    - QueryResult: One ranked document from any retrieval strategy
    - RetrievalResult: Ranked list plus per-mode failures
    - RetrievalMode: Which strategy (or fusion) to run
    - DrainReport: Outcome of one pending-embedding drain pass
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel

from hybrid_rag.errors import UnknownModeError


class RetrievalMode(str, Enum):
    """Retrieval strategies. HYBRID fuses VECTOR and FULLTEXT."""

    VECTOR = "vector"
    FULLTEXT = "fulltext"
    GRAPH = "graph"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: "str | RetrievalMode") -> "RetrievalMode":
        """Convert a mode string, raising UnknownModeError if unrecognized."""
        if isinstance(value, RetrievalMode):
            return value
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise UnknownModeError(str(value)) from None


class QueryResult(BaseModel):
    """
    A read-only projection of a document produced by a search.

    Attributes:
        id: Document id
        content: Document content
        metadata: Document metadata
        score: Relevance score (strategy-specific, or fused)
        source: Strategy that produced the score
    """

    id: str
    content: str
    metadata: dict[str, Any] = {}
    score: float
    source: RetrievalMode


class RetrievalResult(BaseModel):
    """
    Ranked results together with the failures of individual strategies.

    In hybrid mode a failing sub-search does not sink the whole call; its
    error message is kept in `errors` under the mode name.
    """

    mode: RetrievalMode
    results: list[QueryResult] = []
    errors: dict[RetrievalMode, str] = {}

    @property
    def partial(self) -> bool:
        """True when at least one strategy failed."""
        return bool(self.errors)

    @property
    def ids(self) -> list[str]:
        return [r.id for r in self.results]


class DrainReport(BaseModel):
    """
    Outcome of one process_pending_embeddings pass.

    Attributes:
        completed: Ids whose embedding was stored
        failed: Ids marked failed (provider error or empty vector)
        skipped: True if another drain was already running
    """

    completed: list[str] = []
    failed: list[str] = []
    skipped: bool = False

    @property
    def processed(self) -> int:
        return len(self.completed) + len(self.failed)
