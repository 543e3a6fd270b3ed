"""
Shared fixtures: an in-memory DuckDB database, the two stores on top of it,
and pipelines wired to deterministic embedding providers.
"""

from unittest.mock import AsyncMock

import pytest

from fakes import FakeEmbeddingProvider
from hybrid_rag.ingestion import IngestionPipeline
from hybrid_rag.storage import DocumentStore, DuckDBDatabase, TripleStore, WritePolicy
from hybrid_rag.utils.ratelimit import TokenBucket


@pytest.fixture
def db():
    database = DuckDBDatabase(":memory:")
    database.open()
    yield database
    database.close()


@pytest.fixture
def policy():
    return WritePolicy(attempts=5, sleep=AsyncMock())


@pytest.fixture
def documents(db, policy):
    store = DocumentStore(db, policy=policy)
    store.create_schema()
    return store


@pytest.fixture
def triples(db, policy):
    store = TripleStore(db, policy=policy)
    store.create_schema()
    return store


@pytest.fixture
def embeddings():
    return FakeEmbeddingProvider()


@pytest.fixture
def fast_limiter():
    return TokenBucket(rate=1000.0, burst=100)


@pytest.fixture
def make_pipeline(documents, triples, fast_limiter):
    """Factory for pipelines sharing the fixture stores."""

    def _make(embeddings=None, **kwargs):
        kwargs.setdefault("limiter", fast_limiter)
        return IngestionPipeline(
            documents,
            triples,
            embeddings or FakeEmbeddingProvider(),
            **kwargs,
        )

    return _make
