"""
Ingestion Pipeline

Writes documents in chunks and keeps their embeddings moving through the
status machine.

Two ways to embed:
    - Synchronous (default): each chunk is embedded with one provider call
      before it is written, and rows land as completed.
    - Deferred (defer_embeddings=True): rows land as pending and are
      embedded later by process_pending_embeddings(), which runs
      opportunistically after each insert and from an optional worker.

Chunk semantics:
    Each chunk's upserts and graph self-links commit in one transaction.
    A failing chunk stops the call; chunks already committed stay. The
    raised IngestionError lists their ids in committed_ids.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from hybrid_rag.errors import EmbeddingError, IngestionError
from hybrid_rag.providers.base import EmbeddingProvider
from hybrid_rag.storage.documents import DocumentRow, DocumentStore
from hybrid_rag.storage.duckdb import WritePolicy
from hybrid_rag.storage.triples import TripleStore
from hybrid_rag.types import Document, DocumentInput, DrainReport, EmbeddingStatus
from hybrid_rag.utils.ratelimit import TokenBucket
from hybrid_rag.utils.text import Tokenizer, index_tokens

logger = logging.getLogger(__name__)

IS_DOCUMENT = "is_document"
"""Predicate of the self-link every ingested document receives"""


class IngestionPipeline:
    """
    Batched document ingestion and pending-embedding drains.

    Usage:
        pipeline = IngestionPipeline(documents, triples, embeddings)
        ids = await pipeline.insert_batch([{"id": "a", "content": "..."}])

    Args:
        documents: Document table
        triples: Graph store (must share the document store's database)
        embeddings: Embedding provider
        tokenizer: Optional segmenting tokenizer for content_tokens
        batch_size: Documents per embedding call and per transaction
        defer_embeddings: Write rows as pending instead of embedding inline
        drain_batch_size: Pending rows claimed per drain pass
        limiter: Token bucket gating embedding calls in drains
        policy: Retry policy for chunk transactions
    """

    def __init__(
        self,
        documents: DocumentStore,
        triples: TripleStore,
        embeddings: EmbeddingProvider,
        *,
        tokenizer: Tokenizer | None = None,
        batch_size: int = 10,
        defer_embeddings: bool = False,
        drain_batch_size: int = 10,
        limiter: TokenBucket | None = None,
        policy: WritePolicy | None = None,
    ) -> None:
        if documents.db is not triples.db:
            raise ValueError("documents and triples must share one database")
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        self.documents = documents
        self.triples = triples
        self.embeddings = embeddings
        self.tokenizer = tokenizer
        self.batch_size = batch_size
        self.defer_embeddings = defer_embeddings
        self.drain_batch_size = drain_batch_size
        self.limiter = limiter or TokenBucket(rate=5.0, burst=1)
        self.policy = policy or documents.policy

        self._drain_lock = threading.Lock()
        self._tasks: set[asyncio.Task[DrainReport]] = set()
        self._worker: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # Batch insert
    # -------------------------------------------------------------------------

    async def insert_batch(
        self,
        docs: Iterable[DocumentInput | Mapping[str, Any]],
    ) -> list[str]:
        """
        Validate, embed and store documents in chunks of batch_size.

        Every document is validated before anything is written.

        Returns:
            Ids of stored documents, in input order

        Raises:
            ValidationError: If any document is malformed (nothing written)
            IngestionError: If a chunk fails; earlier chunks stay committed
        """
        inputs = [DocumentInput.coerce(d) for d in docs]
        if not inputs:
            return []

        committed: list[str] = []
        total_chunks = (len(inputs) + self.batch_size - 1) // self.batch_size

        for index, start in enumerate(range(0, len(inputs), self.batch_size), start=1):
            chunk = inputs[start:start + self.batch_size]
            try:
                rows = await self._prepare_chunk(chunk)
                await self.policy.call(self.documents.db.run, self._write_chunk, rows)
            except Exception as e:
                logger.error(
                    f"Ingestion chunk {index}/{total_chunks} failed after "
                    f"{len(committed)} committed document(s). Error: {e}"
                )
                raise IngestionError(
                    f"chunk {index}/{total_chunks} failed: {e}",
                    committed_ids=committed,
                ) from e
            committed.extend(row.id for row in rows)

        logger.info(
            f"Inserted {len(committed)} document(s) in {total_chunks} chunk(s)"
            + (" (embeddings deferred)" if self.defer_embeddings else "")
        )

        if self.defer_embeddings:
            self.schedule_drain()
        return committed

    async def _prepare_chunk(self, chunk: list[DocumentInput]) -> list[DocumentRow]:
        """Embed a chunk (unless deferred) and build its rows."""
        texts = [doc.content for doc in chunk if doc.content]
        vectors: list[list[float]] = []
        if texts and not self.defer_embeddings:
            vectors = await self._embed(texts)

        rows = []
        remaining = iter(vectors)
        for doc in chunk:
            tokens = index_tokens(doc.content, self.tokenizer)
            if not doc.content:
                # Nothing to embed
                status, vector = EmbeddingStatus.COMPLETED, None
            elif self.defer_embeddings:
                status, vector = EmbeddingStatus.PENDING, None
            else:
                vector = next(remaining)
                if vector:
                    status = EmbeddingStatus.COMPLETED
                else:
                    logger.warning(f"Empty embedding for document {doc.id}, marking failed")
                    status, vector = EmbeddingStatus.FAILED, None
            rows.append(DocumentRow(
                id=doc.id,
                content=doc.content,
                metadata=doc.metadata,
                vector=vector,
                status=status,
                content_tokens=tokens,
            ))
        return rows

    async def _embed(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self.embeddings.embed(texts)
        except Exception as e:
            raise EmbeddingError(f"embedding provider failed: {e}") from e
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"vector count mismatch: got {len(vectors)} vectors for {len(texts)} texts"
            )
        return vectors

    def _write_chunk(self, rows: list[DocumentRow]) -> None:
        """Upsert rows and their self-links in one transaction (blocking)."""
        with self.documents.db.transaction() as conn:
            self.documents.upsert_rows(conn, rows)
            for row in rows:
                self.triples.link_in(conn, row.id, IS_DOCUMENT, row.id)

    # -------------------------------------------------------------------------
    # Pending drain
    # -------------------------------------------------------------------------

    @property
    def draining(self) -> bool:
        """Whether a drain pass is in flight."""
        return self._drain_lock.locked()

    async def process_pending_embeddings(self) -> DrainReport:
        """
        Embed up to drain_batch_size pending documents.

        Each row is claimed with a pending -> processing compare-and-set,
        embedded through the rate limiter, then marked completed (with its
        vector) or failed. Provider errors mark the row failed and the
        pass continues. If a pass is already running this returns
        immediately with skipped=True.
        """
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Embedding drain already running, skipping")
            return DrainReport(skipped=True)
        try:
            return await self._drain()
        finally:
            self._drain_lock.release()

    async def _drain(self) -> DrainReport:
        report = DrainReport()
        pending = await self.documents.fetch_pending(self.drain_batch_size)

        for doc in pending:
            claimed = await self.documents.transition(
                doc.id, EmbeddingStatus.PENDING, EmbeddingStatus.PROCESSING
            )
            if not claimed:
                continue

            try:
                await self._process_claimed(doc, report)
            except BaseException:
                await self._release_claim(doc.id)
                raise

        if report.processed:
            logger.info(
                f"Embedding drain: {len(report.completed)} completed, "
                f"{len(report.failed)} failed"
            )
        return report

    async def _process_claimed(self, doc: Document, report: DrainReport) -> None:
        """Embed and store one processing row, recording the outcome in report."""
        if not doc.content:
            await self.documents.transition(
                doc.id, EmbeddingStatus.PROCESSING, EmbeddingStatus.COMPLETED
            )
            report.completed.append(doc.id)
            return

        await self.limiter.acquire()
        vector = await self._embed_one(doc.id, doc.content)

        if vector:
            if await self.documents.store_vector(doc.id, vector):
                report.completed.append(doc.id)
            else:
                logger.debug(f"Document {doc.id} changed during embedding, vector dropped")
        else:
            await self.documents.transition(
                doc.id, EmbeddingStatus.PROCESSING, EmbeddingStatus.FAILED
            )
            report.failed.append(doc.id)

    async def _release_claim(self, doc_id: str) -> None:
        """Mark an interrupted processing row failed so it does not stay claimed."""
        logger.warning(f"Embedding drain interrupted on document {doc_id}, marking it failed")
        try:
            await self.documents.transition(
                doc_id, EmbeddingStatus.PROCESSING, EmbeddingStatus.FAILED
            )
        except Exception as e:
            logger.error(f"Could not mark document {doc_id} failed: {e}")

    async def _embed_one(self, doc_id: str, content: str) -> list[float] | None:
        """Embed one document for a drain; None means mark it failed."""
        try:
            vectors = await self.embeddings.embed([content])
        except Exception as e:
            logger.warning(f"Embedding failed for document {doc_id}: {e}")
            return None
        if len(vectors) != 1 or not vectors[0]:
            logger.warning(f"Embedding for document {doc_id} was empty or malformed")
            return None
        return vectors[0]

    async def drain_all(self) -> DrainReport:
        """
        Run drain passes until no pending documents are left.

        Waits for in-flight background drains first.
        """
        await self.wait()
        total = DrainReport()
        while True:
            report = await self.process_pending_embeddings()
            if report.skipped:
                # A worker pass is running; let it finish
                await asyncio.sleep(0.01)
                continue
            total.completed.extend(report.completed)
            total.failed.extend(report.failed)
            if not report.processed:
                return total

    def schedule_drain(self) -> asyncio.Task[DrainReport]:
        """Start a drain pass in the background."""
        task = asyncio.get_running_loop().create_task(self.process_pending_embeddings())
        self._tasks.add(task)
        task.add_done_callback(self._drain_done)
        return task

    def _drain_done(self, task: asyncio.Task[DrainReport]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background embedding drain failed: {task.exception()}")

    async def wait(self) -> None:
        """Wait for every background drain started by schedule_drain()."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Worker
    # -------------------------------------------------------------------------

    def start_worker(self, interval: float = 2.0) -> None:
        """Drain pending embeddings every interval seconds until stopped."""
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.get_running_loop().create_task(self._worker_loop(interval))
        logger.info(f"Embedding worker started (every {interval}s)")

    async def _worker_loop(self, interval: float) -> None:
        while True:
            try:
                await self.process_pending_embeddings()
            except Exception as e:
                logger.error(f"Embedding worker pass failed: {e}")
            await asyncio.sleep(interval)

    async def stop_worker(self) -> None:
        """Stop the worker and wait for it to exit."""
        worker, self._worker = self._worker, None
        if worker is None:
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass
        logger.info("Embedding worker stopped")

    async def close(self) -> None:
        await self.stop_worker()
        await self.wait()
