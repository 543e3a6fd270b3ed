"""
Document Store

DuckDB table of documents: content, JSON metadata, optional FLOAT[] vector,
embedding status and a revision counter.

Upserts replace content and metadata, reset the embedding state and bump
the revision. Status changes go through compare-and-set updates so two
drainers never process the same row.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import duckdb

from hybrid_rag.errors import ValidationError
from hybrid_rag.storage.duckdb import (
    DuckDBDatabase,
    WritePolicy,
    quote_identifier,
    rows_to_dicts,
    translated_errors,
    validate_identifier,
)
from hybrid_rag.types import Document, EmbeddingStatus

logger = logging.getLogger(__name__)

# Columns selected for every Document read
DOCUMENT_COLUMNS = (
    "id, content, metadata, vector, embedding_status, revision, created_at, updated_at"
)


class DocumentRow:
    """One row to upsert, already validated and (optionally) embedded."""

    __slots__ = ("id", "content", "content_tokens", "metadata", "vector", "status")

    def __init__(
        self,
        id: str,
        content: str,
        metadata: Mapping[str, Any],
        vector: list[float] | None,
        status: EmbeddingStatus,
        content_tokens: str | None = None,
    ) -> None:
        self.id = id
        self.content = content
        self.content_tokens = content_tokens
        self.metadata = dict(metadata)
        self.vector = vector
        self.status = status


class DocumentStore:
    """
    DuckDB-backed document table.

    Args:
        db: Shared database
        table: Table name (checked against the identifier grammar)
        policy: Retry policy for status writes under contention
    """

    def __init__(
        self,
        db: DuckDBDatabase,
        table: str = "documents",
        policy: WritePolicy | None = None,
    ) -> None:
        self.db = db
        self.table = quote_identifier(table)
        self.policy = policy or WritePolicy()

    def create_schema(self) -> None:
        """Create the documents table if missing (blocking)."""
        self.db.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id VARCHAR PRIMARY KEY,
                content VARCHAR NOT NULL DEFAULT '',
                content_tokens VARCHAR,
                metadata VARCHAR NOT NULL DEFAULT '{{}}',
                vector FLOAT[],
                embedding_status VARCHAR NOT NULL DEFAULT 'pending',
                revision INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT current_timestamp,
                updated_at TIMESTAMP DEFAULT current_timestamp
            )
        """)

    async def initialize(self) -> None:
        await self.db.run(self.create_schema)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_rows(self, conn: duckdb.DuckDBPyConnection, rows: list[DocumentRow]) -> None:
        """
        Insert or replace rows by id using a caller-held cursor.

        A replaced row gets the new content, metadata, vector and status,
        and its revision is incremented.
        """
        sql = f"""
            INSERT INTO {self.table}
                (id, content, content_tokens, metadata, vector, embedding_status)
            VALUES (?, ?, ?, ?, ?::FLOAT[], ?)
            ON CONFLICT (id) DO UPDATE SET
                content = excluded.content,
                content_tokens = excluded.content_tokens,
                metadata = excluded.metadata,
                vector = excluded.vector,
                embedding_status = excluded.embedding_status,
                revision = revision + 1,
                updated_at = now()
        """
        with translated_errors():
            for row in rows:
                conn.execute(sql, [
                    row.id,
                    row.content,
                    row.content_tokens,
                    json.dumps(row.metadata, default=str),
                    row.vector,
                    row.status.value,
                ])

    async def transition(
        self,
        doc_id: str,
        from_status: EmbeddingStatus,
        to_status: EmbeddingStatus,
    ) -> bool:
        """
        Move a document between statuses if it is currently in from_status.

        Returns:
            True if this call performed the transition, False if the row was
            missing or in another status.

        Raises:
            ValidationError: If the status machine forbids the transition
        """
        if not from_status.can_transition_to(to_status):
            raise ValidationError(
                f"illegal embedding status transition: {from_status.value} -> {to_status.value}"
            )

        def _update() -> bool:
            row = self.db.execute(
                f"UPDATE {self.table} SET embedding_status = ?, updated_at = current_timestamp "
                "WHERE id = ? AND embedding_status = ? RETURNING id",
                [to_status.value, doc_id, from_status.value],
            ).fetchone()
            return row is not None

        return await self.policy.call(self.db.run, _update)

    async def store_vector(self, doc_id: str, vector: list[float]) -> bool:
        """
        Store a vector for a processing document and mark it completed.

        Returns False if the document is no longer processing (for example
        it was re-inserted meanwhile); the vector is then discarded.
        """
        def _update() -> bool:
            row = self.db.execute(
                f"UPDATE {self.table} SET vector = ?::FLOAT[], embedding_status = ?, "
                "updated_at = current_timestamp "
                "WHERE id = ? AND embedding_status = ? RETURNING id",
                [
                    vector,
                    EmbeddingStatus.COMPLETED.value,
                    doc_id,
                    EmbeddingStatus.PROCESSING.value,
                ],
            ).fetchone()
            return row is not None

        return await self.policy.call(self.db.run, _update)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, doc_id: str) -> Document | None:
        """Get a document by id."""
        def _query() -> Document | None:
            conn = self.db.cursor()
            with translated_errors():
                row = conn.execute(
                    f"SELECT {DOCUMENT_COLUMNS} FROM {self.table} WHERE id = ?",
                    [doc_id],
                ).fetchone()
                if not row:
                    return None
                return self.row_to_document(rows_to_dicts([row], conn)[0])

        return await self.db.run(_query)

    async def get_many(self, ids: list[str]) -> list[Document]:
        """Get documents by id, in the order requested. Missing ids are skipped."""
        if not ids:
            return []

        def _query() -> list[Document]:
            conn = self.db.cursor()
            placeholders = ",".join(["?" for _ in ids])
            with translated_errors():
                rows = conn.execute(
                    f"SELECT {DOCUMENT_COLUMNS} FROM {self.table} WHERE id IN ({placeholders})",
                    list(ids),
                ).fetchall()
                by_id = {
                    record["id"]: self.row_to_document(record)
                    for record in rows_to_dicts(rows, conn)
                }
            return [by_id[i] for i in dict.fromkeys(ids) if i in by_id]

        return await self.db.run(_query)

    async def list_documents(
        self,
        limit: int = 100,
        offset: int = 0,
        status: EmbeddingStatus | None = None,
    ) -> list[Document]:
        """List documents ordered by id, optionally by status."""
        def _query() -> list[Document]:
            conn = self.db.cursor()
            sql = f"SELECT {DOCUMENT_COLUMNS} FROM {self.table}"
            params: list[Any] = []
            if status is not None:
                sql += " WHERE embedding_status = ?"
                params.append(status.value)
            sql += " ORDER BY id LIMIT ? OFFSET ?"
            params.extend([limit, offset])
            with translated_errors():
                rows = conn.execute(sql, params).fetchall()
                return [self.row_to_document(r) for r in rows_to_dicts(rows, conn)]

        return await self.db.run(_query)

    async def fetch_pending(self, limit: int) -> list[Document]:
        """Oldest pending documents first."""
        def _query() -> list[Document]:
            conn = self.db.cursor()
            with translated_errors():
                rows = conn.execute(
                    f"SELECT {DOCUMENT_COLUMNS} FROM {self.table} "
                    "WHERE embedding_status = ? ORDER BY updated_at, id LIMIT ?",
                    [EmbeddingStatus.PENDING.value, limit],
                ).fetchall()
                return [self.row_to_document(r) for r in rows_to_dicts(rows, conn)]

        return await self.db.run(_query)

    async def count(self) -> int:
        def _query() -> int:
            row = self.db.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
            return int(row[0]) if row else 0

        return await self.db.run(_query)

    async def count_by_status(self) -> dict[EmbeddingStatus, int]:
        """Document counts per embedding status (every status present, zero if none)."""
        def _query() -> dict[EmbeddingStatus, int]:
            rows = self.db.execute(
                f"SELECT embedding_status, COUNT(*) FROM {self.table} GROUP BY embedding_status"
            ).fetchall()
            counts = {status: 0 for status in EmbeddingStatus}
            for status, n in rows:
                counts[EmbeddingStatus(status)] = int(n)
            return counts

        return await self.db.run(_query)

    # -------------------------------------------------------------------------
    # Helpers shared with the search indexes
    # -------------------------------------------------------------------------

    def row_to_document(self, record: dict[str, Any]) -> Document:
        """Convert a DuckDB record to a Document model."""
        metadata = record.get("metadata") or "{}"
        if isinstance(metadata, str):
            metadata = json.loads(metadata) if metadata else {}

        vector = record.get("vector")
        return Document(
            id=record["id"],
            content=record.get("content") or "",
            metadata=metadata,
            vector=list(vector) if vector is not None else None,
            status=EmbeddingStatus(record.get("embedding_status", "pending")),
            revision=record.get("revision", 1),
            created_at=record.get("created_at"),
            updated_at=record.get("updated_at"),
        )

    @staticmethod
    def filter_sql(filters: Mapping[str, Any] | None) -> tuple[str, list[Any]]:
        """
        Equality filters on metadata keys as an AND-joined SQL fragment.

        Keys must be plain identifiers; they become bound JSON paths.
        Values are compared against the JSON text form (strings as-is,
        other values JSON-encoded); None matches missing or null keys.

        Returns:
            (" AND ..." fragment or "", parameters)
        """
        if not filters:
            return "", []

        clauses = []
        params: list[Any] = []
        for key, value in filters.items():
            path = f"$.{validate_identifier(key)}"
            if value is None:
                clauses.append("json_extract_string(metadata, ?) IS NULL")
                params.append(path)
            else:
                clauses.append("json_extract_string(metadata, ?) = ?")
                params.extend([path, value if isinstance(value, str) else json.dumps(value)])
        return " AND " + " AND ".join(clauses), params

