"""
DuckDB Storage Layer

Modules:
    database: DuckDBDatabase (thread-local cursors, transactions,
              identifier validation, error translation)
    retry: WritePolicy (exponential backoff with jitter for contended writes)
"""

from hybrid_rag.storage.duckdb.database import (
    DuckDBDatabase,
    is_transient,
    quote_identifier,
    rows_to_dicts,
    translate_error,
    translated_errors,
    validate_identifier,
)
from hybrid_rag.storage.duckdb.retry import WritePolicy

__all__ = [
    "DuckDBDatabase",
    "WritePolicy",
    "is_transient",
    "quote_identifier",
    "rows_to_dicts",
    "translate_error",
    "translated_errors",
    "validate_identifier",
]
