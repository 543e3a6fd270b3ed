"""
Ingestion

Modules:
    pipeline: IngestionPipeline (batched insert, pending-embedding drains)
"""

from hybrid_rag.ingestion.pipeline import IS_DOCUMENT, IngestionPipeline

__all__ = ["IS_DOCUMENT", "IngestionPipeline"]
