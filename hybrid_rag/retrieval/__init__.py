"""
Retrieval Strategies

Modules:
    vector: VectorIndex (cosine similarity over completed embeddings)
    fulltext: FulltextIndex (token substring matching, AND/OR policy)
    graph: GraphIndex (substring seeds expanded along "related" edges)
    hybrid: HybridRetriever (mode dispatch, weighted score fusion)
"""

from hybrid_rag.retrieval.fulltext import FulltextIndex
from hybrid_rag.retrieval.graph import GraphIndex
from hybrid_rag.retrieval.hybrid import HybridRetriever
from hybrid_rag.retrieval.vector import VectorIndex

__all__ = ["FulltextIndex", "GraphIndex", "HybridRetriever", "VectorIndex"]
