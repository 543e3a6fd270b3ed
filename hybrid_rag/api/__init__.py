"""
Public API

Modules:
    knowledge_base: KnowledgeBase facade (storage, retrieval, graph)
"""

from hybrid_rag.api.knowledge_base import KnowledgeBase

__all__ = ["KnowledgeBase"]
