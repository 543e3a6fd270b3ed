"""
Configuration System

Configuration Priority (highest to lowest):
    1. Programmatic (passed to RAGConfig())
    2. Environment variables (HYBRID_RAG_* prefix)
    3. Config file (RAGConfig.from_file)
    4. Built-in defaults

Modules:
    settings: RAGConfig class
"""

from hybrid_rag.config.settings import RAGConfig

__all__ = ["RAGConfig"]
