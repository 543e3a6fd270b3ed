"""
Utility Functions

Modules:
    text: Tokenizer protocol, query tokenization, LIKE escaping
    similarity: Cosine similarity (numpy)
    ratelimit: Async token bucket for embedding calls
"""

from hybrid_rag.utils.ratelimit import TokenBucket
from hybrid_rag.utils.similarity import cosine_similarity
from hybrid_rag.utils.text import Tokenizer, WhitespaceTokenizer, query_tokens

__all__ = [
    "TokenBucket",
    "Tokenizer",
    "WhitespaceTokenizer",
    "cosine_similarity",
    "query_tokens",
]
