"""
Text Processing Utilities

Tokenization for full-text and graph search.

The default is plain whitespace splitting. Languages without whitespace word
boundaries need a segmenting tokenizer, which callers construct and inject;
anything with a `tokenize(text) -> str` method that returns space-separated
words will do.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Tokenizer(Protocol):
    """Segments text into space-separated words."""

    def tokenize(self, text: str) -> str: ...


class WhitespaceTokenizer:
    """Tokenizer that keeps the text as-is (words are already space-separated)."""

    def tokenize(self, text: str) -> str:
        return " ".join(text.split())


def query_tokens(query: str, tokenizer: Tokenizer | None = None) -> list[str]:
    """
    Split a query into lower-cased search tokens.

    Duplicates are kept: a repeated word counts twice in match scores.

    Args:
        query: Raw query text
        tokenizer: Optional segmenting tokenizer applied before splitting

    Returns:
        Tokens in query order
    """
    text = tokenizer.tokenize(query) if tokenizer is not None else query
    return text.lower().split()


def index_tokens(content: str, tokenizer: Tokenizer | None) -> str | None:
    """Lower-cased segmented form of content, stored alongside it for matching."""
    if tokenizer is None or not content:
        return None
    return tokenizer.tokenize(content).lower()


def escape_like(token: str) -> str:
    """Escape LIKE wildcards so a token matches literally (ESCAPE '\\')."""
    return (
        token.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )


def like_pattern(token: str) -> str:
    """Substring LIKE pattern for a token."""
    return f"%{escape_like(token)}%"
