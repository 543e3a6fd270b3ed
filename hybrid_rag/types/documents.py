"""
Document Types

Documents are caller-identified text records with opaque metadata and an
embedding that moves through a small status machine.

Storage Models:
    - Document: Persisted document row
    - EmbeddingStatus: Lifecycle of a document's vector

Input Models (used during ingestion):
    - DocumentInput: Validated ingestion payload
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from hybrid_rag.errors import ValidationError


class EmbeddingStatus(str, Enum):
    """
    Embedding lifecycle.

    pending -> processing -> completed | failed. Only re-insertion of the
    document moves a row back to pending.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def can_transition_to(self, target: "EmbeddingStatus") -> bool:
        """Whether the status machine allows self -> target."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[EmbeddingStatus, frozenset[EmbeddingStatus]] = {
    EmbeddingStatus.PENDING: frozenset({EmbeddingStatus.PROCESSING}),
    EmbeddingStatus.PROCESSING: frozenset({EmbeddingStatus.COMPLETED, EmbeddingStatus.FAILED}),
    EmbeddingStatus.COMPLETED: frozenset(),
    EmbeddingStatus.FAILED: frozenset(),
}


class Document(BaseModel):
    """
    A persisted document.

    Attributes:
        id: Caller-assigned identifier
        content: Text used for embedding and full-text matching
        metadata: Opaque key-value data supplied at ingestion
        vector: Embedding, None until computed (or when content is empty)
        status: Embedding lifecycle state
        revision: Incremented on every re-insertion of the same id
    """

    id: str
    content: str = ""
    metadata: dict[str, Any] = {}
    vector: list[float] | None = None
    status: EmbeddingStatus = EmbeddingStatus.PENDING
    revision: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None


# -----------------------------------------------------------------------------
# Input Models (used during ingestion pipeline)
# -----------------------------------------------------------------------------


class DocumentInput(BaseModel):
    """
    A document as handed to the ingestion pipeline.

    Documents usually arrive as open mappings; use from_mapping() to lift
    "id" and "content" out and keep every other key as metadata.
    """

    id: str = Field(..., description="Caller-assigned document identifier")
    content: str = Field(default="", description="Text to embed and index")
    metadata: dict[str, Any] = Field(
        default_factory=dict, description="Opaque extension fields"
    )

    model_config = ConfigDict(strict=True, frozen=True)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("document id must be a non-empty string")
        return value

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "DocumentInput":
        """
        Build a DocumentInput from an open key-value document.

        Raises:
            ValidationError: If id is missing, empty or not a string, or
                content is present but not a string.
        """
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"document must be a mapping, got {type(data).__name__}"
            )
        if "id" not in data:
            raise ValidationError("document is missing required field 'id'")

        metadata = {k: v for k, v in data.items() if k not in ("id", "content")}
        content = data.get("content")
        try:
            return cls(
                id=data["id"],
                content="" if content is None else content,
                metadata=metadata,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"invalid document {data.get('id')!r}: {e.errors()[0]['msg']}"
            ) from e

    @classmethod
    def coerce(cls, item: "DocumentInput | Mapping[str, Any]") -> "DocumentInput":
        """Accept either a DocumentInput or a plain mapping."""
        if isinstance(item, DocumentInput):
            return item
        return cls.from_mapping(item)
