"""Embedding data models.

Defines Pydantic v2 models for stored embeddings, text chunks and search
results.  All models use frozen config: an embedding is replaced as a
whole when its source text changes, never mutated in place.

The persisted representation of a :class:`StoredEmbedding` is the JSON
object written into a record's embedding field::

    {
        "vector": [0.013, -0.094, ...],
        "metadata": {
            "model": "text-embedding-3-small",
            "provider": "openai",
            "dimensions": 1536,
            "generatedAt": "2026-01-05T10:12:00Z",
            "sourceHash": "9f86d0..."
        }
    }

Use :meth:`StoredEmbedding.to_record_value` and
:meth:`StoredEmbedding.from_record_value` to convert between the model and
that representation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# EmbeddingMetadata: provenance of a single vector.
# ---------------------------------------------------------------------------
class EmbeddingMetadata(BaseModel):
    """Provenance of a vector: which model produced it, when, and from what.

    Extra keys (``chunkIndex``, ``chunkStart``, ``mergedFrom`` ...) are
    preserved so callers can attach their own context.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    model: str = Field(description="Embedding model name, e.g. text-embedding-3-small.")
    provider: str = Field(description='Provider type, e.g. "openai" or "ollama".')
    dimensions: int = Field(ge=0, description="Number of components in the vector.")
    generated_at: datetime = Field(
        default_factory=utc_now,
        alias="generatedAt",
        description="UTC timestamp at which the vector was produced.",
    )
    source_hash: str | None = Field(
        default=None,
        alias="sourceHash",
        description="SHA-256 hex digest of the exact text that was embedded.",
    )

    @property
    def extras(self) -> dict[str, Any]:
        """Free-form fields attached beyond the core provenance keys."""
        return dict(self.model_extra or {})


# ---------------------------------------------------------------------------
# StoredEmbedding: the value persisted in a record's embedding field.
# ---------------------------------------------------------------------------
class StoredEmbedding(BaseModel):
    """A vector plus its provenance metadata."""

    model_config = ConfigDict(frozen=True)

    vector: list[float] = Field(description="The embedding vector.")
    metadata: EmbeddingMetadata

    @model_validator(mode="after")
    def _check_dimensions(self) -> StoredEmbedding:
        if len(self.vector) != self.metadata.dimensions:
            raise ValueError(
                f"vector has {len(self.vector)} components but metadata.dimensions is "
                f"{self.metadata.dimensions}"
            )
        return self

    def to_record_value(self) -> dict[str, Any]:
        """Return the JSON-compatible form written into a record store."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record_value(cls, value: Any) -> StoredEmbedding | None:
        """Parse a persisted value; ``None`` and empty values yield ``None``."""
        if value is None:
            return None
        if isinstance(value, StoredEmbedding):
            return value
        if isinstance(value, dict) and not value.get("vector"):
            return None
        return cls.model_validate(value)


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------
class TextChunk(BaseModel):
    """A contiguous slice of a source text.

    ``start`` and ``end`` are character offsets into the source so that
    ``source[start:end] == text``.
    """

    model_config = ConfigDict(frozen=True)

    text: str
    start: int = Field(ge=0, description="Offset of the first character in the source.")
    end: int = Field(ge=0, description="Offset one past the last character in the source.")
    index: int = Field(description="Position of the chunk in its sequence.")
    is_title: bool = Field(default=False, description="True for a synthetic title chunk.")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChunkedEmbedding(BaseModel):
    """One chunk and the embedding generated from its text."""

    model_config = ConfigDict(frozen=True)

    chunk: TextChunk
    embedding: StoredEmbedding


# ---------------------------------------------------------------------------
# SearchResult: a ranked hit from a vector storage backend.
# ---------------------------------------------------------------------------
class SearchResult(BaseModel, Generic[T]):
    """A record returned by a similarity search.

    ``score`` is always "higher is more similar" (within [0, 1] for cosine
    and L2 metrics).  ``distance`` is the backend-native distance value.
    """

    model_config = ConfigDict(frozen=True)

    item: T
    score: float
    distance: float
