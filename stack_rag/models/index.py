"""Build-time embeddings index models.

An :class:`EmbeddingsIndex` is a self-contained JSON file produced ahead
of deployment (for example from a documentation tree) and searched by
:class:`~stack_rag.providers.vector_storage.json_file_storage.JsonFileStorage`
without any database.  The on-disk keys are camelCase so the file stays
interchangeable with indexes written by other tooling.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from stack_rag.models.embedding import EmbeddingMetadata, utc_now

INDEX_FORMAT_VERSION = "1.0"

_CAMEL = ConfigDict(frozen=True, populate_by_name=True)


class EmbeddingChunk(BaseModel):
    """One embedded slice of a document.

    ``metadata`` carries ``chunkIndex``, ``startOffset``, ``endOffset`` and
    ``isTitle``; a title chunk uses ``chunkIndex == -1``.
    """

    model_config = _CAMEL

    text: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_title(self) -> bool:
        return bool(self.metadata.get("isTitle", False))


class EmbeddedDocument(BaseModel):
    model_config = _CAMEL

    id: str
    title: str | None = None
    chunks: list[EmbeddingChunk]
    embedding_metadata: EmbeddingMetadata = Field(alias="embeddingMetadata")
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")
    content_hash: str = Field(alias="contentHash")
    # Caller-supplied document fields (e.g. "section"), matched by ``where``.
    fields: dict[str, Any] = Field(default_factory=dict)


class IndexConfig(BaseModel):
    model_config = _CAMEL

    provider: str
    model: str
    dimensions: int = Field(ge=0)
    chunk_size: int = Field(alias="chunkSize")
    chunk_overlap: int = Field(alias="chunkOverlap")


class EmbeddingsIndex(BaseModel):
    model_config = _CAMEL

    version: str = INDEX_FORMAT_VERSION
    config: IndexConfig
    documents: dict[str, EmbeddedDocument] = Field(default_factory=dict)
    generated_at: datetime = Field(default_factory=utc_now, alias="generatedAt")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class SourceDocument(BaseModel):
    """A document handed to the index builder."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    title: str | None = None
    fields: dict[str, Any] = Field(default_factory=dict)
