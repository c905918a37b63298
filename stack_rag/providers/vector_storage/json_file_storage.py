"""Vector storage over a build-time embeddings index file.

Searches an :class:`~stack_rag.models.index.EmbeddingsIndex` written ahead
of time by :mod:`stack_rag.services.index_builder`, e.g. for documentation
search in a deployment that has no database.  The index is loaded on the
first search and cached; :meth:`JsonFileStorage.reload_index` re-reads it.

``list_key``, ``field_name`` and ``context`` are accepted for interface
compatibility and ignored: the file is the only data source.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np
import structlog
from pydantic import ValidationError

from stack_rag.interfaces.record_store import AccessContext
from stack_rag.models.config import JsonFileStorageConfig
from stack_rag.models.index import EmbeddingsIndex
from stack_rag.providers.vector_storage.base import BaseVectorStorage, Result
from stack_rag.utils import vector_math
from stack_rag.utils.errors import DimensionMismatchError, VectorStorageError

logger = structlog.get_logger(logger_name=__name__)


class JsonFileStorage(BaseVectorStorage):
    """Cosine search over every chunk of every document in an index file.

    Each result item is a dict with ``documentId``, ``title``, ``content``
    (the chunk text), ``chunkIndex`` and the chunk ``metadata``.  Title
    chunk scores are multiplied by ``title_boost``; a boost above 1.0 can
    push those scores past 1.0.
    """

    def __init__(self, config: JsonFileStorageConfig | None = None) -> None:
        self._config = config or JsonFileStorageConfig()
        self._path = Path(self._config.path)
        self._index: EmbeddingsIndex | None = None

    @property
    def type(self) -> str:
        return "json-file"

    @property
    def index(self) -> EmbeddingsIndex | None:
        """The loaded index, or ``None`` before the first search."""
        return self._index

    def load_index(self) -> EmbeddingsIndex:
        if self._index is not None:
            return self._index
        if not self._path.exists():
            raise VectorStorageError(
                message=f"Embeddings file not found: {self._path}. Run embeddings generation first.",
                provider_name=self.type,
            )
        try:
            self._index = EmbeddingsIndex.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            raise VectorStorageError(
                message=f"Failed to load embeddings from {self._path}: {exc}",
                provider_name=self.type,
            ) from exc
        logger.info(
            "embeddings_index_loaded",
            path=str(self._path),
            documents=len(self._index.documents),
            dimensions=self._index.config.dimensions,
        )
        return self._index

    def reload_index(self) -> EmbeddingsIndex:
        self._index = None
        return self.load_index()

    async def search(
        self,
        list_key: str,
        field_name: str,
        query_vector: list[float],
        *,
        context: AccessContext | None = None,
        limit: int = 10,
        min_score: float = 0.0,
        where: dict[str, Any] | None = None,
    ) -> list[Result]:
        index = self.load_index()
        if len(query_vector) != index.config.dimensions:
            raise DimensionMismatchError(
                message=(
                    f"Query vector dimensions ({len(query_vector)}) don't match "
                    f"index dimensions ({index.config.dimensions})"
                ),
                provider_name=self.type,
                expected=index.config.dimensions,
                actual=len(query_vector),
            )
        if limit <= 0:
            return []

        items: list[dict[str, Any]] = []
        vectors: list[list[float]] = []
        boosts: list[float] = []
        for document_id, document in index.documents.items():
            if where and not self._document_matches(document_id, document, where):
                continue
            for chunk in document.chunks:
                items.append(
                    {
                        "documentId": document_id,
                        "title": document.title,
                        "content": chunk.text,
                        "chunkIndex": chunk.metadata.get("chunkIndex"),
                        "metadata": dict(chunk.metadata),
                    }
                )
                vectors.append(chunk.embedding)
                boosts.append(self._config.title_boost if chunk.is_title else 1.0)

        if not items:
            return []

        scores = vector_math.cosine_scores(query_vector, np.asarray(vectors, dtype=np.float64))
        scores = scores * np.asarray(boosts)
        results = [
            Result(item=item, score=float(score), distance=float(1.0 - score))
            for item, score in zip(items, scores)
        ]
        return self._rank(results, limit, min_score)

    @staticmethod
    def _document_matches(document_id: str, document: Any, where: dict[str, Any]) -> bool:
        # Simple equality on document attributes or caller-supplied fields.
        attributes = {"id": document_id, "title": document.title, **document.fields}
        return all(attributes.get(key) == value for key, value in where.items())
