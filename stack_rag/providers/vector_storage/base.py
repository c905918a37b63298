"""Shared plumbing for the record-backed vector storage backends.

Every backend resolves the list's record store from the access context,
AND-combines the caller's authorization filter into ``where``, reads
:class:`StoredEmbedding` values out of records and ranks the results.
Those steps live here so each backend only implements how candidates are
scored.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Sequence

import numpy as np
import structlog
from pydantic import ValidationError

from stack_rag.interfaces.record_store import AccessContext, IRecordStore
from stack_rag.interfaces.vector_storage import IVectorStorage
from stack_rag.models.embedding import SearchResult, StoredEmbedding
from stack_rag.services.access_filter import merge_access_filter
from stack_rag.utils import vector_math
from stack_rag.utils.errors import FieldNotFoundError, ListNotFoundError

logger = structlog.get_logger(logger_name=__name__)

Result = SearchResult[dict[str, Any]]

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Maps (query, candidate matrix) to (scores, distances).
Scorer = Callable[[Sequence[float], np.ndarray], tuple[np.ndarray, np.ndarray]]


def quote_identifier(name: str) -> str:
    """Validate and double-quote a table or column name for raw SQL."""
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def cosine_scorer(query: Sequence[float], matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    scores = vector_math.cosine_scores(query, matrix)
    return scores, 1.0 - scores


def l2_scorer(query: Sequence[float], matrix: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    distances = vector_math.l2_distances(query, matrix)
    return 1.0 / (1.0 + distances), distances


class BaseVectorStorage(IVectorStorage):
    """Common helpers for backends that search records in a record store."""

    def cosine_similarity(self, a: list[float], b: list[float]) -> float:
        return vector_math.cosine_similarity(a, b)

    # ------------------------------------------------------------------
    # Context resolution
    # ------------------------------------------------------------------

    def _resolve_store(self, list_key: str, context: AccessContext) -> IRecordStore:
        store = context.store_for(list_key)
        if store is None:
            raise ListNotFoundError(list_key, provider_name=self.type)
        return store

    def _effective_where(
        self, list_key: str, context: AccessContext, where: dict[str, Any] | None
    ) -> dict[str, Any] | None:
        """Return the merged filter, or ``None`` if the caller may read nothing."""
        merged = merge_access_filter(context.access_filter_for(list_key), where)
        if merged is None:
            logger.info("vector_search_access_denied", list_key=list_key, storage=self.type)
        return merged

    @staticmethod
    def _with_field_present(where: dict[str, Any], field_name: str) -> dict[str, Any]:
        present = {field_name: {"not": None}}
        return {"AND": [where, present]} if where else present

    # ------------------------------------------------------------------
    # Candidate extraction and ranking
    # ------------------------------------------------------------------

    def _read_embedding(
        self, record: dict[str, Any], list_key: str, field_name: str
    ) -> StoredEmbedding | None:
        if field_name not in record:
            raise FieldNotFoundError(list_key, field_name, provider_name=self.type)
        try:
            return StoredEmbedding.from_record_value(record[field_name])
        except ValidationError as exc:
            logger.warning(
                "vector_malformed_embedding",
                list_key=list_key,
                field=field_name,
                record_id=record.get("id"),
                error=str(exc),
            )
            return None

    def _score_records(
        self,
        records: list[dict[str, Any]],
        list_key: str,
        field_name: str,
        query_vector: list[float],
        scorer: Scorer,
    ) -> list[Result]:
        """Score every record carrying a compatible vector.

        Records with no vector are skipped silently; records whose vector
        length differs from the query's are skipped with a warning.
        """
        kept: list[dict[str, Any]] = []
        vectors: list[list[float]] = []
        for record in records:
            embedding = self._read_embedding(record, list_key, field_name)
            if embedding is None:
                continue
            if len(embedding.vector) != len(query_vector):
                logger.warning(
                    "vector_dimension_mismatch",
                    list_key=list_key,
                    field=field_name,
                    record_id=record.get("id"),
                    expected=len(query_vector),
                    actual=len(embedding.vector),
                )
                continue
            kept.append(record)
            vectors.append(embedding.vector)

        if not kept:
            return []

        scores, distances = scorer(query_vector, np.asarray(vectors, dtype=np.float64))
        return [
            Result(item=record, score=float(score), distance=float(distance))
            for record, score, distance in zip(kept, scores, distances)
        ]

    @staticmethod
    def _rank(results: list[Result], limit: int, min_score: float) -> list[Result]:
        eligible = [r for r in results if r.score >= min_score]
        eligible.sort(key=lambda r: r.score, reverse=True)
        return eligible[:limit]
