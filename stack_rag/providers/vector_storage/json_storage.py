"""Linear-scan vector storage.

Loads every record whose embedding field is set (through the
access-controlled record store) and scores them in-process with numpy.
Needs no database extension, so it works with any record store; cost
grows linearly with the number of records, which is fine for up to a few
tens of thousands of vectors.
"""

from __future__ import annotations

from typing import Any

import structlog

from stack_rag.interfaces.record_store import AccessContext
from stack_rag.providers.vector_storage.base import BaseVectorStorage, Result, cosine_scorer

logger = structlog.get_logger(logger_name=__name__)


class JsonVectorStorage(BaseVectorStorage):
    """Cosine similarity over embeddings stored as JSON in record fields.

    Scores use the ``(cos + 1) / 2`` mapping onto [0, 1];
    ``distance = 1 - score``.
    """

    @property
    def type(self) -> str:
        return "json"

    async def search(
        self,
        list_key: str,
        field_name: str,
        query_vector: list[float],
        *,
        context: AccessContext,
        limit: int = 10,
        min_score: float = 0.0,
        where: dict[str, Any] | None = None,
    ) -> list[Result]:
        store = self._resolve_store(list_key, context)
        effective = self._effective_where(list_key, context, where)
        if effective is None or limit <= 0:
            return []

        records = await store.find_many(self._with_field_present(effective, field_name))
        scored = self._score_records(records, list_key, field_name, query_vector, cosine_scorer)
        results = self._rank(scored, limit, min_score)

        logger.debug(
            "json_vector_search",
            list_key=list_key,
            field=field_name,
            candidates=len(records),
            results=len(results),
        )
        return results
