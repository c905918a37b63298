"""SQLite hybrid vector storage backend.

When the access context carries an ``aiosqlite`` connection, candidate
vectors are pulled straight out of the table with SQLite's JSON functions
(one narrow query, no full record hydration), scored in-process, and only
the best candidates are re-fetched through the access-controlled record
store.  Without a raw connection the backend scans records through the
store like :class:`JsonVectorStorage`.  Either way the path taken is
logged.
"""

from __future__ import annotations

import json
from typing import Any

import numpy as np
import structlog

from stack_rag.interfaces.record_store import AccessContext
from stack_rag.models.config import SqliteVssStorageConfig
from stack_rag.providers.vector_storage.base import (
    BaseVectorStorage,
    Result,
    Scorer,
    cosine_scorer,
    l2_scorer,
    quote_identifier,
)
from stack_rag.utils.errors import StackRagError, VectorStorageError

logger = structlog.get_logger(logger_name=__name__)

_CANDIDATE_SQL = """
SELECT id, json_extract({column}, '$.vector') AS vector
FROM {table}
WHERE {column} IS NOT NULL
"""


class SqliteVssStorage(BaseVectorStorage):
    """Hybrid SQLite search: raw vector extraction plus in-process scoring.

    Scores: ``cosine`` uses ``(cos + 1) / 2`` with ``distance = 1 - score``;
    ``l2`` uses ``1 / (1 + distance)``.
    """

    def __init__(self, config: SqliteVssStorageConfig | None = None) -> None:
        self._config = config or SqliteVssStorageConfig()
        self._scorer: Scorer = cosine_scorer if self._config.distance_function == "cosine" else l2_scorer

    @property
    def type(self) -> str:
        return "sqlite-vss"

    @property
    def distance_function(self) -> str:
        return self._config.distance_function

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

        if context.sqlite is None:
            logger.info("sqlite_vss_in_process_search", list_key=list_key, reason="no raw connection")
            records = await store.find_many(self._with_field_present(effective, field_name))
            scored = self._score_records(records, list_key, field_name, query_vector, self._scorer)
            return self._rank(scored, limit, min_score)

        candidates = await self._raw_candidates(context, list_key, field_name, query_vector)
        candidates = [c for c in candidates if c[1] >= min_score]
        candidates.sort(key=lambda c: c[1], reverse=True)
        candidates = candidates[: limit * 2]
        if not candidates:
            return []

        id_filter = {"id": {"in": [c[0] for c in candidates]}}
        records = await store.find_many({"AND": [effective, id_filter]} if effective else id_filter)
        by_id = {record.get("id"): record for record in records}

        results = [
            Result(item=by_id[record_id], score=score, distance=distance)
            for record_id, score, distance in candidates
            if record_id in by_id
        ][:limit]

        logger.debug(
            "sqlite_vss_search",
            list_key=list_key,
            distance_function=self.distance_function,
            candidates=len(candidates),
            authorized=len(results),
        )
        return results

    async def _raw_candidates(
        self,
        context: AccessContext,
        list_key: str,
        field_name: str,
        query_vector: list[float],
    ) -> list[tuple[Any, float, float]]:
        sql = _CANDIDATE_SQL.format(
            column=quote_identifier(field_name),
            table=quote_identifier(context.table_name(list_key)),
        )
        try:
            cursor = await context.sqlite.execute(sql)
            rows = await cursor.fetchall()
            await cursor.close()
        except StackRagError:
            raise
        except Exception as exc:
            raise VectorStorageError(
                message=(
                    f"sqlite-vss search failed: {exc}. "
                    "Ensure sqlite-vss extension is loaded (or SQLite was built with JSON1)"
                ),
                provider_name=self.type,
            ) from exc

        ids: list[Any] = []
        vectors: list[list[float]] = []
        for row in rows:
            if row[1] is None:
                continue
            vector = json.loads(row[1])
            if len(vector) != len(query_vector):
                logger.warning(
                    "vector_dimension_mismatch",
                    list_key=list_key,
                    field=field_name,
                    record_id=row[0],
                    expected=len(query_vector),
                    actual=len(vector),
                )
                continue
            ids.append(row[0])
            vectors.append(vector)

        if not ids:
            return []
        scores, distances = self._scorer(query_vector, np.asarray(vectors, dtype=np.float64))
        return [(i, float(s), float(d)) for i, s, d in zip(ids, scores, distances)]
