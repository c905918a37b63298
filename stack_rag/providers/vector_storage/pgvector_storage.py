"""PostgreSQL pgvector storage backend.

Pushes the distance computation into PostgreSQL using pgvector's
operators, then re-fetches the winning records through the
access-controlled record store.  The raw query sees every row of the
table, so authorization is enforced on that second fetch: a record the
caller may not read never reaches the result list, whatever its distance.

The raw engine is an ``asyncpg`` pool (or connection) supplied on
:attr:`AccessContext.pg`.  Without one, the backend logs a warning and
answers the query with :class:`JsonVectorStorage` instead of failing.
"""

from __future__ import annotations

from typing import Any

import asyncpg
import structlog

from stack_rag.interfaces.record_store import AccessContext
from stack_rag.models.config import PgVectorStorageConfig
from stack_rag.providers.vector_storage.base import BaseVectorStorage, Result, quote_identifier
from stack_rag.providers.vector_storage.json_storage import JsonVectorStorage
from stack_rag.utils.errors import StackRagError, VectorStorageError

logger = structlog.get_logger(logger_name=__name__)

_DISTANCE_OPERATORS: dict[str, str] = {
    "cosine": "<=>",
    "l2": "<->",
    "inner_product": "<#>",
}

# The embedding column holds the StoredEmbedding JSON; its "vector" member
# is cast to pgvector's type for the distance operator.
_SEARCH_SQL = """
SELECT id,
       (({column}->>'vector')::vector {operator} $1::vector) AS distance
FROM {table}
WHERE {column} IS NOT NULL
  AND {column}->>'vector' IS NOT NULL
ORDER BY distance
LIMIT $2
"""


def _vector_literal(vector: list[float]) -> str:
    return "[" + ",".join(repr(float(v)) for v in vector) + "]"


async def create_pgvector_pool(dsn: str, min_size: int = 1, max_size: int = 5) -> asyncpg.Pool:
    """Open an asyncpg pool and make sure the pgvector extension exists."""
    pool = await asyncpg.create_pool(dsn=dsn, min_size=min_size, max_size=max_size)
    async with pool.acquire() as conn:
        await conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
    logger.info("pgvector_pool_ready", min_size=min_size, max_size=max_size)
    return pool


class PgVectorStorage(BaseVectorStorage):
    """Similarity search through pgvector distance operators.

    Scores per distance function:

    - ``cosine`` (``<=>``): ``1 - distance`` clamped to [0, 1]
    - ``l2`` (``<->``): ``1 / (1 + distance)``
    - ``inner_product`` (``<#>`` returns the negated product): ``-distance``,
      unbounded
    """

    def __init__(self, config: PgVectorStorageConfig | None = None) -> None:
        self._config = config or PgVectorStorageConfig()
        self._fallback = JsonVectorStorage()

    @property
    def type(self) -> str:
        return "pgvector"

    @property
    def distance_function(self) -> str:
        return self._config.distance_function

    def distance_to_score(self, distance: float) -> float:
        if self.distance_function == "cosine":
            return min(1.0, max(0.0, 1.0 - distance))
        if self.distance_function == "l2":
            return 1.0 / (1.0 + distance)
        return -distance

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

        if context.pg is None:
            logger.warning(
                "pgvector_fallback_to_json",
                list_key=list_key,
                reason="access context has no raw query engine",
            )
            return await self._fallback.search(
                list_key,
                field_name,
                query_vector,
                context=context,
                limit=limit,
                min_score=min_score,
                where=where,
            )

        effective = self._effective_where(list_key, context, where)
        if effective is None or limit <= 0:
            return []

        sql = _SEARCH_SQL.format(
            column=quote_identifier(field_name),
            table=quote_identifier(context.table_name(list_key)),
            operator=_DISTANCE_OPERATORS[self.distance_function],
        )

        try:
            rows = await context.pg.fetch(sql, _vector_literal(query_vector), limit * 2)
        except StackRagError:
            raise
        except Exception as exc:
            raise VectorStorageError(
                message=(
                    f"pgvector search failed: {exc}. "
                    "Ensure pgvector extension is installed: CREATE EXTENSION vector;"
                ),
                provider_name=self.type,
            ) from exc

        candidates: list[tuple[Any, float, float]] = []
        for row in rows:
            distance = float(row["distance"])
            score = self.distance_to_score(distance)
            if score >= min_score:
                candidates.append((row["id"], score, distance))
        candidates = candidates[:limit]
        if not candidates:
            return []

        id_filter = {"id": {"in": [c[0] for c in candidates]}}
        records = await store.find_many({"AND": [effective, id_filter]} if effective else id_filter)
        by_id = {record.get("id"): record for record in records}

        results = [
            Result(item=by_id[record_id], score=score, distance=distance)
            for record_id, score, distance in candidates
            if record_id in by_id
        ]
        results.sort(key=lambda r: r.score, reverse=True)

        logger.debug(
            "pgvector_search",
            list_key=list_key,
            distance_function=self.distance_function,
            candidates=len(rows),
            authorized=len(results),
        )
        return results
