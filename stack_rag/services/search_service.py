"""Query-side orchestration: semantic search and find-similar.

Both functions are stateless.  They resolve a query vector (by embedding
the query text, or by reading a record's stored embedding) and hand it to a
vector storage backend together with the caller's :class:`AccessContext`;
the backend enforces authorization.
"""

from __future__ import annotations

from typing import Any

import structlog

from stack_rag.interfaces.embedding_provider import IEmbeddingProvider
from stack_rag.interfaces.record_store import AccessContext
from stack_rag.interfaces.vector_storage import IVectorStorage
from stack_rag.models.embedding import SearchResult, StoredEmbedding
from stack_rag.services.access_filter import merge_access_filter
from stack_rag.utils.errors import (
    EmbeddingNotFoundError,
    ItemNotFoundError,
    ListNotFoundError,
)

logger = structlog.get_logger(logger_name=__name__)


async def semantic_search(
    list_key: str,
    field_name: str,
    query: str,
    provider: IEmbeddingProvider,
    storage: IVectorStorage,
    context: AccessContext,
    *,
    limit: int = 10,
    min_score: float = 0.0,
    where: dict[str, Any] | None = None,
) -> list[SearchResult[dict[str, Any]]]:
    """Embed *query* and return the records most similar to it.

    Results are ordered by descending score and contain only records the
    caller may read.
    """
    query_vector = await provider.embed(query)
    results = await storage.search(
        list_key,
        field_name,
        query_vector,
        context=context,
        limit=limit,
        min_score=min_score,
        where=where,
    )
    logger.info(
        "semantic_search",
        list_key=list_key,
        field=field_name,
        storage=storage.type,
        results=len(results),
    )
    return results


def _exclude_item(item_id: Any, where: dict[str, Any] | None) -> dict[str, Any]:
    exclusion = {"id": {"not": item_id}}
    if not where:
        return exclusion
    # A caller constraint on "id" must survive alongside the exclusion.
    return {"AND": [where, exclusion]}


async def find_similar(
    list_key: str,
    field_name: str,
    item_id: Any,
    storage: IVectorStorage,
    context: AccessContext,
    *,
    limit: int = 10,
    min_score: float = 0.0,
    exclude_self: bool = True,
    where: dict[str, Any] | None = None,
) -> list[SearchResult[dict[str, Any]]]:
    """Return records similar to an existing record, using its stored embedding.

    Raises
    ------
    ListNotFoundError
        If the context has no store for *list_key*.
    ItemNotFoundError
        If the record does not exist or the caller may not read it.
    EmbeddingNotFoundError
        If the record has no embedding (or an empty one) in *field_name*.
    """
    store = context.store_for(list_key)
    if store is None:
        raise ListNotFoundError(list_key)

    # The seed is read under the same authorization as the results.
    seed_where = merge_access_filter(context.access_filter_for(list_key), {"id": item_id})
    if seed_where is None:
        logger.info("find_similar_access_denied", list_key=list_key)
        raise ItemNotFoundError(list_key, str(item_id))

    records = await store.find_many(seed_where, take=1)
    if not records:
        raise ItemNotFoundError(list_key, str(item_id))
    record = records[0]

    embedding = StoredEmbedding.from_record_value(record.get(field_name))
    if embedding is None:
        raise EmbeddingNotFoundError(list_key, str(item_id), field_name)

    return await storage.search(
        list_key,
        field_name,
        embedding.vector,
        context=context,
        limit=limit,
        min_score=min_score,
        where=_exclude_item(item_id, where) if exclude_self else where,
    )


__all__ = ["find_similar", "semantic_search"]
