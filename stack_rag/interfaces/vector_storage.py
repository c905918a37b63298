"""Abstract base class for vector-similarity storage backends.

A backend does not store vectors itself: embeddings live in a field of the
owning record (see :class:`~stack_rag.models.embedding.StoredEmbedding`).
The backend's job is to rank those records against a query vector, either
by scanning them in-process or by pushing the distance computation into a
database extension, while only ever returning records the caller is
allowed to read.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from stack_rag.interfaces.record_store import AccessContext
from stack_rag.models.embedding import SearchResult


# Concrete implementations (stack_rag/providers/vector_storage/):
#   JsonVectorStorage: linear scan over records, numpy cosine
#   PgVectorStorage: PostgreSQL pgvector distance operators
#   SqliteVssStorage: SQLite JSON extraction + in-process scoring
#   JsonFileStorage: static build-time index on disk
class IVectorStorage(ABC):
    """Contract for similarity search over records' embedding fields."""

    @property
    @abstractmethod
    def type(self) -> str:
        """Registry key of the backend, e.g. ``"json"`` or ``"pgvector"``."""

    @abstractmethod
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
    ) -> list[SearchResult[dict[str, Any]]]:
        """Rank the records of *list_key* by similarity to *query_vector*.

        Parameters
        ----------
        list_key:
            Name of the list whose records are searched, e.g. ``"Article"``.
        field_name:
            Record field holding the :class:`StoredEmbedding`.
        query_vector:
            Vector to compare against; must share the stored vectors'
            dimensionality (mismatching records are skipped).
        context:
            Access context carrying record stores and authorization filters.
        limit:
            Maximum number of results.
        min_score:
            Results scoring below this value are dropped.
        where:
            Extra record filter, AND-combined with the caller's access filter.

        Returns
        -------
        list[SearchResult]
            At most *limit* results, sorted by descending score.

        Raises
        ------
        stack_rag.utils.errors.ListNotFoundError
            If no record store exists for *list_key*.
        stack_rag.utils.errors.VectorStorageError
            If a database extension query fails.
        """

    @abstractmethod
    def cosine_similarity(self, a: list[float], b: list[float]) -> float:
        """Return the similarity of two vectors on this backend's score scale."""
