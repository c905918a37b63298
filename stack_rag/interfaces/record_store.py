"""Record-store boundary and the per-request access context.

The embedding subsystem never owns application data.  Records live in an
external, access-controlled store; this module only declares the four
operations the subsystem calls on it and the :class:`AccessContext` value
that carries those stores (plus optional raw query engines) into every
search.

**Filter syntax** accepted by ``where`` arguments is the nested-mapping
form produced by the access-control layer::

    {"status": "published"}                       # equality
    {"id": {"not": "post-1"}}                     # operator object
    {"id": {"in": ["a", "b"]}}
    {"AND": [{...}, {...}]}, {"OR": [...]}, {"NOT": {...}}

Operators: ``equals``, ``not``, ``in``, ``notIn``, ``lt``, ``lte``,
``gt``, ``gte``, ``contains``, ``startsWith``, ``endsWith``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping


# Concrete implementation: InMemoryRecordStore (stack_rag/providers/record_store/)
# Production deployments pass adapters over their ORM instead.
class IRecordStore(ABC):
    """Access-controlled store for the records of one list."""

    @abstractmethod
    async def find_many(
        self, where: dict[str, Any] | None = None, take: int | None = None
    ) -> list[dict[str, Any]]:
        """Return every record matching *where* (all records when ``None``)."""

    @abstractmethod
    async def find_unique(self, where: dict[str, Any]) -> dict[str, Any] | None:
        """Return the single record matching a unique filter such as ``{"id": ...}``."""

    @abstractmethod
    async def update(self, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        """Apply *data* to the record matching *where* and return the updated record."""

    @abstractmethod
    async def count(self, where: dict[str, Any] | None = None) -> int:
        """Return the number of records matching *where*."""


def get_db_key(list_key: str) -> str:
    """Map a list key to its record-store key: ``"BlogPost"`` -> ``"blogPost"``."""
    if not list_key:
        return list_key
    return list_key[0].lower() + list_key[1:]


@dataclass(frozen=True)
class AccessContext:
    """Everything a query needs about the caller and the data layer.

    Attributes
    ----------
    db:
        Record stores keyed by db key (see :func:`get_db_key`).
    access_filters:
        Authorization filters computed by the access-control layer, keyed by
        list key.  A missing entry means "no restriction" (``{}``); an
        explicit ``None`` means the caller may read nothing from that list.
    session:
        Opaque session object of the caller, passed through untouched.
    pg:
        Optional asyncpg ``Pool`` or ``Connection`` used by the pgvector
        backend for raw similarity queries.
    sqlite:
        Optional ``aiosqlite.Connection`` used by the sqlite-vss backend.
    table_names:
        SQL table name per list key for the raw engines; defaults to the
        list key itself.
    """

    db: Mapping[str, IRecordStore]
    access_filters: Mapping[str, dict[str, Any] | None] = field(default_factory=dict)
    session: Any = None
    pg: Any = None
    sqlite: Any = None
    table_names: Mapping[str, str] = field(default_factory=dict)

    def store_for(self, list_key: str) -> IRecordStore | None:
        return self.db.get(get_db_key(list_key))

    def access_filter_for(self, list_key: str) -> dict[str, Any] | None:
        return self.access_filters.get(list_key, {})

    def table_name(self, list_key: str) -> str:
        return self.table_names.get(list_key, list_key)
