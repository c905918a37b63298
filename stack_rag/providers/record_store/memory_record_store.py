"""In-memory record store evaluating nested ``where`` filters.

Reference implementation of :class:`IRecordStore`, suitable for tests,
demos and single-process tools.  Production deployments hand the search
layer adapters over their ORM instead.

The store can itself be access-controlled: pass ``access_filter`` and every
read and write is restricted to the records that filter admits, exactly
like an ORM client wrapped by an access-control layer.
"""

from __future__ import annotations

import copy
import uuid
from typing import Any, Iterable

import structlog

from stack_rag.interfaces.record_store import IRecordStore
from stack_rag.utils.errors import FieldNotFoundError, ItemNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_OPERATORS = frozenset(
    {
        "equals",
        "not",
        "in",
        "notIn",
        "lt",
        "lte",
        "gt",
        "gte",
        "contains",
        "startsWith",
        "endsWith",
    }
)


def _is_operator_object(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and set(value) <= _OPERATORS


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if actual is None or expected is None:
        return False
    try:
        if op == "lt":
            return actual < expected
        if op == "lte":
            return actual <= expected
        if op == "gt":
            return actual > expected
        return actual >= expected
    except TypeError:
        return False


def _match_operators(actual: Any, ops: dict[str, Any]) -> bool:
    for op, expected in ops.items():
        if op == "equals":
            ok = actual == expected
        elif op == "not":
            ok = not _match_operators(actual, expected) if _is_operator_object(expected) else actual != expected
        elif op == "in":
            ok = actual in expected
        elif op == "notIn":
            ok = actual not in expected
        elif op in ("lt", "lte", "gt", "gte"):
            ok = _compare(op, actual, expected)
        elif op == "contains":
            ok = isinstance(actual, (str, list)) and expected in actual
        elif op == "startsWith":
            ok = isinstance(actual, str) and actual.startswith(expected)
        else:
            ok = isinstance(actual, str) and actual.endswith(expected)
        if not ok:
            return False
    return True


def _as_list(clauses: Any) -> list[dict[str, Any]]:
    return list(clauses) if isinstance(clauses, (list, tuple)) else [clauses]


def matches_where(record: dict[str, Any], where: dict[str, Any] | None) -> bool:
    """Return ``True`` if *record* satisfies the nested filter *where*.

    Missing fields compare as ``None``, so ``{"field": {"not": None}}``
    selects records whose field is present and non-null.
    """
    if not where:
        return True
    for key, condition in where.items():
        if key == "AND":
            if not all(matches_where(record, c) for c in _as_list(condition)):
                return False
        elif key == "OR":
            if not any(matches_where(record, c) for c in _as_list(condition)):
                return False
        elif key == "NOT":
            if any(matches_where(record, c) for c in _as_list(condition)):
                return False
        elif _is_operator_object(condition):
            if not _match_operators(record.get(key), condition):
                return False
        elif record.get(key) != condition:
            return False
    return True


class InMemoryRecordStore(IRecordStore):
    """Dict-backed record store for one list.

    Parameters
    ----------
    list_key:
        Name of the list, used in error messages.
    records:
        Initial records; each needs an ``"id"`` (one is generated if absent).
    access_filter:
        Optional filter restricting every operation, as computed by an
        access-control layer for the current caller.
    fields:
        Optional schema of field names.  When given, filters naming any
        other field raise :class:`FieldNotFoundError`, like an ORM
        rejecting an unknown column.
    """

    def __init__(
        self,
        list_key: str,
        records: list[dict[str, Any]] | None = None,
        access_filter: dict[str, Any] | None = None,
        fields: Iterable[str] | None = None,
    ) -> None:
        self._list_key = list_key
        self._fields = frozenset(fields) | {"id"} if fields is not None else None
        self._records: dict[str, dict[str, Any]] = {}
        self._access_filter = access_filter or {}
        for record in records or []:
            self._insert(record)

    @property
    def list_key(self) -> str:
        return self._list_key

    def with_access_filter(self, access_filter: dict[str, Any]) -> InMemoryRecordStore:
        """Return a view over the same records restricted by *access_filter*."""
        view = InMemoryRecordStore(self._list_key, access_filter=access_filter, fields=self._fields)
        view._records = self._records
        return view

    # ------------------------------------------------------------------
    # IRecordStore implementation
    # ------------------------------------------------------------------

    async def find_many(
        self, where: dict[str, Any] | None = None, take: int | None = None
    ) -> list[dict[str, Any]]:
        self._check_fields(where)
        found = [copy.deepcopy(r) for r in self._visible() if matches_where(r, where)]
        return found if take is None else found[:take]

    async def find_unique(self, where: dict[str, Any]) -> dict[str, Any] | None:
        self._check_fields(where)
        for record in self._visible():
            if matches_where(record, where):
                return copy.deepcopy(record)
        return None

    async def update(self, where: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        self._check_fields(where)
        self._check_fields(data)
        for record in self._visible():
            if matches_where(record, where):
                record.update(copy.deepcopy(data))
                logger.debug("record_updated", list_key=self._list_key, record_id=record["id"])
                return copy.deepcopy(record)
        raise ItemNotFoundError(self._list_key, str(where.get("id", where)))

    async def count(self, where: dict[str, Any] | None = None) -> int:
        self._check_fields(where)
        return sum(1 for r in self._visible() if matches_where(r, where))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it (with its id)."""
        return copy.deepcopy(self._insert(data))

    def _insert(self, data: dict[str, Any]) -> dict[str, Any]:
        record = copy.deepcopy(data)
        record.setdefault("id", str(uuid.uuid4()))
        self._records[str(record["id"])] = record
        return record

    def _check_fields(self, where: dict[str, Any] | None) -> None:
        if self._fields is None or not where:
            return
        for key, condition in where.items():
            if key in ("AND", "OR", "NOT"):
                for clause in _as_list(condition):
                    self._check_fields(clause)
            elif key not in self._fields:
                raise FieldNotFoundError(self._list_key, key)

    def _visible(self) -> list[dict[str, Any]]:
        return [r for r in self._records.values() if matches_where(r, self._access_filter)]
