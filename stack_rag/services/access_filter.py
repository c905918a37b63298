"""Combine an authorization filter with a caller's query filter.

The access-control layer hands the search path a filter object describing
which records the caller may read.  This module never inspects that
object; it only AND-combines it with the caller's own ``where``.
"""

from __future__ import annotations

from typing import Any


def merge_access_filter(
    access_filter: dict[str, Any] | None,
    where: dict[str, Any] | None,
) -> dict[str, Any] | None:
    """AND-combine *access_filter* with *where*.

    Returns
    -------
    dict | None
        ``None`` when access is denied outright (``access_filter is None``);
        otherwise the filter to query with.  An empty access filter means
        unrestricted access and yields *where* unchanged.
    """
    if access_filter is None:
        return None
    if not access_filter:
        return dict(where or {})
    if not where:
        return dict(access_filter)
    return {"AND": [access_filter, where]}
