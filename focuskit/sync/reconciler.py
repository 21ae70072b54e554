"""Merge local-only records with the remote listing."""

from typing import Callable, Optional, TypeVar

from focuskit.models import Record

RecordT = TypeVar("RecordT", bound=Record)

Order = Callable[[list[RecordT]], list[RecordT]]


def newest_first(records: list[RecordT]) -> list[RecordT]:
    """Sort by ``created_at`` descending; equal timestamps fall back to id order."""
    by_id = sorted(records, key=lambda r: (r.id.kind, r.id.value))
    return sorted(by_id, key=lambda r: r.created_at, reverse=True)


def merge(
    local_only: list[RecordT],
    remote: list[RecordT],
    order: Optional[Order] = newest_first,
) -> list[RecordT]:
    """Union of ``remote`` and the local-only records whose id it lacks.

    Remote copies win on id collision. Duplicate ids inside either input
    keep their first occurrence.

    Args:
        local_only: Records held only in the local cache.
        remote: Records confirmed by the remote store.
        order: Ordering applied to the result; ``None`` keeps remote
            records first, then local ones, in input order.

    Returns:
        A new list with no two records sharing an id.
    """
    seen: set = set()
    merged: list[RecordT] = []
    for record in list(remote) + list(local_only):
        if record.id in seen:
            continue
        seen.add(record.id)
        merged.append(record)
    return order(merged) if order is not None else merged
