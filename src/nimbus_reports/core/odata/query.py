"""
OData filter expression helpers.

Builds the $filter shapes used by the reference caches. Server-side query
construction for report data belongs to the report layer.
"""

from typing import Iterable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")

ACTIVE_FILTER = "Active eq true and Deleted eq false"
NOT_DELETED_FILTER = "Deleted eq false"


def active_filter() -> str:
    """Filter matching records that are active and not soft-deleted."""
    return ACTIVE_FILTER


def not_deleted_filter() -> str:
    """Filter matching records that are not soft-deleted, active or not."""
    return NOT_DELETED_FILTER


def and_filters(*expressions: str | None) -> str:
    """
    Join filter expressions with 'and', skipping empty ones.

    Expressions containing 'or' are parenthesised so precedence is kept.
    """
    parts = []
    for expr in expressions:
        if not expr:
            continue
        parts.append(f"({expr})" if " or " in expr else expr)
    return " and ".join(parts)


def id_in_filter(ids: Iterable[int], field: str = "Id") -> str:
    """
    Build an OR-predicate matching any of the given ids.

    Example:
        >>> id_in_filter([1, 2])
        'Id eq 1 or Id eq 2'
    """
    return " or ".join(f"{field} eq {int(i)}" for i in ids)


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield successive batches of at most `size` items."""
    if size <= 0:
        raise ValueError("size must be greater than zero")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])
