"""
In-memory table cache.

One TableCache per lookup entity. Load state is tracked explicitly so a table
that loaded successfully but holds no rows is not fetched again.
"""

import asyncio
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar

T = TypeVar("T")


class CacheState(str, Enum):
    """Load state of a cache."""

    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    LOADED = "loaded"

    def __str__(self) -> str:
        return self.value


class TableCache(Generic[T]):
    """
    Records of one entity keyed by id.

    The lock serialises load-and-populate sequences of the same table, so a
    second loader waits for the first and then sees LOADED.

    generation is bumped by clear(). A loader that started under an older
    generation must not write into the table.
    """

    def __init__(self, name: str, sort_key: Callable[[T], object]) -> None:
        self.name = name
        self.state = CacheState.NOT_LOADED
        self.loaded_at: Optional[datetime] = None
        self.lock = asyncio.Lock()
        self.generation = 0
        self._sort_key = sort_key
        self._records: Dict[int, T] = {}
        self._sorted: Optional[List[T]] = None

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._records

    @property
    def is_loaded(self) -> bool:
        return self.state is CacheState.LOADED

    def get(self, record_id: Optional[int]) -> Optional[T]:
        if not record_id:
            return None
        return self._records.get(record_id)

    def put_many(self, items: Iterable[T], key: Callable[[T], int]) -> int:
        count = 0
        for item in items:
            self._records[key(item)] = item
            count += 1
        if count:
            self._sorted = None
        return count

    @property
    def records(self) -> Mapping[int, T]:
        """Read-only live view of the records keyed by id."""
        return MappingProxyType(self._records)

    def values(self) -> List[T]:
        return list(self._records.values())

    def sorted_values(self) -> List[T]:
        """All records ordered by the table's sort key (memoised until next change)."""
        if self._sorted is None:
            self._sorted = sorted(self._records.values(), key=self._sort_key)
        return list(self._sorted)

    def mark_loading(self) -> None:
        self.state = CacheState.LOADING

    def mark_loaded(self) -> None:
        self.state = CacheState.LOADED
        self.loaded_at = datetime.now()

    def mark_failed(self) -> None:
        # Rows parsed from pages that did arrive stay available for lookups
        self.state = CacheState.NOT_LOADED

    def clear(self) -> None:
        self._records.clear()
        self._sorted = None
        self.state = CacheState.NOT_LOADED
        self.loaded_at = None
        self.generation += 1
