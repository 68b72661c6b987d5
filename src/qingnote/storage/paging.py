"""Offset paging over ordered note queries.

A ``PagingSource`` loads fixed-size slices of one query. A ``PagedList`` is a
lazily filled snapshot over a source: the first page is loaded up front and
later pages are fetched as the consumer reads towards the end of what is
loaded. ``Pager`` ties sources to a live query so every change to the
underlying tables produces a fresh ``PagedList`` generation.
"""

import logging
import threading
from dataclasses import dataclass
from typing import (Callable, Generic, Iterator, List, Optional, Sequence,
                    TypeVar)

from qingnote.config import config
from qingnote.storage.live_query import InvalidationTracker, LiveQuery

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PagingConfig:
    """Page geometry.

    ``prefetch_distance`` is how many items beyond the last one read must be
    loaded; ``initial_load_size`` defaults to a single page.
    """

    page_size: int = 20
    prefetch_distance: int = 60
    initial_load_size: Optional[int] = None

    def __post_init__(self):
        if self.page_size < 1:
            raise ValueError("page_size must be at least 1")
        if self.prefetch_distance < 0:
            raise ValueError("prefetch_distance cannot be negative")

    @property
    def initial_size(self) -> int:
        return self.initial_load_size or self.page_size

    @classmethod
    def from_config(cls) -> "PagingConfig":
        return cls(page_size=config.page_size, prefetch_distance=config.prefetch_distance)


@dataclass(frozen=True)
class Page(Generic[T]):
    """One loaded slice of a query."""

    items: List[T]
    offset: int
    next_offset: Optional[int]

    @property
    def prev_offset(self) -> Optional[int]:
        return None if self.offset == 0 else self.offset

    def __len__(self) -> int:
        return len(self.items)


class PagingSource(Generic[T]):
    """Offset-keyed loader over one ordered query.

    Args:
        load: ``load(offset, limit)`` returning up to ``limit`` rows.
        count: Optional total row count of the query.
    """

    def __init__(
        self,
        load: Callable[[int, int], List[T]],
        count: Optional[Callable[[], int]] = None,
    ):
        self._load = load
        self._count = count
        self._invalid = False

    @property
    def invalid(self) -> bool:
        return self._invalid

    def invalidate(self) -> None:
        """Mark this source stale; a newer generation replaces it."""
        self._invalid = True

    def count(self) -> Optional[int]:
        return self._count() if self._count is not None else None

    def load(self, offset: int, limit: int) -> Page[T]:
        items = self._load(offset, limit)
        next_offset = offset + len(items) if len(items) == limit else None
        return Page(items=items, offset=offset, next_offset=next_offset)


class PagedList(Sequence[T]):
    """Snapshot of a paged query, filled page by page as it is read.

    ``len()`` is the number of items loaded so far. Indexing an item loads
    pages until ``index + prefetch_distance`` items are available or the
    query is exhausted. Iterating walks every row, loading as it goes.
    """

    def __init__(self, source: PagingSource[T], paging: Optional[PagingConfig] = None):
        self._source = source
        self._config = paging or PagingConfig.from_config()
        self._pages: List[Page[T]] = []
        self._items: List[T] = []
        self._next_offset: Optional[int] = 0
        self._lock = threading.RLock()
        self._load_next(self._config.initial_size)

    @property
    def config(self) -> PagingConfig:
        return self._config

    @property
    def pages(self) -> List[Page[T]]:
        with self._lock:
            return list(self._pages)

    @property
    def end_reached(self) -> bool:
        return self._next_offset is None

    @property
    def loaded_count(self) -> int:
        return len(self._items)

    def _load_next(self, limit: Optional[int] = None) -> bool:
        with self._lock:
            if self._next_offset is None:
                return False
            if self._source.invalid:
                logger.debug("Paging source invalidated, no further pages loaded")
                return False
            page = self._source.load(self._next_offset, limit or self._config.page_size)
            if page.items:
                self._pages.append(page)
                self._items.extend(page.items)
            self._next_offset = page.next_offset
            return bool(page.items)

    def load_around(self, index: int) -> None:
        """Ensure items up to ``index + prefetch_distance`` are loaded."""
        target = index + 1 + self._config.prefetch_distance
        while len(self._items) < target and self._load_next():
            pass

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self._items[index]
        if index < 0:
            return self._items[index]
        self.load_around(index)
        return self._items[index]

    def __iter__(self) -> Iterator[T]:
        position = 0
        while True:
            with self._lock:
                if position >= len(self._items) and not self._load_next():
                    return
                item = self._items[position]
            yield item
            position += 1

    def iter_pages(self) -> Iterator[List[T]]:
        """Yield each page's items in order, loading pages as needed."""
        index = 0
        while True:
            with self._lock:
                if index >= len(self._pages) and not self._load_next():
                    return
                page = self._pages[index]
            yield list(page.items)
            index += 1

    def to_list(self) -> List[T]:
        """Load everything and return a plain list."""
        return list(iter(self))


class Pager(Generic[T]):
    """Produces a new ``PagedList`` generation per invalidation.

    Args:
        source_factory: Builds a fresh ``PagingSource`` for the query.
        paging: Page geometry, defaults to the configured one.
    """

    def __init__(
        self,
        source_factory: Callable[[], PagingSource[T]],
        paging: Optional[PagingConfig] = None,
    ):
        self._source_factory = source_factory
        self._config = paging or PagingConfig.from_config()
        self._current: Optional[PagingSource[T]] = None
        self._lock = threading.Lock()

    def create(self) -> PagedList[T]:
        """Start a new generation, retiring the previous one."""
        source = self._source_factory()
        with self._lock:
            if self._current is not None:
                self._current.invalidate()
            self._current = source
        return PagedList(source, self._config)

    def snapshot(self) -> PagedList[T]:
        """A one-off list over a fresh source; the current generation keeps loading."""
        return PagedList(self._source_factory(), self._config)

    def live(
        self,
        tracker: InvalidationTracker,
        tables: Sequence[str],
        name: str = "paged",
    ) -> LiveQuery[PagedList[T]]:
        """Wrap this pager as a live query emitting one ``PagedList`` per change."""
        return LiveQuery(tracker, tables, self.create, name=name, read=self.snapshot)
