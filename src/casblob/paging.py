"""Lazy, thread-safe enumeration over a paginated remote listing.

A ``LazyPagedSequence`` turns a ``fetch_first`` / ``fetch_next`` pair into
one forward-only sequence of result items. Nothing is fetched until the
first item is requested, and the first page is fetched exactly once no
matter how many threads start consuming at the same time.

Errors never escape through the iterator protocol. A failed page fetch is
delivered as a final ``Err`` item and the sequence ends there, so callers
decide where the error is raised.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successfully produced item."""
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """A failure carried in place of an item."""
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]


class LazyPagedSequence(Generic[T]):
    """Single-pass sequence over every item of every page.

    Args:
        fetch_first: Returns the first page
        fetch_next: Returns the page after the given one, or None at the end
        items_of: Extracts the items of a page (defaults to iterating the page)

    Thread Safety:
        Materialization uses double-checked locking: the published iterator
        is read without a lock, and only a thread that sees nothing published
        takes the lock, re-checks, fetches the first page and publishes.
        Drawing items is serialized, so concurrent consumers each receive
        distinct items.
    """

    def __init__(
        self,
        fetch_first: Callable[[], P],
        fetch_next: Callable[[P], Optional[P]],
        items_of: Optional[Callable[[P], Iterable[T]]] = None,
    ):
        self._fetch_first = fetch_first
        self._fetch_next = fetch_next
        self._items_of = items_of or iter
        self._iterator: Optional[Iterator[Result]] = None
        self._init_lock = threading.Lock()
        self._next_lock = threading.Lock()

    @property
    def materialized(self) -> bool:
        return self._iterator is not None

    def _get_iterator(self) -> Iterator[Result]:
        local = self._iterator
        if local is None:
            with self._init_lock:
                local = self._iterator
                if local is None:
                    local = self._materialize()
                    self._iterator = local
        return local

    def _materialize(self) -> Iterator[Result]:
        try:
            first = self._fetch_first()
        except Exception as exc:
            logger.debug("First page fetch failed: %s", exc)
            return iter((Err(exc),))
        return self._walk(first)

    def _walk(self, page: P) -> Iterator[Result]:
        while page is not None:
            for item in self._items_of(page):
                yield Ok(item)
            try:
                page = self._fetch_next(page)
            except Exception as exc:
                logger.debug("Next page fetch failed: %s", exc)
                yield Err(exc)
                return

    def __iter__(self) -> "LazyPagedSequence[T]":
        return self

    def __next__(self) -> Result:
        iterator = self._get_iterator()
        with self._next_lock:
            return next(iterator)

    def values(self) -> Iterator[T]:
        """Yield plain items, raising the carried error on failure."""
        for result in self:
            yield result.unwrap()
