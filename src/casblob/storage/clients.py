"""Shared cache of remote service clients."""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ClientCache(Generic[K, V]):
    """Get-or-create cache with single-flight loading.

    Only one thread runs the loader for a given key; concurrent callers for
    the same key wait on that load. A failed load is not cached, so the
    next call tries again.

    The cache is meant to be created once and injected wherever clients
    are needed (e.g. one service client per storage account).
    """

    def __init__(self, loader: Callable[[K], V]):
        self._loader = loader
        self._lock = threading.Lock()
        self._values: Dict[K, V] = {}
        self._loading: Dict[K, Future] = {}

    def get(self, key: K) -> V:
        with self._lock:
            if key in self._values:
                return self._values[key]
            pending = self._loading.get(key)
            if pending is None:
                pending = Future()
                self._loading[key] = pending
                owner = True
            else:
                owner = False

        if not owner:
            return pending.result()

        try:
            value = self._loader(key)
        except BaseException as exc:
            with self._lock:
                self._loading.pop(key, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._values[key] = value
            self._loading.pop(key, None)
        pending.set_result(value)
        logger.debug("Created client for %r", key)
        return value

    def __contains__(self, key: K) -> bool:
        with self._lock:
            return key in self._values

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)
