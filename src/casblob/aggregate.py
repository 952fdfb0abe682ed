"""Whole-store operations: parallel key fan-out, statistics and copy.

Every operation here walks a store's lazy key enumeration on the calling
thread and hands per-key work to a thread pool. At most ``2 * max_workers``
keys are in flight, so enumeration stays lazy for large stores.

Error policy is first-error-wins: the first failure observed (an
enumeration error, a per-key error or cancellation) stops submission,
cancels queued work, tells running workers to stop, and is raised to the
caller. A partial result is never returned.

Statistics are not accumulated with atomic compare-and-swap retries on
shared counters, and there is no CAS loop anywhere in this module. Workers
only fetch metadata and return it; the collecting thread alone folds each
result into a plain count/sum/min/max accumulator. Workers therefore share
no mutable state, and no fetch ever waits on a lock held by another fetch.
"""

import logging
import tempfile
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable, Optional, Set, TypeVar

from .cancel import CancelToken, check
from .paging import Result
from .storage.base import BlobStore
from .storage_models import BlobMetadata, StatisticsSummary

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8

# Seconds between cancellation checks while waiting on workers
POLL_INTERVAL = 0.05

T = TypeVar("T")
R = TypeVar("R")


def _drain(
    in_flight: Set[Future],
    on_result: Callable[[R], None],
    cancel: Optional[CancelToken],
    operation: str,
) -> int:
    """Wait for at least one future, fold finished results, return how many."""
    while True:
        check(cancel, operation)
        done, _ = wait(in_flight, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
        if done:
            break
    for future in done:
        in_flight.discard(future)
        on_result(future.result())
    return len(done)


def fan_out(
    items: Iterable[Result],
    action: Callable[[T, CancelToken], R],
    on_result: Callable[[R], None],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: Optional[CancelToken] = None,
    operation: str = "fan-out",
) -> int:
    """
    Run action over every item of a result sequence in parallel.

    Args:
        items: Sequence of Ok/Err items (e.g. store.enumerate_keys())
        action: Called on a worker as action(value, stop_token)
        on_result: Called on the calling thread with each action's return value
        max_workers: Worker threads
        cancel: Caller's cancellation token
        operation: Name used in OperationCancelled

    Returns:
        Number of items processed

    Raises:
        OperationCancelled: If cancel was triggered
        Exception: The first enumeration or action error observed
    """
    stop = cancel.child() if cancel is not None else CancelToken()
    limit = max_workers * 2
    in_flight: Set[Future] = set()
    processed = 0

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="casblob")
    try:
        for result in items:
            check(cancel, operation)
            value = result.unwrap()
            in_flight.add(executor.submit(action, value, stop))
            while len(in_flight) >= limit:
                processed += _drain(in_flight, on_result, cancel, operation)
        while in_flight:
            processed += _drain(in_flight, on_result, cancel, operation)
    except BaseException:
        stop.cancel()
        executor.shutdown(wait=True, cancel_futures=True)
        logger.debug("%s aborted with %d item(s) in flight", operation, len(in_flight))
        raise
    executor.shutdown(wait=True)
    return processed


def consume_keys(
    store: BlobStore,
    action: Callable[[str], None],
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: Optional[CancelToken] = None,
) -> int:
    """
    Call action(key) for every key in store, in parallel.

    Returns:
        Number of keys processed
    """
    def run(key: str, token: CancelToken) -> None:
        token.raise_if_cancelled("consume_keys")
        action(key)

    return fan_out(
        store.enumerate_keys(),
        run,
        lambda _: None,
        max_workers=max_workers,
        cancel=cancel,
        operation="consume_keys",
    )


class _StatsAccumulator:
    """Commutative count/sum/min/max fold.

    Only the collecting thread calls add(); it stands in for per-field
    compare-and-swap accumulators.
    """

    def __init__(self):
        self.count = 0
        self.total = 0
        self.min_size: Optional[int] = None
        self.max_size: Optional[int] = None

    def add(self, size: int) -> None:
        self.count += 1
        self.total += size
        if self.min_size is None or size < self.min_size:
            self.min_size = size
        if self.max_size is None or size > self.max_size:
            self.max_size = size

    def summary(self) -> StatisticsSummary:
        return StatisticsSummary(
            count=self.count,
            total_size=self.total,
            min_size=self.min_size or 0,
            max_size=self.max_size or 0,
        )


def compute_statistics(
    store: BlobStore,
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: Optional[CancelToken] = None,
) -> StatisticsSummary:
    """
    Count and size every blob, fetching metadata per key in parallel.

    Keys that disappear between listing and describe are skipped.

    Raises:
        TransportError: First listing or describe failure
        OperationCancelled: If cancel was triggered
    """
    acc = _StatsAccumulator()

    def describe(key: str, token: CancelToken) -> Optional[BlobMetadata]:
        token.raise_if_cancelled("compute_statistics")
        return store.describe(key)

    def fold(meta: Optional[BlobMetadata]) -> None:
        if meta is not None:
            acc.add(meta.content_length)

    fan_out(
        store.enumerate_keys(),
        describe,
        fold,
        max_workers=max_workers,
        cancel=cancel,
        operation="compute_statistics",
    )
    summary = acc.summary()
    logger.info("Statistics: %d blobs, %d bytes", summary.count, summary.total_size)
    return summary


def listing_statistics(store, cancel: Optional[CancelToken] = None) -> StatisticsSummary:
    """
    Statistics from listing sizes alone, without a round trip per key.

    Sequential: the listing arrives page by page anyway and summing is cheap
    next to a page fetch. Requires a store with enumerate_entries().
    """
    acc = _StatsAccumulator()
    for entry in store.enumerate_entries().values():
        check(cancel, "listing_statistics")
        acc.add(entry.size)
    return acc.summary()


def copy_one(
    source_key: str,
    source_store: BlobStore,
    dest_key: str,
    dest_store: BlobStore,
    cancel: Optional[CancelToken] = None,
) -> bool:
    """
    Copy one blob between stores through a local temporary file.

    Args:
        source_key: Key to read from source_store
        source_store: Store to copy from
        dest_key: Key to write in dest_store
        dest_store: Store to copy to
        cancel: Optional cancellation token

    Returns:
        True if copied, False if the source key does not exist
    """
    check(cancel, "copy")
    with tempfile.TemporaryFile(prefix="casblob-copy-") as staged:
        meta = source_store.download(source_key, staged)
        if meta is None:
            logger.debug("Copy source %s missing; skipped", source_key)
            return False
        check(cancel, "copy")
        staged.seek(0)
        dest_store.upload(dest_key, staged, dict(meta.properties))
    logger.debug("Copied %s -> %s", source_key, dest_key)
    return True


def copy_all(
    source_store: BlobStore,
    dest_store: BlobStore,
    key_mapper: Optional[Callable[[str], str]] = None,
    *,
    max_workers: int = DEFAULT_MAX_WORKERS,
    cancel: Optional[CancelToken] = None,
) -> int:
    """
    Copy every blob of source_store into dest_store, in parallel.

    Args:
        source_store: Store to copy from
        dest_store: Store to copy to
        key_mapper: Maps each source key to its destination key (identity by default)
        max_workers: Worker threads
        cancel: Optional cancellation token

    Returns:
        Number of source keys processed

    Raises:
        TransportError: First copy failure
        OperationCancelled: If cancel was triggered
    """
    mapper = key_mapper or (lambda key: key)

    def copy(key: str, token: CancelToken) -> bool:
        return copy_one(key, source_store, mapper(key), dest_store, cancel=token)

    processed = fan_out(
        source_store.enumerate_keys(),
        copy,
        lambda _: None,
        max_workers=max_workers,
        cancel=cancel,
        operation="copy_all",
    )
    logger.info("Copied %d blobs from %r to %r", processed, source_store, dest_store)
    return processed
