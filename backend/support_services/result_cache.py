"""In-memory TTL cache for aggregated metrics.

One instance is created by the app factory and shared by every request.
Entries expire a fixed time after insertion, the store is bounded with
least-recently-used eviction, and concurrent requests for the same
signature share a single build.
"""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, NamedTuple, Optional

from support_services.errors import AuthError
from support_services.models import AggregateResult, QuerySignature

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15 * 60
DEFAULT_MAX_ENTRIES = 128


class CacheEntry(NamedTuple):
    result: AggregateResult
    stored_at: float


class ResultCache:
    """TTL + LRU cache keyed by QuerySignature."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 max_entries: int = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries = OrderedDict()
        self._in_flight = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, signature):
        with self._lock:
            entry = self._entries.get(signature)
            return entry is not None and self._is_fresh(entry)

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.stored_at < self.ttl_seconds

    def _get_locked(self, signature: QuerySignature) -> Optional[AggregateResult]:
        entry = self._entries.get(signature)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            del self._entries[signature]
            return None
        self._entries.move_to_end(signature)
        return entry.result

    def _put_locked(self, signature: QuerySignature, result: AggregateResult):
        self._entries[signature] = CacheEntry(result, self._clock())
        self._entries.move_to_end(signature)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted least recently used entry {evicted}")

    def get(self, signature: QuerySignature) -> Optional[AggregateResult]:
        """Return the cached result, or None if absent or expired."""
        with self._lock:
            return self._get_locked(signature)

    def put(self, signature: QuerySignature, result: AggregateResult):
        with self._lock:
            self._put_locked(signature, result)

    def clear(self):
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cache cleared ({count} entries)")

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            expired = [s for s, e in self._entries.items() if not self._is_fresh(e)]
            for signature in expired:
                del self._entries[signature]
        return len(expired)

    def get_or_build(self, signature: QuerySignature,
                     builder: Callable[[], AggregateResult],
                     force_refresh: bool = False) -> AggregateResult:
        """Return a fresh result for ``signature``, building it at most once.

        If another thread is already building the same signature, wait for
        its result (or its exception) instead of starting a second build.
        ``force_refresh`` ignores a fresh entry but still joins an in-flight
        build. Nothing is cached when the builder raises.

        Signatures do not include credentials, so a joined build that fails
        with AuthError says nothing about the waiter's own credentials; the
        waiter then runs its own builder once instead of re-raising.
        """
        return self._get_or_build(signature, builder, force_refresh, retry_on_auth=True)

    def _get_or_build(self, signature, builder, force_refresh, retry_on_auth):
        with self._lock:
            if not force_refresh:
                cached = self._get_locked(signature)
                if cached is not None:
                    logger.info(f"Returning cached data for {signature}")
                    return cached

            future = self._in_flight.get(signature)
            is_builder = future is None
            if is_builder:
                future = Future()
                self._in_flight[signature] = future

        if not is_builder:
            logger.info(f"Joining in-flight build for {signature}")
            try:
                return future.result()
            except AuthError:
                if not retry_on_auth:
                    raise
                logger.info(f"Joined build for {signature} was rejected by Jira, building with own credentials")
                return self._get_or_build(signature, builder, force_refresh, retry_on_auth=False)

        try:
            result = builder()
        except BaseException as e:
            with self._lock:
                self._in_flight.pop(signature, None)
            future.set_exception(e)
            raise

        with self._lock:
            self._put_locked(signature, result)
            self._in_flight.pop(signature, None)
        future.set_result(result)
        return result
