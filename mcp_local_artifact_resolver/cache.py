"""Thread-safe at-most-once cache keyed by identity.

Notes:
- One single-initialization future per key; the registry is guarded by a lock
  so two threads can never install competing loaders for the same key
- The first caller for a key runs the factory in its own thread; concurrent
  callers block on the shared future and receive the same value
- A waiter that gives up waiting (timeout) gets ``None``
- On failure the entry is dropped and the exception reaches every waiter, so
  a later call retries
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Generic, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")

_logger = logging.getLogger(__name__)


class OnceCache(Generic[K, V]):
    """Compute each key at most once and share the result between threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[K, Future[V]] = {}

    def get_or_compute(
        self,
        key: K,
        factory: Callable[[], V],
        timeout: Optional[float] = None,
    ) -> Optional[V]:
        """Return the value for ``key``, computing it if nobody has yet.

        If another thread is already computing the value, block until it is
        published. ``timeout`` bounds the wait of such a joining caller only;
        the computing thread always runs the factory to completion.
        """

        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                future.set_running_or_notify_cancel()
                self._entries[key] = future

        assert future is not None
        if owner:
            return self._compute(key, future, factory)

        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            _logger.debug("Gave up waiting for in-flight computation", extra={"op": "once_cache_wait"})
            return None

    def _compute(self, key: K, future: Future[V], factory: Callable[[], V]) -> V:
        try:
            value = factory()
        except BaseException as e:
            with self._lock:
                if self._entries.get(key) is future:
                    del self._entries[key]
            future.set_exception(e)
            raise
        future.set_result(value)
        return value

    def is_loading(self, key: K) -> bool:
        """Introspection for tests: whether a computation for key is in flight."""
        with self._lock:
            future = self._entries.get(key)
        return bool(future is not None and not future.done())


__all__ = ["OnceCache"]
