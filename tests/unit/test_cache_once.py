import threading
import time

import pytest

from mcp_local_artifact_resolver.cache import OnceCache


def test_concurrent_callers_share_one_computation() -> None:
    cache: OnceCache[str, object] = OnceCache()
    started = threading.Event()
    proceed = threading.Event()
    calls = 0
    results: list[object] = []
    results_lock = threading.Lock()

    def factory() -> object:
        nonlocal calls
        calls += 1
        started.set()
        proceed.wait(5)
        return object()

    def worker() -> None:
        value = cache.get_or_compute("root", factory)
        with results_lock:
            results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    assert started.wait(5)
    assert cache.is_loading("root")
    proceed.set()
    for t in threads:
        t.join(5)

    assert calls == 1
    assert len(results) == 8
    assert all(r is results[0] for r in results)
    assert not cache.is_loading("root")
    assert cache.get_or_compute("root", object) is results[0]


def test_published_value_is_reused() -> None:
    cache: OnceCache[str, int] = OnceCache()
    assert cache.get_or_compute("k", lambda: 1) == 1
    assert cache.get_or_compute("k", lambda: 2) == 1


def test_waiter_timeout_returns_none() -> None:
    cache: OnceCache[str, int] = OnceCache()
    started = threading.Event()
    proceed = threading.Event()

    def slow() -> int:
        started.set()
        proceed.wait(5)
        return 7

    owner = threading.Thread(target=lambda: cache.get_or_compute("k", slow))
    owner.start()
    assert started.wait(5)

    t0 = time.monotonic()
    assert cache.get_or_compute("k", slow, timeout=0.05) is None
    assert time.monotonic() - t0 < 2

    proceed.set()
    owner.join(5)
    # The owner still published its value
    assert cache.get_or_compute("k", slow, timeout=0.05) == 7


def test_failure_reaches_waiters_and_is_not_cached() -> None:
    cache: OnceCache[str, int] = OnceCache()
    started = threading.Event()
    proceed = threading.Event()
    waiter_errors: list[BaseException] = []

    class Boom(RuntimeError):
        pass

    def failing() -> int:
        started.set()
        proceed.wait(5)
        raise Boom("nope")

    def owner() -> None:
        with pytest.raises(Boom):
            cache.get_or_compute("k", failing)

    def waiter() -> None:
        try:
            cache.get_or_compute("k", failing)
        except Boom as e:
            waiter_errors.append(e)

    t_owner = threading.Thread(target=owner)
    t_owner.start()
    assert started.wait(5)
    t_waiter = threading.Thread(target=waiter)
    t_waiter.start()
    # Give the waiter a moment to attach to the in-flight future
    time.sleep(0.05)
    proceed.set()
    t_owner.join(5)
    t_waiter.join(5)

    assert len(waiter_errors) == 1
    assert not cache.is_loading("k")
    # Retry after failure computes afresh
    assert cache.get_or_compute("k", lambda: 3) == 3

