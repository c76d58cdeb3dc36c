# Overview: Retry helpers shared by the row store and the balance write path.

from __future__ import annotations

import threading
import time
import weakref


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
    retry_on: tuple[type[BaseException], ...] = (),
    on_retry=None,
):
    """
    Execute func, retrying on the given exception types.

    attempts is the total number of calls (attempts=2 means one retry).
    Sleeps backoff_base * 2**n between calls. on_retry(exc, attempt) is
    called before each retry. The last exception propagates unchanged.
    """
    attempts = max(1, attempts)
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                raise
            if on_retry is not None:
                on_retry(exc, attempt + 1)
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))


class KeyedLock:
    """
    One threading.Lock per key (e.g. product code).

    Serializes balance writers inside a single process. Cross-process safety
    still comes from the compare-and-swap on Product.version.

    Locks are held weakly: a key's lock lives only while some caller holds a
    reference to it, so idle keys do not accumulate.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def for_key(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)
