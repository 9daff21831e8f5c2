"""
SingleFlight: coalesce concurrent calls for the same key into one execution.

The first caller for a key runs the function; everyone who arrives while it
is still running waits on the same Future and gets the same result, or the
same exception. Once the call settles the key is free again, so the next
caller starts a fresh execution.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future
from typing import Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class SingleFlight:
    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[Hashable, Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._calls

    def do(self, key: Hashable, fn: Callable[[], T], timeout: float | None = None) -> T:
        with self._lock:
            future = self._calls.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._calls[key] = future

        if not leader:
            return future.result(timeout=timeout)

        try:
            result = fn()
        except BaseException as exc:
            future.set_exception(exc)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._calls.pop(key, None)
