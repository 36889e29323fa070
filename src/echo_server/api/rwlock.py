"""Shared/exclusive lock for the API key store.

Readers share the lock; a writer holds it alone. The first reader in takes
the exclusive lock on behalf of every reader and the last reader out
releases it, so concurrent validations never serialize on each other.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class ReadWriteLock:
    def __init__(self) -> None:
        self._exclusive = threading.Lock()
        self._count_lock = threading.Lock()
        self._readers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._count_lock:
            self._readers += 1
            if self._readers == 1:
                self._exclusive.acquire()
        try:
            yield
        finally:
            with self._count_lock:
                self._readers -= 1
                if self._readers == 0:
                    # may run on a different thread than the acquire
                    self._exclusive.release()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._exclusive:
            yield

    @property
    def readers(self) -> int:
        """Number of readers currently inside read()."""
        return self._readers
