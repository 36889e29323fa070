"""In-memory API key store with constant-time validation."""

import hmac
import logging
from typing import FrozenSet, Iterable, List, Union

from .rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


def secure_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time.

    Both values are compared as UTF-8 bytes with ``hmac.compare_digest`` so
    the running time does not depend on the position of the first
    differing byte.
    """
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def normalize_keys(keys: Iterable[str]) -> List[str]:
    """Trim configured keys and drop blanks and duplicates, keeping first-seen order."""
    seen = set()
    normalized: List[str] = []
    for key in keys:
        trimmed = key.strip()
        if not trimmed or trimmed in seen:
            continue
        seen.add(trimmed)
        normalized.append(trimmed)
    return normalized


class KeyStore:
    """Immutable set of valid API keys.

    Keys are loaded once at construction. Lookups take the shared side of a
    reader-writer lock, so any number of requests can validate concurrently.
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._lock = ReadWriteLock()
        self._keys: FrozenSet[bytes] = frozenset()
        with self._lock.write():
            self._keys = frozenset(key.encode("utf-8") for key in normalize_keys(keys))
        logger.debug(f"Loaded {len(self._keys)} API key(s)")

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> "KeyStore":
        """Build a store from a configured key list."""
        return cls(keys)

    def validate(self, candidate: Union[str, bytes]) -> bool:
        """Return True if ``candidate`` exactly matches a stored key.

        Stored keys are held as UTF-8 bytes. A ``str`` candidate is encoded
        the same way; a ``bytes`` candidate, such as a raw header value, is
        compared as is.

        Every stored key is compared, and each comparison is constant time,
        so neither the matching key's position nor the differing byte leaks
        through timing.
        """
        encoded = candidate if isinstance(candidate, bytes) else candidate.encode("utf-8")
        matched = False
        with self._lock.read():
            for key in self._keys:
                if hmac.compare_digest(encoded, key):
                    matched = True
        return matched

    def count(self) -> int:
        """Number of distinct configured keys."""
        with self._lock.read():
            return len(self._keys)

    def has_keys(self) -> bool:
        """True if at least one key is configured."""
        return self.count() > 0

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, candidate: object) -> bool:
        return isinstance(candidate, (str, bytes)) and self.validate(candidate)
