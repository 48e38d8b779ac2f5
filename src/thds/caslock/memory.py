"""An in-process CasStore. Useful wherever every contender for a lock lives in the same
process (threads), and as the store for tests.

TTLs behave as memcached's do: whole seconds, where zero or less means never expire -
except that expiry is measured precisely rather than on a one-second tick.
"""

import itertools
import threading
import time
import typing as ty

from .types import NOT_FOUND, ReadResult


class _Entry(ty.NamedTuple):
    value: bytes
    version: int
    expires_at: ty.Optional[float]


class MemoryStore:
    def __init__(self, clock: ty.Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: ty.Dict[str, _Entry] = dict()
        self._versions = itertools.count(1)

    def _live(self, key: str) -> ty.Optional[_Entry]:
        entry = self._entries.get(key)
        if entry and entry.expires_at is not None and entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _put(self, key: str, value: ty.Union[bytes, str], ttl_s: int) -> None:
        self._entries[key] = _Entry(
            value.encode() if isinstance(value, str) else bytes(value),
            next(self._versions),
            self._clock() + ttl_s if ttl_s > 0 else None,
        )

    def insert_if_absent(self, key: str, value: bytes, ttl_s: int) -> bool:
        with self._lock:
            if self._live(key):
                return False
            self._put(key, value, ttl_s)
            return True

    def compare_and_swap(self, version: ty.Any, key: str, value: bytes, ttl_s: int) -> bool:
        with self._lock:
            entry = self._live(key)
            if not entry or entry.version != version:
                return False
            self._put(key, value, ttl_s)
            return True

    def read(self, key: str) -> ReadResult:
        with self._lock:
            entry = self._live(key)
            if not entry:
                return NOT_FOUND
            return ReadResult(entry.value, entry.version, True)

    # plain cache operations, for data that is protected by a lock rather than being one.
    def set(self, key: str, value: ty.Union[bytes, str], ttl_s: int = 0) -> None:
        with self._lock:
            self._put(key, value, ttl_s)

    def get(self, key: str) -> ty.Optional[bytes]:
        with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None
