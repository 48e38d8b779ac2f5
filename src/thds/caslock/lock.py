"""A lock on a named critical section, coordinated entirely through a shared cache that
offers atomic 'add' and compare-and-swap operations (memcached being the canonical
example).

Acquisition first tries to create the key. If it already exists, the current token is
read along with its CAS version; if that token is stale, the acquirer attempts to
overwrite it using the version it just read, so that of several simultaneous stealers
exactly one can win. Every successful write is confirmed by reading it back before
ownership is assumed.

Staleness is decided one of two ways:

- by default, the store's own TTL is authoritative. A key that still exists is held,
  unless it holds the released sentinel. This is safe under client clock skew, but
  the store's TTLs are whole seconds, so lock durations are as well (rounded up).

- with `self_expire_sync`, the expiry timestamp embedded in the token by the holder
  is compared against the local clock. This allows sub-second locks but trusts that
  the clocks of all cooperating clients roughly agree. The store TTL is then only a
  backstop for cleaning up after holders that disappear.

A single CasLock is meant to be used by a single thread at a time.
"""

import math
import time
import typing as ty
from contextlib import contextmanager

from thds.core import log

from . import config, token
from .errors import (
    InvalidLockArgument,
    LockAlreadyAcquiredError,
    LockError,
    LostLockError,
    NotAcquiredError,
)
from .types import CasStore

logger = log.getLogger(__name__)

_IMMEDIATE_RETRIES_WITHOUT_WAIT = 3
# races that skip the sleep still get a few tries when the caller won't wait at all.


class CasLock:
    def __init__(
        self,
        store: CasStore,
        key: str,
        *,
        catch_exceptions: bool = False,
        self_expire_sync: bool = False,
    ) -> None:
        """With catch_exceptions, acquire/release/update/is_locked return False rather
        than raising a LockError. InvalidLockArgument is always raised.
        """
        if not key:
            raise InvalidLockArgument("Please use a non-empty name for the lock key")
        self.store = store
        self.key = key
        self.catch_exceptions = catch_exceptions
        self.self_expire_sync = self_expire_sync
        self.identity = token.make_identity()

        self.owned_version: ty.Any = None
        self.local_expiry_ms = 0
        self._lost = False
        # remembers a loss discovered by is_locked or update, so that a later
        # release can still report it honestly.

    def __repr__(self) -> str:
        return f"CasLock({self.key!r}, identity={self.identity!r})"

    @property
    def min_lock_duration(self) -> float:
        if self.self_expire_sync:
            return config.MIN_LOCK_DURATION_SELF_SYNC()
        return config.MIN_LOCK_DURATION()

    def _is_acquired(self) -> bool:
        return self.owned_version is not None and self.local_expiry_ms > token.now_ms()

    def _clear(self) -> None:
        self.owned_version = None
        self.local_expiry_ms = 0

    def _lose(self, error: LostLockError) -> bool:
        self._clear()
        self._lost = True
        return self._fail(error)

    def _still_to_release(self) -> bool:
        # the block may have released (or updated and lost) the lock itself.
        return self.owned_version is not None or self._lost

    def _fail(self, error: LockError) -> bool:
        if not self.catch_exceptions:
            raise error
        logger.debug("Returning False instead of raising: %s", error)
        return False

    def _check_duration(self, lock_duration: float) -> None:
        if lock_duration < self.min_lock_duration:
            raise InvalidLockArgument(
                f"Lock duration {lock_duration} for '{self.key}' is shorter than"
                f" the minimum of {self.min_lock_duration} seconds"
            )

    def _store_ttl(self, lock_duration: float) -> int:
        ttl_s = max(1, math.ceil(lock_duration))
        if self.self_expire_sync:
            return max(ttl_s, config.BACKSTOP_TTL())
        return ttl_s

    def _make_token(self, lock_duration: float) -> token.LockToken:
        return token.LockToken(token.now_ms(time.time() + lock_duration), self.identity)

    def _is_stale(self, current: token.LockToken) -> bool:
        if self.self_expire_sync:
            return current.expiry_ms < token.now_ms()
        # the store expires live locks on its own; only a release leaves a zero behind.
        return not current.expiry_ms

    def _confirm(self, lock_token: token.LockToken) -> bool:
        """Read back what we believe we just wrote, and record its CAS version."""
        cached = self.store.read(self.key)
        if cached.found and token.decode(cached.value) == lock_token:
            self.owned_version = cached.version
            self.local_expiry_ms = lock_token.expiry_ms
            return True
        self._clear()
        return False

    def acquire(
        self,
        lock_duration: float,
        wait_budget: float = 0.0,
        retry_interval: ty.Optional[float] = None,
    ) -> bool:
        """Attempt to acquire the lock for lock_duration seconds.

        With a zero wait_budget this makes a single attempt. Otherwise it keeps retrying
        every retry_interval seconds until wait_budget has elapsed.

        Acquisition is not re-entrant: calling this while the lock is held by this
        handle raises LockAlreadyAcquiredError without touching the store.
        """
        self._check_duration(lock_duration)
        if wait_budget < 0:
            raise InvalidLockArgument(f"Wait budget may not be negative: {wait_budget}")
        if retry_interval is None:
            retry_interval = config.RETRY_INTERVAL()
        if retry_interval <= 0:
            raise InvalidLockArgument(f"Retry interval must be positive: {retry_interval}")

        if self._is_acquired():
            return self._fail(LockAlreadyAcquiredError(self.key, "is already acquired"))

        self._clear()
        self._lost = False
        ttl_s = self._store_ttl(lock_duration)
        deadline = time.monotonic() + wait_budget
        immediate_retries = 0

        def may_retry_immediately() -> bool:
            nonlocal immediate_retries
            immediate_retries += 1
            if wait_budget:
                return time.monotonic() < deadline
            return immediate_retries <= _IMMEDIATE_RETRIES_WITHOUT_WAIT

        while True:
            lock_token = self._make_token(lock_duration)
            lock_bytes = lock_token.encode()

            if self.store.insert_if_absent(self.key, lock_bytes, ttl_s):
                if self._confirm(lock_token):
                    logger.debug("Acquired lock %s", self.key)
                    return True
                logger.debug("Lock %s was overwritten right after we created it", self.key)
                if not may_retry_immediately():
                    return False
                continue

            cached = self.store.read(self.key)
            if not cached.found:
                # it vanished between our add and our read - just try to create it again.
                if not may_retry_immediately():
                    return False
                continue

            if self._is_stale(token.decode(cached.value)):
                logger.debug("Lock %s is stale - will attempt to steal it", self.key)
                if self.store.compare_and_swap(
                    cached.version, self.key, lock_bytes, ttl_s
                ) and self._confirm(lock_token):
                    logger.debug("Stole lock %s", self.key)
                    return True

            if not wait_budget or time.monotonic() >= deadline:
                return False
            time.sleep(retry_interval)

    def release(self) -> bool:
        """Clear the lock in the store, but only if nobody else has written it since we
        last confirmed our ownership.
        """
        if self.owned_version is None:
            if self._lost:
                self._lost = False
                return self._fail(LostLockError(self.key, "was lost before it was released"))
            return self._fail(NotAcquiredError(self.key, "is not acquired"))

        released = self.store.compare_and_swap(
            self.owned_version, self.key, token.RELEASED, config.RELEASE_TTL()
        )
        self._clear()
        if not released:
            return self._fail(LostLockError(self.key, "was taken over before it was released"))
        logger.debug("Released lock %s", self.key)
        return True

    def update(self, lock_duration: float) -> bool:
        """Extend a held lock so that it expires lock_duration seconds from now."""
        self._check_duration(lock_duration)
        if self.owned_version is None:
            if self._lost:
                return self._fail(LostLockError(self.key, "was lost before it was updated"))
            return self._fail(NotAcquiredError(self.key, "is not acquired"))

        lock_token = self._make_token(lock_duration)
        if self.store.compare_and_swap(
            self.owned_version, self.key, lock_token.encode(), self._store_ttl(lock_duration)
        ) and self._confirm(lock_token):
            logger.debug("Extended lock %s by %s seconds", self.key, lock_duration)
            return True
        return self._lose(LostLockError(self.key, "was taken over before it was updated"))

    def is_locked(self) -> bool:
        """Whether this handle still holds the lock, according to the store itself.

        Raises LostLockError (unless catching exceptions) if the lock was held but has
        since been taken over, deleted, or has expired.
        """
        if self.owned_version is None:
            return False

        cached = self.store.read(self.key)
        if not cached.found:
            return self._lose(LostLockError(self.key, "no longer exists"))
        if cached.version != self.owned_version:
            return self._lose(LostLockError(self.key, "has been written by someone else"))

        cached_token = token.decode(cached.value)
        if (
            cached_token == token.LockToken(self.local_expiry_ms, self.identity)
            and self.local_expiry_ms > token.now_ms()
        ):
            return True
        return self._lose(
            LostLockError(self.key, f"expired at {cached_token.expiry_ms} by its own clock")
        )

    def is_exists(self) -> bool:
        """Whether anyone at all currently holds the lock. Never modifies this handle."""
        cached = self.store.read(self.key)
        if not cached.found:
            return False
        expiry_ms = token.decode(cached.value).expiry_ms
        if self.self_expire_sync:
            return expiry_ms > token.now_ms()
        return expiry_ms > 0

    @contextmanager
    def held(
        self,
        lock_duration: float,
        wait_budget: float = 0.0,
        retry_interval: ty.Optional[float] = None,
    ) -> ty.Iterator[bool]:
        """Yield whether the lock was acquired; if it was, release it however the block exits.

        The block runs either way, so check what was yielded:

            with lock.held(5.0, wait_budget=10.0) as acquired:
                if not acquired:
                    return
                ...

        If the block raises and the lock turns out to have been lost in the meantime,
        the loss is logged and the block's own exception is the one you'll see.
        """
        if not self.acquire(lock_duration, wait_budget, retry_interval):
            yield False
            return

        try:
            yield True
        except BaseException:
            try:
                if self._still_to_release():
                    self.release()
            except LockError:
                logger.warning("Lock %s was lost while its holder was failing", self.key)
            raise
        if self._still_to_release():
            self.release()
