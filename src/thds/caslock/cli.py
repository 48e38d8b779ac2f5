"""Acquire a lock on a memcached server, hold it for a while, then release it.

Run several of these at once against the same key (see scripts/stress-test-lock.py)
and compare the --out-times files afterward to check that no two holders overlapped.
"""

import argparse
import time
import typing as ty
from pathlib import Path

from thds.core import log

from .lock import CasLock
from .memcached import MemcachedStore
from .types import CasStore

logger = log.getLogger(__name__)


def _writer(out_times_path: Path) -> ty.Callable[[float, float], None]:
    logger.info(f"Will write lock times to {out_times_path}")
    out_times_path.parent.mkdir(parents=True, exist_ok=True)

    def write_times(after_acquired: float, before_released: float) -> None:
        with out_times_path.open("a") as f:
            f.write(f"{after_acquired},{before_released}\n")

    return write_times


def acquire_and_hold_once(
    store: CasStore,
    key: str,
    hold_once_acquired_s: float,
    out_times_path: ty.Optional[Path],
    *,
    lock_duration: float = 5.0,
    self_expire_sync: bool = False,
) -> None:
    write_times = _writer(out_times_path) if out_times_path else lambda x, y: None

    lock = CasLock(store, key, self_expire_sync=self_expire_sync)
    logger.info(f"Beginning lock acquisition on {key}")
    while not lock.acquire(lock_duration, wait_budget=lock_duration):
        logger.info(f"Still waiting for {key}")

    # wall-clock time, so that the windows of separate processes can be compared.
    when_lock_acquired = time.time()
    time_until_release = when_lock_acquired + hold_once_acquired_s - time.time()
    while time_until_release > 0:
        time.sleep(min(time_until_release, lock_duration / 2))
        time_until_release = when_lock_acquired + hold_once_acquired_s - time.time()
        if time_until_release > 0:
            lock.update(lock_duration)

    write_times(when_lock_acquired, time.time())
    lock.release()
    logger.info(f"Released {key} after {time.time() - when_lock_acquired:.3f} seconds")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("key", help="Name of the lock")
    parser.add_argument("--server", default="localhost:11211", help="memcached host:port")
    parser.add_argument(
        "--hold-once-acquired-s",
        "-t",
        type=float,
        default=2.0,
        help="Time in seconds to hold the lock once acquired.",
    )
    parser.add_argument(
        "--lock-duration",
        "-d",
        type=float,
        default=5.0,
        help="Lock duration in seconds; the lock is renewed at half this interval.",
    )
    parser.add_argument(
        "--self-expire-sync",
        action="store_true",
        help="Trust client clocks rather than the memcached TTL to decide staleness.",
    )
    parser.add_argument(
        "--out-times",
        type=Path,
        default=None,
        help="Append the period of time the lock was fully held (after acquire, before release) to this file.",
    )

    args = parser.parse_args()

    acquire_and_hold_once(
        MemcachedStore.connect(args.server),
        args.key,
        args.hold_once_acquired_s,
        args.out_times,
        lock_duration=args.lock_duration,
        self_expire_sync=args.self_expire_sync,
    )


if __name__ == "__main__":
    main()
