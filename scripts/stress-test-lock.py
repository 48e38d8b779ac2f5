#!/usr/bin/env python

# Run thds.caslock.cli.acquire_and_hold_once in N processes against the same memcached
# key for M minutes, each writing its held-time windows to its own file.  Then check that
# none of those windows overlap, which would mean two holders at once.
#
# Each line of a times file is:
# after_acquire,before_release  (unix epoch seconds)
import argparse
import concurrent.futures
import re
import time
import typing as ty
from pathlib import Path
from timeit import default_timer
from uuid import uuid4

from thds.caslock.cli import acquire_and_hold_once
from thds.caslock.memcached import MemcachedStore
from thds.core import log

logger = log.getLogger(__name__)


class LockTimes(ty.NamedTuple):
    after_acquire: float
    before_release: float
    idx: int


def loop_1_for_m(idx: int, server: str, key: str, times_path: Path, hold_s: float, minutes: float):
    store = MemcachedStore.connect(server)
    start = default_timer()
    with log.logger_context(idx=f"{idx:03d}"):
        while default_timer() - start < minutes * 60:
            acquire_and_hold_once(store, key, hold_s, times_path)
            time.sleep(0.5)  # give somebody else a chance at it.


def read_times(times_dir: Path) -> ty.List[LockTimes]:
    times = []
    for times_file in times_dir.glob("lock-times-*"):
        idx = int(re.search(r"\d+$", times_file.stem).group(0))  # type: ignore
        for line in times_file.read_text().splitlines():
            after_acquire, before_release = line.strip().split(",")
            times.append(LockTimes(float(after_acquire), float(before_release), idx))
    return times


def check_no_overlaps(times: ty.List[LockTimes]) -> float:
    times.sort(key=lambda t: t.after_acquire)
    smallest_gap = float("inf")
    for before, after in zip(times, times[1:]):
        gap = after.after_acquire - before.before_release
        if gap < 0:
            raise ValueError(f"Overlap between {before} and {after}")
        smallest_gap = min(smallest_gap, gap)
    return smallest_gap


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("key")
    parser.add_argument("n", type=int)
    parser.add_argument("--server", default="localhost:11211")
    parser.add_argument("--minutes", type=float, default=5.0)
    parser.add_argument("--hold-once-acquired-s", type=float, default=1.0)
    parser.add_argument("--times-dir", type=Path, default=Path(f".lock-times-{uuid4().hex}"))
    args = parser.parse_args()

    args.times_dir.mkdir(exist_ok=True, parents=True)
    with concurrent.futures.ProcessPoolExecutor(args.n) as ex:
        futures = [
            ex.submit(
                loop_1_for_m,
                i,
                args.server,
                args.key,
                args.times_dir / f"lock-times-{i}",
                args.hold_once_acquired_s,
                args.minutes,
            )
            for i in range(args.n)
        ]
        for future in concurrent.futures.as_completed(futures):
            future.result()

    times = read_times(args.times_dir)
    smallest_gap = check_no_overlaps(times)
    logger.info(f"Checked {len(times)} held windows and none overlap. Smallest gap: {smallest_gap}")


if __name__ == "__main__":
    main()
