import time
import typing as ty
from threading import Thread

from thds.caslock import CasLock, MemoryStore

KEY = "job:42"
COUNTER = "job:42:counter"


def _increment_many(store: MemoryStore, times: int, successes: ty.List[int]) -> None:
    lock = CasLock(store, KEY)
    count = 0
    for _ in range(times):
        if lock.acquire(1.0, wait_budget=3.0):
            value = int(store.get(COUNTER) or b"0")
            time.sleep(0)  # invite a context switch in the middle of the read-modify-write
            store.set(COUNTER, str(value + 1))
            lock.release()
            count += 1
    successes.append(count)


def test_racing_acquirers_never_lose_an_update():
    store = MemoryStore()
    store.set(COUNTER, b"0")
    successes: ty.List[int] = []
    threads = [Thread(target=_increment_many, args=(store, 1000, successes)) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(successes) == 2
    assert sum(successes) > 0
    assert int(store.get(COUNTER)) == sum(successes)  # type: ignore


def test_only_one_of_many_acquires_without_waiting():
    store = MemoryStore()
    results: ty.List[bool] = []

    def try_once() -> None:
        results.append(CasLock(store, KEY, self_expire_sync=True).acquire(5.0))

    threads = [Thread(target=try_once) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [False] * 7 + [True]
