from thds.caslock import CasLock
from thds.caslock.cli import acquire_and_hold_once


def test_acquire_and_hold_once_records_and_releases(store, key, tmp_path):
    times_path = tmp_path / "times" / "lock-times-0"
    acquire_and_hold_once(store, key, 0.3, times_path, lock_duration=0.2, self_expire_sync=True)
    acquire_and_hold_once(store, key, 0.1, times_path, lock_duration=0.2, self_expire_sync=True)

    windows = [tuple(map(float, line.split(","))) for line in times_path.read_text().splitlines()]
    assert len(windows) == 2
    (first_start, first_end), (second_start, _) = windows
    assert first_end - first_start >= 0.3
    assert second_start >= first_end
    assert not CasLock(store, key, self_expire_sync=True).is_exists()


def test_acquire_and_hold_once_waits_for_the_current_holder(store, key):
    holder = CasLock(store, key, self_expire_sync=True)
    assert holder.acquire(0.3)
    acquire_and_hold_once(store, key, 0.05, None, lock_duration=0.2, self_expire_sync=True)
    assert not holder.is_exists()
