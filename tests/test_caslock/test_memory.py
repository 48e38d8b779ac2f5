from thds.caslock.memory import MemoryStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_insert_if_absent_only_once():
    store = MemoryStore()
    assert store.insert_if_absent("k", b"a", 10)
    assert not store.insert_if_absent("k", b"b", 10)
    assert store.read("k").value == b"a"


def test_cas_requires_the_current_version():
    store = MemoryStore()
    store.insert_if_absent("k", b"a", 10)
    stale = store.read("k")

    assert store.compare_and_swap(stale.version, "k", b"b", 10)
    assert not store.compare_and_swap(stale.version, "k", b"c", 10)

    current = store.read("k")
    assert current.value == b"b"
    assert current.version != stale.version


def test_cas_on_missing_key_fails():
    store = MemoryStore()
    assert not store.compare_and_swap(1, "nope", b"x", 10)
    assert not store.read("nope").found


def test_entries_expire_after_their_ttl():
    clock = FakeClock()
    store = MemoryStore(clock=clock)
    store.insert_if_absent("k", b"a", 2)
    store.set("forever", "x")

    clock.now += 1.0
    assert store.read("k").found

    clock.now += 1.0
    assert not store.read("k").found
    assert store.insert_if_absent("k", b"b", 2)
    assert store.get("forever") == b"x"


def test_delete():
    store = MemoryStore()
    store.set("k", b"a")
    assert store.delete("k")
    assert not store.delete("k")
    assert store.get("k") is None
