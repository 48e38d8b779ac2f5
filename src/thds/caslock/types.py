import typing as ty


class ReadResult(ty.NamedTuple):
    value: bytes
    version: ty.Any  # opaque; only ever handed back to compare_and_swap
    found: bool


NOT_FOUND = ReadResult(b"", None, False)


class CasStore(ty.Protocol):
    """The only capabilities the lock requires of the shared cache.

    All three operations must be atomic with respect to each other across every
    client of the store. TTLs are whole seconds; a TTL of zero or less means 'never
    expire', as in memcached.
    """

    def insert_if_absent(self, key: str, value: bytes, ttl_s: int) -> bool:
        """True iff the key did not exist and now holds `value`."""
        ...  # pragma: no cover

    def compare_and_swap(self, version: ty.Any, key: str, value: bytes, ttl_s: int) -> bool:
        """True iff the key's current version was `version` and the write happened."""
        ...  # pragma: no cover

    def read(self, key: str) -> ReadResult:
        ...  # pragma: no cover
