import typing as ty
from contextlib import contextmanager

from pymemcache.client.base import Client
from pymemcache.exceptions import MemcacheError

from thds.core import log

from .types import NOT_FOUND, ReadResult

logger = log.getLogger(__name__)


def parse_server(server: str) -> ty.Tuple[str, int]:
    host, _, port = server.rpartition(":")
    if not host:
        return server, 11211
    return host, int(port)


@contextmanager
def _logged(operation: str, key: str) -> ty.Iterator[None]:
    try:
        yield
    except (MemcacheError, OSError):
        logger.error(f"Memcached {operation} failed for key {key}")
        raise


class MemcachedStore:
    """Adapts a pymemcache Client to the CasStore protocol.

    The client must not be configured with a serde - lock tokens are raw bytes, and
    values come back as bytes.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def connect(cls, server: str, **client_kwargs: ty.Any) -> "MemcachedStore":
        return cls(Client(parse_server(server), **client_kwargs))

    def insert_if_absent(self, key: str, value: bytes, ttl_s: int) -> bool:
        with _logged("add", key):
            # noreply must be off, or pymemcache reports success without asking.
            return bool(self.client.add(key, value, expire=ttl_s, noreply=False))

    def compare_and_swap(self, version: ty.Any, key: str, value: bytes, ttl_s: int) -> bool:
        if version is None:
            return False
        with _logged("cas", key):
            # None means the key didn't exist at all, which is as good as a mismatch.
            return bool(self.client.cas(key, value, version, expire=ttl_s, noreply=False))

    def read(self, key: str) -> ReadResult:
        with _logged("gets", key):
            value, cas = self.client.gets(key)
        if value is None:
            return NOT_FOUND
        return ReadResult(value, cas, True)
