import typing as ty
from uuid import uuid4

import pytest

from thds.caslock import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def key() -> str:
    return f"test-lock-{uuid4().hex}"


@pytest.fixture
def memcached_store(request) -> ty.Iterator:
    from thds.caslock.memcached import MemcachedStore

    mc = MemcachedStore.connect(request.config.getoption("--memcached-server"))
    yield mc
    mc.client.close()
