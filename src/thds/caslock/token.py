"""Lock tokens are what actually get written into the store:

    <expiry_ms>:<identity>

The identity may itself contain colons, so parsing splits on the first one only.  A
released lock holds the bare sentinel `0`, which decodes to an expiry of zero - as
does anything else whose prefix isn't an integer.
"""

import os
import time
import typing as ty
from uuid import uuid4

from thds import humenc

RELEASED = b"0"


class LockToken(ty.NamedTuple):
    expiry_ms: int
    identity: str

    def encode(self) -> bytes:
        return f"{self.expiry_ms}:{self.identity}".encode()


def now_ms(at: ty.Optional[float] = None) -> int:
    return round((time.time() if at is None else at) * 1000)


def make_identity() -> str:
    # the pid helps a human reading the cache; the uuid is what makes it unique.
    return f"{os.getpid()}:{time.perf_counter_ns()}:{humenc.encode(uuid4().bytes)}"


def decode(raw: ty.Union[bytes, str, None]) -> LockToken:
    if not raw:
        return LockToken(0, "")
    text = raw.decode(errors="replace") if isinstance(raw, bytes) else raw
    expiry_str, _, identity = text.partition(":")
    try:
        return LockToken(int(expiry_str), identity)
    except ValueError:
        return LockToken(0, identity)
