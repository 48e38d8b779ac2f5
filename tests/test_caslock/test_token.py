import os
import time

from thds.caslock import token


def test_identity_is_unique_per_call_and_carries_pid():
    first, second = token.make_identity(), token.make_identity()
    assert first != second
    assert first.split(":")[0] == str(os.getpid())


def test_decode_splits_on_first_colon_only():
    identity = token.make_identity()
    assert ":" in identity

    lock_token = token.LockToken(1700000000123, identity)
    assert lock_token.encode() == f"1700000000123:{identity}".encode()
    assert token.decode(lock_token.encode()) == lock_token
    assert token.decode(lock_token.encode().decode()) == lock_token


def test_released_and_garbage_values_decode_to_zero_expiry():
    assert token.decode(token.RELEASED).expiry_ms == 0
    assert token.decode(b"").expiry_ms == 0
    assert token.decode(None).expiry_ms == 0
    assert token.decode(b"not-a-number:abc") == token.LockToken(0, "abc")


def test_now_ms():
    assert token.now_ms(1.5) == 1500
    before = round(time.time() * 1000)
    assert before <= token.now_ms() <= before + 1000
