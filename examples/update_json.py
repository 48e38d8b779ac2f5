#!/usr/bin/env python
import argparse
import json

from thds.caslock import CasLock
from thds.caslock.memcached import MemcachedStore


def update_json_in_memcached(store: MemcachedStore, key: str, updates: dict) -> dict:
    """Merge updates into a JSON document stored in memcached, without losing a concurrent
    writer's changes - as long as every writer goes through the same lock.
    """
    lock = CasLock(store, f"lock_{key}", catch_exceptions=True)
    # hold it for a second; wait up to two for whoever has it now.
    with lock.held(1.0, wait_budget=2.0) as acquired:
        if not acquired:
            raise TimeoutError(f"Could not lock {key}")

        document = json.loads(store.client.get(key) or b"{}")
        document.update(updates)
        store.client.set(key, json.dumps(document).encode(), noreply=False)
        return document


# everything that follows is just for running this from the command line.


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("key")
    parser.add_argument("updates", help="a JSON object to merge in")
    parser.add_argument("--server", default="localhost:11211")
    args = parser.parse_args()

    print(update_json_in_memcached(MemcachedStore.connect(args.server), args.key, json.loads(args.updates)))


if __name__ == "__main__":
    main()
