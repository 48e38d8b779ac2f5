from thds.core import config

RETRY_INTERVAL = config.item("thds.caslock.retry_interval", 0.005, parse=float)
# seconds slept between acquisition attempts while waiting for a held lock.

MIN_LOCK_DURATION = config.item("thds.caslock.min_lock_duration", 1.0, parse=float)
# when the store's TTL decides staleness, nothing shorter than its one second
# granularity can be honored.
MIN_LOCK_DURATION_SELF_SYNC = config.item(
    "thds.caslock.min_lock_duration_self_sync", 0.01, parse=float
)

BACKSTOP_TTL = config.item("thds.caslock.backstop_ttl", 86400, parse=int)
# under self-expire-sync the store TTL only cleans up after crashed holders.
RELEASE_TTL = config.item("thds.caslock.release_ttl", 1, parse=int)
