class InvalidLockArgument(ValueError):
    """A programming error - never suppressed by catch_exceptions."""


class LockError(Exception):
    def __init__(self, key: str, message: str):
        super().__init__(f"Lock '{key}' {message}")
        self.key = key


class LockAlreadyAcquiredError(LockError):
    pass  # pragma: no cover


class NotAcquiredError(LockError):
    pass  # pragma: no cover


class LostLockError(LockError):
    """Another holder provably took the lock over from us."""
