from thds.core import meta

from .errors import (  # noqa: F401
    InvalidLockArgument,
    LockAlreadyAcquiredError,
    LockError,
    LostLockError,
    NotAcquiredError,
)
from .lock import CasLock  # noqa: F401
from .memory import MemoryStore  # noqa: F401
from .types import CasStore, ReadResult  # noqa: F401

__version__ = meta.get_version(__name__)
