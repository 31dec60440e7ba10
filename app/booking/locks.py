"""Per-provider locks around conflict checks and appointment writes.

Holding ``provider_lock(provider_id)`` across "check for overlap, then
insert" serializes writers for the same provider inside one worker
process. Separate processes are not covered; they need an exclusion
constraint in the database.
"""

import asyncio
import weakref

_provider_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def provider_lock(provider_id: str) -> asyncio.Lock:
    """Return the lock guarding ``provider_id``'s calendar.

    Locks are dropped once no coroutine holds a reference.
    """
    lock = _provider_locks.get(provider_id)
    if lock is None:
        lock = asyncio.Lock()
        _provider_locks[provider_id] = lock
    return lock
