import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Hashable

# Locks are dropped once no coroutine holds or waits on them.
_locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()


@asynccontextmanager
async def keyed_lock(key: Hashable):
    """
    Serializes coroutines working on the same key (e.g. one order id) inside
    this process. Cross-process safety comes from SELECT ... FOR UPDATE in the
    surrounding transaction.
    """
    lock = _locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _locks[key] = lock
    async with lock:
        yield


def order_lock(order_id):
    return keyed_lock(("order", str(order_id)))
