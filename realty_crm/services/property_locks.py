"""Per-property write serialization.

Both engines take the lock for (tenant, property) around every mutation so
that unset-then-set sequences cannot interleave within one process.
"""

import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator

from realty_crm.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class PropertyLocks:
    """Registry of asyncio locks keyed by (tenant_id, property_id).

    Locks live only while some coroutine holds or awaits them.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, tenant_id: str, property_id: str) -> asyncio.Lock:
        key = (tenant_id, property_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, tenant_id: str, property_id: str) -> AsyncIterator[None]:
        lock = self.lock_for(tenant_id, property_id)
        if lock.locked():
            logger.debug(
                "Waiting for property lock",
                tenant_id=tenant_id,
                property_id=property_id,
            )
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
