"""
Per-device serialization of network operations
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class DeviceCommandQueue:
    """Runs operations for the same IP strictly one at a time, in submission order.

    Each IP maps to the tail of a chain of futures. A new operation waits for
    the current tail and installs its own future as the new tail. The key is
    dropped only when the finishing link is still the tail, so the map never
    holds keys for idle devices.
    """

    def __init__(self):
        self._tails: Dict[str, asyncio.Future] = {}

    def pending_keys(self) -> List[str]:
        return list(self._tails)

    async def run(self, ip: Optional[str], operation: Callable[[], Awaitable[T]]) -> T:
        key = (ip or '').strip()
        if not key:
            return await operation()

        previous = self._tails.get(key)
        link = asyncio.get_running_loop().create_future()
        self._tails[key] = link

        try:
            if previous is not None:
                await asyncio.shield(previous)
            return await operation()
        finally:
            self._release(key, previous, link)

    def _release(self, key: str, previous: Optional[asyncio.Future], link: asyncio.Future):
        def finish(_=None):
            if not link.done():
                link.set_result(None)
            if self._tails.get(key) is link:
                del self._tails[key]

        # A cancelled waiter must not let the next operation overtake `previous`
        if previous is None or previous.done():
            finish()
        else:
            previous.add_done_callback(finish)
