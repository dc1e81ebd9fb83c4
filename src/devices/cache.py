"""
Time-bounded cache of device variable tables
"""

import asyncio
import time
import logging
from typing import Callable, Dict, Optional

from .models import DeviceCacheEntry
from .command_queue import DeviceCommandQueue

logger = logging.getLogger(__name__)

DEVICE_CACHE_TTL_SECONDS = 5.0


class DeviceCache:
    """Memoizes the last table fetch per IP and collapses concurrent reads into one request"""

    def __init__(self, client, queue: Optional[DeviceCommandQueue] = None,
                 ttl_seconds: float = DEVICE_CACHE_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.queue = queue
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, DeviceCacheEntry] = {}

    def get_entry(self, ip: str) -> Optional[DeviceCacheEntry]:
        return self._entries.get(ip.strip())

    async def fetch(self, ip: str) -> Optional[str]:
        """Return the device table text, from cache when fresh, else from the device"""
        key = (ip or '').strip()
        if not key:
            return None

        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None:
            # Join an in-flight fetch even if its start time is past the TTL
            if entry.pending is not None:
                return await asyncio.shield(entry.pending)
            if now - entry.fetched_at < self.ttl_seconds:
                return entry.value

        pending = asyncio.ensure_future(self._refresh(key))
        self._entries[key] = DeviceCacheEntry(value=None, fetched_at=now, pending=pending)
        return await asyncio.shield(pending)

    async def _refresh(self, key: str) -> Optional[str]:
        text = None
        try:
            if self.queue is not None:
                text = await self.queue.run(key, lambda: self.client.read_table(key))
            else:
                text = await self.client.read_table(key)
        except Exception as e:
            logger.warning(f"Device fetch for {key} failed: {e}")
        finally:
            self._entries[key] = DeviceCacheEntry(value=text, fetched_at=self._clock())

        if text is None:
            logger.debug(f"Device {key} unreachable")
        return text

    def invalidate(self, ip: str):
        """Drop a settled entry so the next read goes to the device"""
        key = (ip or '').strip()
        entry = self._entries.get(key)
        if entry is not None and entry.pending is None:
            del self._entries[key]
