# HTTP Helper for Chiller Controller Connections
# Controllers run a small embedded web server on the LAN: plain HTTP, one
# socket at a time, and variable pages that must never be served from a cache

import aiohttp
import logging

logger = logging.getLogger(__name__)

DEVICE_HEADERS = {
    'Cache-Control': 'no-store',
    'Accept': 'text/csv, text/html;q=0.9, */*;q=0.5'
}


def create_device_session(timeout_seconds: float = 4) -> aiohttp.ClientSession:
    """Session for one read or write exchange with a chiller controller"""
    connector = aiohttp.TCPConnector(
        limit_per_host=1,           # Requests to one controller are already serialized
        ssl=False,
        force_close=True,           # Controllers drop keep-alive sockets
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        headers=DEVICE_HEADERS,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
