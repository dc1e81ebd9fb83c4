"""
HTTP transport for chiller controllers
Reads the variable table and probes the write endpoint shapes used by different firmwares
"""

import logging
from typing import Dict, List, Optional, Tuple

from http_helper import create_device_session

logger = logging.getLogger(__name__)

READ_PATHS = ['/getvar.csv', '/vars.htm']

# Firmwares disagree on where setvar.csv lives
WRITE_BASE_PATHS = ['/setvar.csv', '/pgd/setvar.csv', '/http/setvar.csv', '/pgd/http/setvar.csv']


def _write_param_shapes(name: str, value: str) -> Tuple[List[Dict[str, str]], List[Dict[str, str]]]:
    """Parameter encodings tried for GET (query) and POST (form) writes"""
    get_shapes = [
        {name: value},
        {'name': name, 'value': value},
        {'name': name, 'val': value},
        {'id': name, 'value': value},
        {'var': name, 'val': value},
    ]
    post_shapes = get_shapes[1:]
    return get_shapes, post_shapes


class DeviceHttpClient:
    """Talks to a chiller controller over its HTTP variable-table interface"""

    def __init__(self, read_timeout: float = 4, write_timeout: float = 8):
        self.read_timeout = read_timeout
        self.write_timeout = write_timeout

    async def read_table(self, ip: str) -> Optional[str]:
        """
        Fetch the raw variable table, CSV endpoint first then HTML.
        Returns the first 2xx body or None if every endpoint failed.
        """
        async with create_device_session(self.read_timeout) as session:
            for path in READ_PATHS:
                url = f"http://{ip}{path}"
                try:
                    async with session.get(url) as response:
                        if 200 <= response.status < 300:
                            return await response.text()
                        logger.debug(f"Read {url} returned HTTP {response.status}")
                except Exception as e:
                    logger.debug(f"Read {url} failed: {e}")
        return None

    async def write_var(self, ip: str, name: str, value) -> bool:
        """
        Write a single variable, trying every known endpoint shape.
        Returns True on the first 2xx response.
        """
        value = str(value)
        get_shapes, post_shapes = _write_param_shapes(name, value)

        async with create_device_session(self.write_timeout) as session:
            for base_path in WRITE_BASE_PATHS:
                url = f"http://{ip}{base_path}"

                for params in get_shapes:
                    try:
                        async with session.get(url, params=params) as response:
                            if 200 <= response.status < 300:
                                logger.debug(f"Wrote {name}={value} on {ip} via GET {base_path} {list(params)}")
                                return True
                    except Exception as e:
                        logger.debug(f"GET write {url} failed: {e}")

                for form in post_shapes:
                    try:
                        async with session.post(url, data=form) as response:
                            if 200 <= response.status < 300:
                                logger.debug(f"Wrote {name}={value} on {ip} via POST {base_path} {list(form)}")
                                return True
                    except Exception as e:
                        logger.debug(f"POST write {url} failed: {e}")

        logger.warning(f"Write {name}={value} on {ip} failed on all endpoint shapes")
        return False
