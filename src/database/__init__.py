"""
Database module for chiller, timer, power log and user persistence
"""

import logging
from typing import Dict

from .manager import DatabaseManager
from .file_store import JsonFileStore
from .models import (
    ChillerRecord, TimerRecord, PowerLogEntry, UserRecord,
    hash_password, new_id, utc_now, parse_timestamp, format_timestamp
)

logger = logging.getLogger(__name__)


def create_store(config: Dict):
    """Build the persistence backend named by database.backend"""
    backend = config['database'].get('backend', 'file')
    if backend == 'postgres':
        logger.info("Using PostgreSQL persistence")
        return DatabaseManager(config)
    if backend == 'file':
        logger.info("Using JSON file persistence")
        return JsonFileStore(config['database'].get('path', 'data/db.json'))
    raise ValueError(f"Unknown database backend: {backend}")


__all__ = [
    'DatabaseManager', 'JsonFileStore', 'create_store',
    'ChillerRecord', 'TimerRecord', 'PowerLogEntry', 'UserRecord',
    'hash_password', 'new_id', 'utc_now', 'parse_timestamp', 'format_timestamp',
]
