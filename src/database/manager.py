"""
Database manager for PostgreSQL operations
"""

import asyncpg
import logging
from typing import List, Dict, Optional
from datetime import datetime, timedelta

from .models import (
    ChillerRecord, TimerRecord, PowerLogEntry, UserRecord, USER_ROLES,
    DEFAULT_CHILLER_NAME, new_id, utc_now, parse_timestamp
)
from .file_store import POWER_LOG_RETENTION_DAYS, POWER_LOG_MAX_ENTRIES

logger = logging.getLogger(__name__)


def _chiller_from_row(row) -> ChillerRecord:
    return ChillerRecord(
        id=row['id'],
        name=row['name'],
        ip=row['ip'],
        active=row['active'],
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def _timer_from_row(row) -> TimerRecord:
    return TimerRecord(
        id=row['id'],
        chiller_name=row['chiller_name'],
        chiller_ip=row['chiller_ip'],
        mode=row['mode'],
        hours=row['hours'],
        target_at=row['target_at'],
        active=row['active'],
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


class DatabaseManager:
    """Manages PostgreSQL database operations for chiller data"""

    def __init__(self, config: Dict):
        self.config = config
        self.pool = None
        self.db_host = config['database']['host']
        self.db_port = config['database']['port']
        self.db_name = config['database']['database']
        self.db_user = config['database']['username']
        self.db_password = config['database']['password']

    async def initialize(self):
        """Initialize database connection pool and schema"""
        try:
            self.pool = await asyncpg.create_pool(
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
                user=self.db_user,
                password=self.db_password,
                min_size=2,
                max_size=10,
                command_timeout=10
            )

            logger.info("Database connection pool created")

            await self.create_schema()
            logger.info("Database schema initialized")

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    async def create_schema(self):
        """Create database tables if they don't exist"""
        schema_sql = """
        CREATE TABLE IF NOT EXISTS chillers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            ip TEXT NOT NULL,
            active BOOLEAN DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS timers (
            id TEXT PRIMARY KEY,
            chiller_name TEXT NOT NULL,
            chiller_ip TEXT NOT NULL,
            mode TEXT NOT NULL,
            hours REAL NOT NULL,
            target_at TIMESTAMPTZ NOT NULL,
            active BOOLEAN DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS power_logs (
            id TEXT PRIMARY KEY,
            unit_name TEXT NOT NULL,
            action TEXT NOT NULL,
            at TIMESTAMPTZ NOT NULL,
            username TEXT
        );

        CREATE TABLE IF NOT EXISTS users (
            username TEXT PRIMARY KEY,
            password_hash TEXT NOT NULL,
            role TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_timers_active_target
        ON timers(active, target_at);

        CREATE INDEX IF NOT EXISTS idx_timers_ip
        ON timers(chiller_ip, created_at DESC);

        CREATE INDEX IF NOT EXISTS idx_power_logs_at
        ON power_logs(at DESC);
        """

        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)

    # ================== CHILLERS ==================

    async def list_chillers(self, include_inactive: bool = False) -> List[ChillerRecord]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT id, name, ip, active, created_at, updated_at
                    FROM chillers
                    WHERE active = true OR $1
                    ORDER BY created_at
                """, include_inactive)
                return [_chiller_from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to list chillers: {e}")
            return []

    async def get_chiller(self, chiller_id: str) -> Optional[ChillerRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT id, name, ip, active, created_at, updated_at
                FROM chillers WHERE id = $1
            """, chiller_id)
            return _chiller_from_row(row) if row else None

    async def create_chiller(self, name: str, ip: str, active: bool = True) -> ChillerRecord:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO chillers (id, name, ip, active)
                VALUES ($1, $2, $3, $4)
                RETURNING id, name, ip, active, created_at, updated_at
            """, new_id(), name or DEFAULT_CHILLER_NAME, ip or '', bool(active))
            return _chiller_from_row(row)

    async def upsert_chiller(self, chiller: ChillerRecord) -> ChillerRecord:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO chillers (id, name, ip, active)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE SET
                    name = $2,
                    ip = $3,
                    active = $4,
                    updated_at = CURRENT_TIMESTAMP
                RETURNING id, name, ip, active, created_at, updated_at
            """, chiller.id, chiller.name, chiller.ip, chiller.active)
            return _chiller_from_row(row)

    async def update_chiller(self, chiller_id: str, name: Optional[str] = None,
                             ip: Optional[str] = None, active: Optional[bool] = None) -> Optional[ChillerRecord]:
        if name is not None and not name:
            name = DEFAULT_CHILLER_NAME
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE chillers SET
                    name = COALESCE($2, name),
                    ip = COALESCE($3, ip),
                    active = COALESCE($4, active),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = $1
                RETURNING id, name, ip, active, created_at, updated_at
            """, chiller_id, name, ip, active)
            return _chiller_from_row(row) if row else None

    async def deactivate_chiller(self, chiller_id: str) -> Optional[ChillerRecord]:
        return await self.update_chiller(chiller_id, active=False)

    # ================== POWER LOG ==================

    async def append_power_log(self, entry: PowerLogEntry):
        cutoff = utc_now() - timedelta(days=POWER_LOG_RETENTION_DAYS)
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO power_logs (id, unit_name, action, at, username)
                    VALUES ($1, $2, $3, $4, $5)
                """, entry.id, entry.unit_name, entry.action, entry.at, entry.user)

                await conn.execute("DELETE FROM power_logs WHERE at < $1", cutoff)
                await conn.execute("""
                    DELETE FROM power_logs WHERE id NOT IN (
                        SELECT id FROM power_logs ORDER BY at DESC LIMIT $1
                    )
                """, POWER_LOG_MAX_ENTRIES)

    async def get_power_logs(self, limit: int = 100) -> List[PowerLogEntry]:
        cutoff = utc_now() - timedelta(days=POWER_LOG_RETENTION_DAYS)
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT id, unit_name, action, at, username
                    FROM power_logs
                    WHERE at >= $1
                    ORDER BY at DESC
                    LIMIT $2
                """, cutoff, limit)
                return [PowerLogEntry(
                    id=row['id'],
                    unit_name=row['unit_name'],
                    action=row['action'],
                    at=row['at'],
                    user=row['username']
                ) for row in rows]
        except Exception as e:
            logger.error(f"Failed to read power log: {e}")
            return []

    # ================== USERS ==================

    async def get_user(self, username: str) -> Optional[UserRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT username, password_hash, role FROM users WHERE username = $1", username
            )
            if not row:
                return None
            role = row['role'] if row['role'] in USER_ROLES else 'viewer'
            return UserRecord(username=row['username'], password_hash=row['password_hash'], role=role)

    async def upsert_user(self, user: UserRecord):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO users (username, password_hash, role)
                VALUES ($1, $2, $3)
                ON CONFLICT (username) DO UPDATE SET
                    password_hash = $2,
                    role = $3
            """, user.username, user.password_hash, user.role)

    # ================== TIMERS ==================

    async def add_timer(self, chiller_name: str, chiller_ip: str, mode: str,
                        hours: float, target_at: datetime) -> TimerRecord:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO timers (id, chiller_name, chiller_ip, mode, hours, target_at, active)
                VALUES ($1, $2, $3, $4, $5, $6, true)
                RETURNING *
            """, new_id(), chiller_name, chiller_ip, mode, hours, parse_timestamp(target_at))
            return _timer_from_row(row)

    async def get_timer(self, timer_id: str) -> Optional[TimerRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM timers WHERE id = $1", timer_id)
            return _timer_from_row(row) if row else None

    async def find_active_timer(self, chiller_ip: str) -> Optional[TimerRecord]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM timers
                WHERE chiller_ip = $1 AND active = true
                ORDER BY created_at DESC
                LIMIT 1
            """, chiller_ip)
            return _timer_from_row(row) if row else None

    async def deactivate_timers_for_ip(self, chiller_ip: str) -> int:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                UPDATE timers SET active = false, updated_at = CURRENT_TIMESTAMP
                WHERE chiller_ip = $1 AND active = true
                RETURNING id
            """, chiller_ip)
            return len(rows)

    async def deactivate_timer(self, timer_id: str) -> bool:
        """Compare-and-set: only the caller that flips active -> false gets True"""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                UPDATE timers SET active = false, updated_at = CURRENT_TIMESTAMP
                WHERE id = $1 AND active = true
                RETURNING id
            """, timer_id)
            return row is not None

    async def due_timers(self, now: datetime) -> List[TimerRecord]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch("""
                    SELECT * FROM timers
                    WHERE active = true AND target_at <= $1
                    ORDER BY target_at
                """, now)
                return [_timer_from_row(row) for row in rows]
        except Exception as e:
            logger.error(f"Failed to query due timers: {e}")
            return []

    async def close(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            logger.info("Database connection pool closed")
