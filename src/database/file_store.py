"""
JSON file persistence for chillers, timers, power log and users
Every mutation rewrites the document through a temp file and an atomic rename
"""

import asyncio
import json
import os
import logging
from pathlib import Path
from datetime import datetime, timedelta
from typing import List, Dict, Optional, Any

from .models import (
    ChillerRecord, TimerRecord, PowerLogEntry, UserRecord, USER_ROLES,
    DEFAULT_CHILLER_NAME, new_id, utc_now, parse_timestamp, format_timestamp
)

logger = logging.getLogger(__name__)

POWER_LOG_RETENTION_DAYS = 30
POWER_LOG_MAX_ENTRIES = 1000


def _empty_document() -> Dict[str, list]:
    return {"powerLogs": [], "users": [], "chillers": [], "timers": []}


def _chiller_from_doc(item: Dict) -> ChillerRecord:
    return ChillerRecord(
        id=str(item.get('id') or ''),
        name=str(item.get('name') or ''),
        ip=str(item.get('ip') or ''),
        active=bool(item.get('active')),
        created_at=parse_timestamp(item.get('createdAt')),
        updated_at=parse_timestamp(item.get('updatedAt')),
    )


def _chiller_to_doc(chiller: ChillerRecord) -> Dict[str, Any]:
    return {
        "id": chiller.id,
        "name": chiller.name,
        "ip": chiller.ip,
        "active": chiller.active,
        "createdAt": format_timestamp(chiller.created_at),
        "updatedAt": format_timestamp(chiller.updated_at),
    }


def _timer_from_doc(item: Dict) -> Optional[TimerRecord]:
    target_at = parse_timestamp(item.get('targetAt'))
    if target_at is None:
        return None
    hours = item.get('hours')
    return TimerRecord(
        id=str(item.get('id') or ''),
        chiller_name=str(item.get('chillerName') or ''),
        chiller_ip=str(item.get('chillerIp') or ''),
        mode=str(item.get('mode') or ''),
        hours=float(hours) if isinstance(hours, (int, float)) and not isinstance(hours, bool) else 0.0,
        target_at=target_at,
        active=bool(item.get('active')),
        created_at=parse_timestamp(item.get('createdAt')),
        updated_at=parse_timestamp(item.get('updatedAt')),
    )


def _timer_to_doc(timer: TimerRecord) -> Dict[str, Any]:
    return {
        "id": timer.id,
        "chillerName": timer.chiller_name,
        "chillerIp": timer.chiller_ip,
        "mode": timer.mode,
        "hours": timer.hours,
        "targetAt": format_timestamp(timer.target_at),
        "active": timer.active,
        "createdAt": format_timestamp(timer.created_at),
        "updatedAt": format_timestamp(timer.updated_at),
    }


def _log_from_doc(item: Dict) -> PowerLogEntry:
    return PowerLogEntry(
        id=str(item.get('id') or ''),
        unit_name=str(item.get('unitName') or ''),
        action='on' if item.get('action') == 'on' else 'off',
        at=parse_timestamp(item.get('at')),
        user=item.get('user'),
    )


def _within_retention(item: Dict, cutoff: datetime) -> bool:
    at = parse_timestamp(item.get('at'))
    return at is None or at >= cutoff


class JsonFileStore:
    """Single-document JSON store with all-or-nothing writes"""

    def __init__(self, path: str = "data/db.json"):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def initialize(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            await self._save(_empty_document())
            logger.info(f"Created data file {self.path}")
        logger.info(f"File store ready at {self.path}")

    async def close(self):
        pass

    # ================== DOCUMENT I/O ==================

    def _read(self) -> Dict[str, list]:
        if not self.path.exists():
            return _empty_document()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                parsed = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Data file {self.path} unreadable, starting from empty document: {e}")
            return _empty_document()

        doc = _empty_document()
        if isinstance(parsed, dict):
            for key in doc:
                if isinstance(parsed.get(key), list):
                    doc[key] = [item for item in parsed[key] if isinstance(item, dict)]
        return doc

    def _write(self, doc: Dict[str, list]):
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(doc, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    async def _load(self) -> Dict[str, list]:
        return await asyncio.to_thread(self._read)

    async def _save(self, doc: Dict[str, list]):
        await asyncio.to_thread(self._write, doc)

    # ================== CHILLERS ==================

    async def list_chillers(self, include_inactive: bool = False) -> List[ChillerRecord]:
        chillers = [_chiller_from_doc(c) for c in (await self._load())['chillers']]
        return chillers if include_inactive else [c for c in chillers if c.active]

    async def get_chiller(self, chiller_id: str) -> Optional[ChillerRecord]:
        for item in (await self._load())['chillers']:
            if item.get('id') == chiller_id:
                return _chiller_from_doc(item)
        return None

    async def create_chiller(self, name: str, ip: str, active: bool = True) -> ChillerRecord:
        now = utc_now()
        chiller = ChillerRecord(
            id=new_id(), name=name or DEFAULT_CHILLER_NAME, ip=ip or '',
            active=bool(active), created_at=now, updated_at=now
        )
        async with self._lock:
            doc = await self._load()
            doc['chillers'].append(_chiller_to_doc(chiller))
            await self._save(doc)
        return chiller

    async def upsert_chiller(self, chiller: ChillerRecord) -> ChillerRecord:
        now = utc_now()
        async with self._lock:
            doc = await self._load()
            for i, item in enumerate(doc['chillers']):
                if item.get('id') == chiller.id:
                    chiller.created_at = parse_timestamp(item.get('createdAt')) or now
                    chiller.updated_at = now
                    doc['chillers'][i] = _chiller_to_doc(chiller)
                    break
            else:
                chiller.created_at = chiller.updated_at = now
                doc['chillers'].append(_chiller_to_doc(chiller))
            await self._save(doc)
        return chiller

    async def update_chiller(self, chiller_id: str, name: Optional[str] = None,
                             ip: Optional[str] = None, active: Optional[bool] = None) -> Optional[ChillerRecord]:
        async with self._lock:
            doc = await self._load()
            for i, item in enumerate(doc['chillers']):
                if item.get('id') != chiller_id:
                    continue
                chiller = _chiller_from_doc(item)
                if name is not None:
                    chiller.name = name or DEFAULT_CHILLER_NAME
                if ip is not None:
                    chiller.ip = ip
                if active is not None:
                    chiller.active = bool(active)
                chiller.updated_at = utc_now()
                doc['chillers'][i] = _chiller_to_doc(chiller)
                await self._save(doc)
                return chiller
        return None

    async def deactivate_chiller(self, chiller_id: str) -> Optional[ChillerRecord]:
        return await self.update_chiller(chiller_id, active=False)

    # ================== POWER LOG ==================

    async def append_power_log(self, entry: PowerLogEntry):
        cutoff = utc_now() - timedelta(days=POWER_LOG_RETENTION_DAYS)
        async with self._lock:
            doc = await self._load()
            item = {
                "id": entry.id,
                "unitName": entry.unit_name,
                "action": entry.action,
                "at": format_timestamp(entry.at),
            }
            if entry.user is not None:
                item["user"] = entry.user
            logs = [item] + doc['powerLogs']
            logs = [log for log in logs if _within_retention(log, cutoff)]
            doc['powerLogs'] = logs[:POWER_LOG_MAX_ENTRIES]
            await self._save(doc)

    async def get_power_logs(self, limit: int = 100) -> List[PowerLogEntry]:
        """Newest first, restricted to the retention window"""
        cutoff = utc_now() - timedelta(days=POWER_LOG_RETENTION_DAYS)
        logs = [log for log in (await self._load())['powerLogs'] if _within_retention(log, cutoff)]
        return [_log_from_doc(log) for log in logs[:limit]]

    # ================== USERS ==================

    async def get_user(self, username: str) -> Optional[UserRecord]:
        for item in (await self._load())['users']:
            if item.get('username') == username:
                role = item.get('role')
                return UserRecord(
                    username=str(item.get('username') or ''),
                    password_hash=str(item.get('passwordHash') or ''),
                    role=role if role in USER_ROLES else 'viewer',
                )
        return None

    async def upsert_user(self, user: UserRecord):
        item = {"username": user.username, "passwordHash": user.password_hash, "role": user.role}
        async with self._lock:
            doc = await self._load()
            for i, existing in enumerate(doc['users']):
                if existing.get('username') == user.username:
                    doc['users'][i] = item
                    break
            else:
                doc['users'].append(item)
            await self._save(doc)

    # ================== TIMERS ==================

    async def _timers(self) -> List[TimerRecord]:
        timers = [_timer_from_doc(t) for t in (await self._load())['timers']]
        return [t for t in timers if t is not None]

    async def add_timer(self, chiller_name: str, chiller_ip: str, mode: str,
                        hours: float, target_at: datetime) -> TimerRecord:
        now = utc_now()
        timer = TimerRecord(
            id=new_id(), chiller_name=chiller_name, chiller_ip=chiller_ip, mode=mode,
            hours=hours, target_at=parse_timestamp(target_at), active=True,
            created_at=now, updated_at=now
        )
        async with self._lock:
            doc = await self._load()
            doc['timers'].append(_timer_to_doc(timer))
            await self._save(doc)
        return timer

    async def get_timer(self, timer_id: str) -> Optional[TimerRecord]:
        for timer in await self._timers():
            if timer.id == timer_id:
                return timer
        return None

    async def find_active_timer(self, chiller_ip: str) -> Optional[TimerRecord]:
        """Most recently created active timer for the IP"""
        active = [t for t in await self._timers() if t.chiller_ip == chiller_ip and t.active]
        if not active:
            return None
        return max(active, key=lambda t: t.created_at or t.target_at)

    async def deactivate_timers_for_ip(self, chiller_ip: str) -> int:
        now = format_timestamp(utc_now())
        count = 0
        async with self._lock:
            doc = await self._load()
            for item in doc['timers']:
                if item.get('chillerIp') == chiller_ip and item.get('active'):
                    item['active'] = False
                    item['updatedAt'] = now
                    count += 1
            if count:
                await self._save(doc)
        return count

    async def deactivate_timer(self, timer_id: str) -> bool:
        """Flip one timer to inactive; False if it was already inactive or unknown"""
        async with self._lock:
            doc = await self._load()
            for item in doc['timers']:
                if item.get('id') == timer_id and item.get('active'):
                    item['active'] = False
                    item['updatedAt'] = format_timestamp(utc_now())
                    await self._save(doc)
                    return True
        return False

    async def due_timers(self, now: datetime) -> List[TimerRecord]:
        return [t for t in await self._timers() if t.active and t.target_at <= now]
