"""
Database models and data structures
"""

import hashlib
import secrets
from typing import Dict, Optional, Any
from dataclasses import dataclass
from datetime import datetime, timezone

DEFAULT_CHILLER_NAME = "Unnamed chiller"
USER_ROLES = ('admin', 'manager', 'viewer')


def new_id() -> str:
    """Random 16-hex-character record id"""
    return secrets.token_hex(8)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode('utf-8')).hexdigest()


def parse_timestamp(value, naive_as_utc: bool = True) -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or pass through a datetime) as an aware UTC datetime.
    A value without an offset is read as UTC, or rejected (None) when
    `naive_as_utc` is False.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        if not naive_as_utc:
            return None
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


@dataclass
class ChillerRecord:
    """Logical chiller unit; `active=False` is a soft delete"""
    id: str
    name: str
    ip: str
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_api(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "ip": self.ip, "active": self.active}


@dataclass
class TimerRecord:
    """Deferred power action for one chiller"""
    id: str
    chiller_name: str
    chiller_ip: str
    mode: str
    hours: float
    target_at: datetime
    active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_api(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "chillerName": self.chiller_name,
            "chillerIp": self.chiller_ip,
            "mode": self.mode,
            "hours": self.hours,
            "targetAt": format_timestamp(self.target_at),
            "active": self.active,
        }


@dataclass
class PowerLogEntry:
    """One on/off event for a unit"""
    id: str
    unit_name: str
    action: str
    at: datetime
    user: Optional[str] = None

    def to_api(self) -> Dict[str, Any]:
        item = {
            "id": self.id,
            "unitName": self.unit_name,
            "action": self.action,
            "at": format_timestamp(self.at),
        }
        if self.user is not None:
            item["user"] = self.user
        return item


@dataclass
class UserRecord:
    username: str
    password_hash: str
    role: str = 'viewer'
