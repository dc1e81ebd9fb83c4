"""
Session tokens and role checks for the dashboard API
Tokens are `<base64url(json payload)>.<base64url(hmac-sha256)>`
"""

import base64
import hashlib
import hmac
import json
import time
import logging
from typing import Dict, Iterable, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from database.models import UserRecord, USER_ROLES, hash_password

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"
WRITE_ROLES = ('admin', 'manager')
ANY_ROLE = USER_ROLES


def json_error(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"ok": False, "error": error}, status_code=status_code)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b'=').decode('ascii')


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + '=' * (-len(text) % 4))


class SessionAuth:
    """Signs and verifies session tokens and gates requests by role"""

    def __init__(self, secret: str, session_days: float = 7):
        self._secret = secret.encode('utf-8')
        self.session_seconds = int(session_days * 24 * 3600)

    def _signature(self, data: str) -> str:
        return _b64encode(hmac.new(self._secret, data.encode('ascii'), hashlib.sha256).digest())

    def create_session(self, username: str, role: str) -> str:
        payload = {
            "username": username,
            "role": role,
            "exp": int((time.time() + self.session_seconds) * 1000)
        }
        data = _b64encode(json.dumps(payload, separators=(',', ':')).encode('utf-8'))
        return f"{data}.{self._signature(data)}"

    def verify(self, token: Optional[str]) -> Optional[Dict]:
        """Payload of a valid, unexpired token, else None"""
        if not token:
            return None
        parts = str(token).split('.')
        if len(parts) != 2:
            return None
        data, signature = parts
        try:
            if not hmac.compare_digest(signature, self._signature(data)):
                return None
            payload = json.loads(_b64decode(data).decode('utf-8'))
        except (ValueError, TypeError):
            return None
        if not isinstance(payload, dict) or payload.get('role') not in USER_ROLES:
            return None
        if payload.get('exp') and time.time() * 1000 > payload['exp']:
            return None
        return payload

    def session_from_request(self, request: Request) -> Optional[Dict]:
        token = request.cookies.get(SESSION_COOKIE)
        if not token:
            header = request.headers.get('authorization', '')
            if header.lower().startswith('bearer '):
                token = header[7:].strip()
        return self.verify(token)

    def require(self, request: Request, roles: Iterable[str]) -> Optional[Dict]:
        """Session if its role is allowed, else None (caller answers 403)"""
        session = self.session_from_request(request)
        if session is None or session.get('role') not in roles:
            return None
        return session


async def verify_password(store, username: str, password: str) -> Optional[UserRecord]:
    user = await store.get_user(username)
    if user is None:
        return None
    if not hmac.compare_digest(hash_password(password), user.password_hash):
        return None
    return user


async def ensure_default_users(store, default_users: List[Dict]):
    """Create configured users that do not exist yet; existing users are left alone"""
    for item in default_users or []:
        username = item.get('username')
        password = item.get('password')
        if not username or not password:
            logger.warning(f"Skipping default user entry without username/password: {item.get('username')}")
            continue
        if await store.get_user(username) is not None:
            continue
        role = item.get('role') if item.get('role') in USER_ROLES else 'viewer'
        await store.upsert_user(UserRecord(username=username, password_hash=hash_password(password), role=role))
        logger.info(f"Created default user {username} ({role})")
