"""
Power event log API routes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, StrictStr, ValidationError

from database.models import PowerLogEntry, new_id, utc_now
from database.file_store import POWER_LOG_MAX_ENTRIES
from services.power_sessions import build_power_sessions
from .auth import SessionAuth, WRITE_ROLES, json_error

logger = logging.getLogger(__name__)


class PowerLogRequest(BaseModel):
    unitName: StrictStr
    action: StrictStr
    user: Optional[StrictStr] = None


def _clamp_limit(limit: int) -> int:
    return max(1, min(limit, POWER_LOG_MAX_ENTRIES))


def create_power_log_routes(store, auth: SessionAuth):
    """Create power log routes (admin and manager only)"""
    router = APIRouter(prefix="/api", tags=["power-log"])

    @router.get("/power-log")
    async def get_power_log(request: Request, limit: int = 100):
        if auth.require(request, WRITE_ROLES) is None:
            return json_error(403, "forbidden")
        logs = await store.get_power_logs(_clamp_limit(limit))
        return {"items": [log.to_api() for log in logs]}

    @router.post("/power-log")
    async def append_power_log(request: Request):
        session = auth.require(request, WRITE_ROLES)
        if session is None:
            return json_error(403, "forbidden")
        try:
            body = await request.json()
        except ValueError:
            body = None
        try:
            payload = PowerLogRequest.model_validate(body)
        except ValidationError:
            return json_error(400, "bad_request")

        entry = PowerLogEntry(
            id=new_id(),
            unit_name=payload.unitName,
            action='on' if payload.action == 'on' else 'off',
            at=utc_now(),
            user=payload.user if payload.user is not None else session.get('username')
        )
        await store.append_power_log(entry)
        return {"ok": True}

    @router.get("/power-log/sessions")
    async def get_power_sessions(request: Request, limit: int = 100):
        """On/off sessions rebuilt from the retained log, newest first"""
        if auth.require(request, WRITE_ROLES) is None:
            return json_error(403, "forbidden")
        logs = await store.get_power_logs(POWER_LOG_MAX_ENTRIES)
        sessions = build_power_sessions(logs)
        return {"items": [s.to_api() for s in sessions[:_clamp_limit(limit)]]}

    return router
