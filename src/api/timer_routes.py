"""
Timer API routes
"""

import math
import logging
from typing import Union

from fastapi import APIRouter, Request
from pydantic import BaseModel, StrictFloat, StrictInt, StrictStr, ValidationError

from database.models import parse_timestamp
from services.timer_scheduler import TIMER_MODES
from .auth import SessionAuth, ANY_ROLE, WRITE_ROLES, json_error

logger = logging.getLogger(__name__)


# Request models
class TimerCreateRequest(BaseModel):
    chillerName: StrictStr
    chillerIp: StrictStr
    mode: StrictStr
    hours: Union[StrictInt, StrictFloat]
    targetAt: StrictStr


def _ip_from_query(request: Request) -> str:
    return (request.query_params.get('chillerIp') or request.query_params.get('ip') or '').strip()


def create_timer_routes(scheduler, auth: SessionAuth):
    """Create timer scheduling routes"""
    router = APIRouter(prefix="/api", tags=["timers"])

    @router.get("/timers")
    async def get_timer(request: Request):
        """Active timer for a chiller, or null"""
        if auth.require(request, ANY_ROLE) is None:
            return json_error(403, "forbidden")
        chiller_ip = _ip_from_query(request)
        if not chiller_ip:
            return json_error(400, "bad_request")

        timer = await scheduler.get_active(chiller_ip)
        return {"item": timer.to_api() if timer else None}

    @router.post("/timers")
    async def create_timer(request: Request):
        if auth.require(request, WRITE_ROLES) is None:
            return json_error(403, "forbidden")
        try:
            body = await request.json()
        except ValueError:
            body = None
        try:
            payload = TimerCreateRequest.model_validate(body)
        except ValidationError as e:
            logger.info(f"[TIMER] Rejected timer request: {e.error_count()} validation error(s)")
            return json_error(400, "bad_request")

        hours = payload.hours if math.isfinite(payload.hours) else 0
        if hours <= 0:
            return json_error(400, "invalid_hours")
        target_at = parse_timestamp(payload.targetAt, naive_as_utc=False)
        if target_at is None:
            return json_error(400, "invalid_target")
        if payload.mode not in TIMER_MODES:
            return json_error(400, "invalid_mode")

        timer = await scheduler.schedule(
            chiller_name=payload.chillerName,
            chiller_ip=payload.chillerIp.strip(),
            mode=payload.mode,
            hours=hours,
            target_at=target_at
        )
        return {"ok": True, "item": timer.to_api()}

    @router.delete("/timers")
    async def cancel_timers(request: Request):
        """Deactivate every active timer for a chiller"""
        if auth.require(request, WRITE_ROLES) is None:
            return json_error(403, "forbidden")
        chiller_ip = _ip_from_query(request)
        if not chiller_ip:
            return json_error(400, "bad_request")

        await scheduler.cancel(chiller_ip)
        return {"ok": True}

    return router
