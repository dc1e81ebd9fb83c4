"""
Chiller status and control API routes
"""

import math
import logging
from typing import Callable

from fastapi import APIRouter, Request

from devices.models import VarsConfig
from .auth import SessionAuth, WRITE_ROLES, json_error

logger = logging.getLogger(__name__)


def _setpoint_value(body: dict) -> float:
    """Desired setpoint from `value` (number or numeric string), `temp` or `setpoint`"""
    value = body.get('value')
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip()) if value.strip() else math.nan
        except ValueError:
            return math.nan
    for key in ('temp', 'setpoint'):
        alt = body.get(key)
        if isinstance(alt, (int, float)) and not isinstance(alt, bool):
            return float(alt)
    return math.nan


def create_control_routes(controller, vars_resolver: Callable[[str], VarsConfig], auth: SessionAuth):
    """Create device status and control routes"""
    router = APIRouter(prefix="/api", tags=["control"])

    @router.get("/chiller-status")
    async def chiller_status(ip: str = ''):
        """Liveness probe; served from the device cache, no login needed"""
        ip = ip.strip()
        if not ip:
            return json_error(400, "missing_ip")
        reachable = await controller.is_reachable(ip)
        return {"reachable": reachable}

    @router.post("/chiller-control")
    async def chiller_control(request: Request):
        """Power, mode, setpoint and status operations against one device"""
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            return json_error(400, "bad_request")

        session = auth.require(request, WRITE_ROLES)
        if session is None:
            return json_error(403, "forbidden")

        ip = body.get('ip').strip() if isinstance(body.get('ip'), str) else ''
        kind = body.get('kind') if isinstance(body.get('kind'), str) else ''
        if not ip or not kind:
            return json_error(400, "missing_fields")

        vars_config = vars_resolver(ip)
        logger.info(f"[CONTROL] {session['username']} -> {kind} on {ip}")

        if kind == 'power':
            ok = await controller.set_power(ip, vars_config, bool(body.get('target')))
            if not ok:
                return json_error(502, "write_failed")
            return {"ok": True}

        if kind == 'mode':
            mode = body.get('mode') if isinstance(body.get('mode'), str) else ''
            ok = await controller.set_mode(ip, vars_config, mode)
            if not ok:
                return json_error(502, "write_failed")
            return {"ok": True}

        if kind == 'setpoint':
            value = _setpoint_value(body)
            if math.isnan(value):
                return json_error(400, "bad_value")
            result = await controller.apply_setpoint(ip, vars_config, value)
            if not result.ok:
                return json_error(502, "write_failed")
            return {"ok": True, "actual": result.actual}

        if kind == 'status':
            status = await controller.read_status(ip, vars_config)
            if not status.ok:
                return json_error(502, "unreachable")
            return status.to_response()

        return json_error(400, "unsupported_kind")

    return router
