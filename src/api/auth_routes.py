"""
Login and logout routes
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictStr, ValidationError

from .auth import SessionAuth, SESSION_COOKIE, json_error, verify_password

logger = logging.getLogger(__name__)


class LoginRequest(BaseModel):
    username: StrictStr
    password: StrictStr


def create_auth_routes(store, auth: SessionAuth, cookie_secure: bool = False):
    router = APIRouter(prefix="/api/auth", tags=["auth"])

    @router.post("/login")
    async def login(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        try:
            payload = LoginRequest.model_validate(body)
        except ValidationError:
            return json_error(400, "bad_request")

        user = await verify_password(store, payload.username, payload.password)
        if user is None:
            logger.warning(f"[AUTH] Failed login for {payload.username}")
            return JSONResponse({"ok": False}, status_code=401)

        token = auth.create_session(user.username, user.role)
        response = JSONResponse({"ok": True, "role": user.role})
        response.set_cookie(
            SESSION_COOKIE, token,
            httponly=True, secure=cookie_secure, samesite="lax", path="/",
            max_age=auth.session_seconds
        )
        logger.info(f"[AUTH] {user.username} signed in ({user.role})")
        return response

    @router.post("/logout")
    async def logout():
        response = JSONResponse({"ok": True})
        response.delete_cookie(SESSION_COOKIE, path="/", secure=cookie_secure, httponly=True, samesite="lax")
        return response

    return router
