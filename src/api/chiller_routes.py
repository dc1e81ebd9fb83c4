"""
Chiller definition API routes
"""

import logging
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, StrictBool, StrictStr, ValidationError

from database.models import ChillerRecord, DEFAULT_CHILLER_NAME, new_id
from .auth import SessionAuth, ANY_ROLE, json_error

logger = logging.getLogger(__name__)

ADMIN_ONLY = ('admin',)


# Request models
class ChillerCreateRequest(BaseModel):
    name: StrictStr
    ip: StrictStr
    active: StrictBool


async def _read_body(request: Request):
    try:
        return await request.json()
    except ValueError:
        return None


async def _seed_chillers(store, seeds: List[Dict]) -> List[ChillerRecord]:
    """Write dashboard-defined chillers into an empty table"""
    created = []
    for seed in seeds:
        chiller = ChillerRecord(
            id=seed.get('id') or new_id(),
            name=seed.get('name') or DEFAULT_CHILLER_NAME,
            ip=seed.get('ip') or '',
            active=bool(seed.get('active'))
        )
        created.append(await store.upsert_chiller(chiller))
    if created:
        logger.info(f"Seeded {len(created)} chiller(s) from dashboard configuration")
    return created


def create_chiller_routes(store, auth: SessionAuth, seed_provider: Optional[Callable[[], List[Dict]]] = None):
    """Create chiller CRUD routes; listing seeds from the dashboard file when no chiller is active"""
    router = APIRouter(prefix="/api", tags=["chillers"])

    @router.get("/chillers")
    async def list_chillers(request: Request):
        if auth.require(request, ANY_ROLE) is None:
            return json_error(403, "forbidden")

        chillers = await store.list_chillers()
        if not chillers and seed_provider is not None:
            await _seed_chillers(store, seed_provider())
            chillers = await store.list_chillers()
        return {"items": [c.to_api() for c in chillers]}

    @router.get("/chillers/{chiller_id}")
    async def get_chiller(chiller_id: str, request: Request):
        """Single chiller by id, including soft-deleted ones"""
        if auth.require(request, ANY_ROLE) is None:
            return json_error(403, "forbidden")
        chiller = await store.get_chiller(chiller_id)
        if chiller is None:
            return json_error(404, "not_found")
        return {"item": chiller.to_api()}

    @router.post("/chillers")
    async def create_chiller(request: Request):
        if auth.require(request, ADMIN_ONLY) is None:
            return json_error(403, "forbidden")
        try:
            payload = ChillerCreateRequest.model_validate(await _read_body(request))
        except ValidationError:
            return json_error(400, "bad_request")

        chiller = await store.create_chiller(name=payload.name, ip=payload.ip.strip(), active=payload.active)
        logger.info(f"Created chiller {chiller.id} ({chiller.name} @ {chiller.ip})")
        return {"ok": True, "item": chiller.to_api()}

    @router.put("/chillers/{chiller_id}")
    async def update_chiller(chiller_id: str, request: Request):
        """Partial update; fields of the wrong type are ignored"""
        if auth.require(request, ADMIN_ONLY) is None:
            return json_error(403, "forbidden")
        body = await _read_body(request)
        if not isinstance(body, dict):
            return json_error(400, "bad_request")

        name = body.get('name') if isinstance(body.get('name'), str) else None
        ip = body.get('ip').strip() if isinstance(body.get('ip'), str) else None
        active = body.get('active') if isinstance(body.get('active'), bool) else None

        chiller = await store.update_chiller(chiller_id, name=name, ip=ip, active=active)
        if chiller is None:
            return json_error(404, "not_found")
        return {"ok": True, "item": chiller.to_api()}

    @router.delete("/chillers/{chiller_id}")
    async def delete_chiller(chiller_id: str, request: Request):
        """Soft delete: the record stays queryable by id"""
        if auth.require(request, ADMIN_ONLY) is None:
            return json_error(403, "forbidden")
        chiller = await store.deactivate_chiller(chiller_id)
        if chiller is None:
            return json_error(404, "not_found")
        logger.info(f"Deactivated chiller {chiller.id} ({chiller.name})")
        return {"ok": True, "item": chiller.to_api()}

    return router
