"""
System health and monitoring API routes
"""

from fastapi import APIRouter
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def create_system_routes(store, controller, scheduler):
    """Create system monitoring routes"""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/system/health")
    async def system_health():
        """System health check"""
        try:
            chillers = await store.list_chillers()
            return {
                "status": "healthy",
                "database": "connected",
                "chillers": {
                    "active_count": len(chillers)
                },
                "timers": {
                    "running": scheduler.running,
                    **scheduler.stats
                },
                "device_queue": {
                    "busy_devices": len(controller.queue.pending_keys())
                },
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    return router
