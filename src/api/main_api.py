"""
Main FastAPI application setup
Local HTTP API for chiller control, timers, chiller definitions and the power log
"""

from fastapi import FastAPI
from typing import Callable, Dict, List, Optional
import logging

from devices.models import VarsConfig
from .auth import SessionAuth
from .auth_routes import create_auth_routes
from .chiller_routes import create_chiller_routes
from .control_routes import create_control_routes
from .power_log_routes import create_power_log_routes
from .system_routes import create_system_routes
from .timer_routes import create_timer_routes

logger = logging.getLogger(__name__)


class ChillerAPI:
    """Local HTTP API for the chiller dashboard"""

    def __init__(self, store, controller, scheduler, config: Dict,
                 vars_resolver: Callable[[str], VarsConfig],
                 seed_provider: Optional[Callable[[], List[Dict]]] = None,
                 lifespan=None):
        self.store = store
        self.controller = controller
        self.scheduler = scheduler
        self.config = config
        self.vars_resolver = vars_resolver
        self.seed_provider = seed_provider

        auth_config = config.get('auth', {})
        self.auth = SessionAuth(auth_config.get('secret', 'dev-secret'), auth_config.get('session_days', 7))

        self.app = FastAPI(
            title="Chiller Local Server",
            description="Local API for chiller control, timers and power history",
            version="1.0.0",
            lifespan=lifespan
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        cookie_secure = bool(self.config.get('auth', {}).get('cookie_secure', False))

        self.app.include_router(create_auth_routes(self.store, self.auth, cookie_secure))
        self.app.include_router(create_control_routes(self.controller, self.vars_resolver, self.auth))
        self.app.include_router(create_timer_routes(self.scheduler, self.auth))
        self.app.include_router(create_chiller_routes(self.store, self.auth, self.seed_provider))
        self.app.include_router(create_power_log_routes(self.store, self.auth))
        self.app.include_router(create_system_routes(self.store, self.controller, self.scheduler))
