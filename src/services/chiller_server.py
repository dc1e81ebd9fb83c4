"""
Chiller Server - Main orchestrator for all services
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
import uvicorn

# Local imports
from config_loader import (
    load_config, setup_logging, load_dashboard_config,
    vars_config_for, seed_chillers_from_dashboard
)
from database import create_store
from devices import ChillerController, DeviceCache, DeviceCommandQueue, DeviceHttpClient
from devices.models import VarsConfig
from api.main_api import ChillerAPI
from api.auth import ensure_default_users
from services.timer_scheduler import TimerScheduler

logger = logging.getLogger(__name__)


class ChillerServer:
    """Wires the store, device layer, timer sweep and HTTP API together"""

    def __init__(self, config_path: str = "config/config.yaml", manage_lifespan: bool = False):
        self.config = load_config(config_path)
        setup_logging(self.config)

        self.store = create_store(self.config)
        self.dashboard = load_dashboard_config(self.config['dashboard']['config_path'])

        devices_config = self.config['devices']
        self.client = DeviceHttpClient(
            read_timeout=devices_config['read_timeout_seconds'],
            write_timeout=devices_config['write_timeout_seconds']
        )
        self.queue = DeviceCommandQueue()
        self.cache = DeviceCache(self.client, self.queue, ttl_seconds=devices_config['cache_ttl_seconds'])
        self.controller = ChillerController(
            client=self.client,
            cache=self.cache,
            queue=self.queue,
            settle_seconds=devices_config['setpoint_settle_seconds'],
            unlock_settle_seconds=devices_config['unlock_settle_seconds']
        )

        timers_config = self.config['timers']
        self.scheduler = TimerScheduler(
            self.store,
            self.controller,
            self.vars_for,
            interval_seconds=timers_config['sweep_interval_seconds'],
            replace_existing=timers_config['replace_existing']
        )

        self.api = ChillerAPI(
            self.store, self.controller, self.scheduler, self.config,
            vars_resolver=self.vars_for,
            seed_provider=self.seed_chillers,
            lifespan=self._lifespan if manage_lifespan else None
        )
        self.running = False
        self._http_server: Optional[uvicorn.Server] = None

    def vars_for(self, ip: str) -> VarsConfig:
        return vars_config_for(self.dashboard, ip)

    def seed_chillers(self) -> List[Dict]:
        return seed_chillers_from_dashboard(self.dashboard)

    @asynccontextmanager
    async def _lifespan(self, app):
        await self.initialize()
        try:
            yield
        finally:
            await self.shutdown()

    async def initialize(self):
        """Open the store, create default users and start the timer sweep"""
        await self.store.initialize()
        logger.info("Store initialized successfully")

        await ensure_default_users(self.store, self.config['auth'].get('default_users', []))

        self.running = True
        if self.scheduler.start():
            logger.info("Timer sweep started")

    async def shutdown(self):
        self.running = False
        await self.scheduler.stop()
        await self.store.close()
        logger.info("Server stopped")

    async def start(self):
        """Start all server services and serve the HTTP API until cancelled"""
        logger.info("Starting Chiller Local Server...")

        try:
            await self.initialize()
            await self._start_api_server()
        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            raise

    def request_stop(self) -> bool:
        """Ask the HTTP server to finish; `start()` then returns and `stop()` cleans up.
        False while nothing is serving yet."""
        if self._http_server is None:
            return False
        self._http_server.should_exit = True
        return True

    async def stop(self):
        """Stop all server services gracefully"""
        if not self.running:
            return
        logger.info("Stopping server...")
        await self.shutdown()

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        server = uvicorn.Server(config)
        self._http_server = server

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")

        backend = self.config['database']['backend']
        if backend == 'file':
            logger.info(f"Persistence: JSON file {self.config['database']['path']}")
        else:
            logger.info(f"Persistence: PostgreSQL {self.config['database']['host']}:{self.config['database']['port']}")

        await server.serve()
