"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line:
    uvicorn asgi:app --app-dir src
"""

import logging
import os
from pathlib import Path

from services.chiller_server import ChillerServer

# Ensure logs directory exists
Path("logs").mkdir(exist_ok=True)

logger = logging.getLogger(__name__)

# Store, device layer and timer sweep start and stop with the app lifespan
server = ChillerServer(
    config_path=os.environ.get('CONFIG_FILE', 'config/config.yaml'),
    manage_lifespan=True
)

# Expose the FastAPI app for uvicorn
app = server.api.app

logger.info("ASGI app ready for uvicorn")
