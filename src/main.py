"""
Chiller Local Server - Main Entry Point
Serves the dashboard API and runs the timer sweep until SIGINT/SIGTERM
"""

import asyncio
import signal
import sys
import os
import logging
from pathlib import Path

from services.chiller_server import ChillerServer

logger = logging.getLogger(__name__)


async def main() -> int:
    config_path = os.environ.get('CONFIG_FILE', 'config/config.yaml')
    try:
        server = ChillerServer(config_path=config_path)
    except Exception as e:
        logger.error(f"Could not load server from {config_path}: {e}")
        return 1
    logger.info(f"Using configuration {config_path}")

    serve_task = asyncio.create_task(server.start())

    def request_shutdown(signame: str):
        logger.info(f"Received {signame}, shutting down...")
        if not server.request_stop():
            # Still initializing: nothing is serving yet
            serve_task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown, sig.name)
        except NotImplementedError:
            # Windows event loops: Ctrl+C arrives as KeyboardInterrupt
            pass

    exit_code = 0
    try:
        await serve_task
    except asyncio.CancelledError:
        logger.info("Startup cancelled")
    except Exception as e:
        logger.error(f"Server failed: {e}")
        exit_code = 1
    finally:
        await server.stop()

    return exit_code


if __name__ == "__main__":
    Path("logs").mkdir(exist_ok=True)

    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)
