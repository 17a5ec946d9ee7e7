#!/usr/bin/env python3
"""
Room Relay Server

Real-time room-scoped message relay over WebSocket.
"""

import asyncio
import logging
import sys

from .config import RelayConfig
from .router import MessageRouter
from .state import RelayState
from .websocket_server import WebSocketServer

logger = logging.getLogger(__name__)


def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def run_server(config: RelayConfig):
    """
    Run the relay server until cancelled.

    Args:
        config: Server configuration
    """
    state = RelayState(config)
    state.load()

    router = MessageRouter(state)
    ws_server = WebSocketServer(
        router, config.host, config.port, max_size=config.max_frame_size
    )

    await ws_server.start()
    logger.info(f"Relay server is ready on ws://{config.host}:{config.port}")
    logger.info(f"Serving uploads from {config.upload_dir} at {config.upload_url_prefix}")

    try:
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await ws_server.stop()
        logger.info("Relay server stopped")


def main():
    """Main entry point for the relay server."""
    try:
        config = RelayConfig.from_env()
    except ValueError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    configure_logging(config.log_level)
    logger.info("Starting room relay server...")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutting down relay server...")
        sys.exit(0)


if __name__ == "__main__":
    main()
