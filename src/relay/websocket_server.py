"""
WebSocket Server for the Relay

Accepts WebSocket connections and feeds their frames to the message
router. The router never reads from a connection; this module owns the
receive loop and reports closure back to the router.
"""

import logging
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed

from .router import MessageRouter

logger = logging.getLogger(__name__)


class WebSocketServer:
    """
    WebSocket transport adapter for a MessageRouter.
    """

    def __init__(
        self,
        router: MessageRouter,
        host: str,
        port: int,
        max_size: Optional[int] = None,
    ):
        """
        Initialize the WebSocket server.

        Args:
            router: Router that handles every inbound frame
            host: Host address to bind to
            port: Port to listen on
            max_size: Largest inbound frame in bytes (None keeps the library default)
        """
        self.router = router
        self.host = host
        self.port = port
        self.max_size = max_size
        self.server = None

    async def start(self):
        """Start the WebSocket server."""
        kwargs = {}
        if self.max_size is not None:
            kwargs["max_size"] = self.max_size
        self.server = await websockets.serve(
            self.handle_client, self.host, self.port, **kwargs
        )
        logger.info(f"WebSocket server started on ws://{self.host}:{self.port}")

    async def stop(self):
        """Stop the WebSocket server."""
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            logger.info("WebSocket server stopped")

    async def handle_client(self, websocket):
        """
        Handle a client connection until it closes.

        Args:
            websocket: The WebSocket connection
        """
        channel_id = self.router.connect(websocket)

        try:
            async for message in websocket:
                await self.router.dispatch(channel_id, message)
        except ConnectionClosed:
            logger.info(f"Client {channel_id} connection closed")
        except Exception as e:
            logger.error(f"Error handling client {channel_id}: {e}")
        finally:
            await self.router.disconnect(channel_id)
