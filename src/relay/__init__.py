"""
Room Relay Package

This package provides the room-scoped message relay: connection and
room tracking, presence, message history and the WebSocket server.
"""

from .blob_store import ImageBlobStore, BlobStorageError
from .config import RelayConfig, DEFAULT_ROOM
from .message_store import MessageStore, MessageRecord, PersistenceError
from .presence import PresenceBroadcaster
from .registry import ConnectionRegistry, Identity
from .rooms import RoomDirectory
from .router import MessageRouter, ChannelState
from .state import RelayState
from .websocket_server import WebSocketServer

__all__ = [
    "ImageBlobStore",
    "BlobStorageError",
    "RelayConfig",
    "DEFAULT_ROOM",
    "MessageStore",
    "MessageRecord",
    "PersistenceError",
    "PresenceBroadcaster",
    "ConnectionRegistry",
    "Identity",
    "RoomDirectory",
    "MessageRouter",
    "ChannelState",
    "RelayState",
    "WebSocketServer",
]
