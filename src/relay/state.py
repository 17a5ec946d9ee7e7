"""
Relay State

Owns the stores of one relay server instance.
"""

import logging

from .blob_store import ImageBlobStore
from .config import RelayConfig
from .message_store import MessageStore
from .presence import PresenceBroadcaster
from .registry import ConnectionRegistry
from .rooms import RoomDirectory

logger = logging.getLogger(__name__)


class RelayState:
    """
    Holds all state for a relay server.

    Responsibilities:
    - Track connections, identities and room membership in memory
    - Own the durable message log and the image blob store
    """

    def __init__(self, config: RelayConfig):
        self.config = config
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory()
        self.messages = MessageStore(
            config.history_file, compact_every=config.compact_every
        )
        self.blobs = ImageBlobStore(
            config.upload_dir,
            url_prefix=config.upload_url_prefix,
            max_bytes=config.max_image_bytes,
        )
        self.presence = PresenceBroadcaster(self.registry, self.rooms)

    def load(self):
        """
        Load persisted state from disk.
        """
        self.messages.load_on_startup()
        logger.info(
            f"Relay state ready: {len(self.messages)} messages in "
            f"{len(self.messages.rooms())} rooms"
        )
