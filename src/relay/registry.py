"""
Connection Registry

Issues connection ids for attached transports and tracks the identity
each connection declared on join.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class Identity:
    """
    Self-declared identity of a connected client.

    Attributes:
        username: Name used for sender attribution and member lists
        profile: Optional opaque profile blob supplied by the client
        current_room: Room the connection is currently joined to
    """

    username: str
    profile: Any = None
    current_room: Optional[str] = None


class ConnectionRegistry:
    """
    Maps connection ids to transports and identities.

    Transports are writable handles owned by the network layer; the
    registry only stores them so the core can address sends by id.
    """

    def __init__(self):
        self._transports: Dict[str, Any] = {}
        self._identities: Dict[str, Identity] = {}

    def attach(self, transport) -> str:
        """
        Issue a new connection id for a transport.

        Args:
            transport: Object with async send() and close() methods

        Returns:
            The opaque connection id
        """
        channel_id = uuid.uuid4().hex
        self._transports[channel_id] = transport
        return channel_id

    def detach(self, channel_id: str):
        """Forget the transport and identity of a connection."""
        self._transports.pop(channel_id, None)
        self._identities.pop(channel_id, None)

    def transport(self, channel_id: str):
        """Return the transport for a connection, or None once detached."""
        return self._transports.get(channel_id)

    def register(self, channel_id: str, identity: Identity):
        """Associate an identity with a connection, replacing any previous one."""
        self._identities[channel_id] = identity

    def lookup(self, channel_id: str) -> Optional[Identity]:
        return self._identities.get(channel_id)

    def remove(self, channel_id: str):
        """Drop the identity of a connection; no-op if none is registered."""
        self._identities.pop(channel_id, None)

    def username_of(self, channel_id: str, placeholder: str = "Anonymous") -> str:
        """Resolve a connection to its username, or the placeholder."""
        identity = self._identities.get(channel_id)
        return identity.username if identity else placeholder

    def connection_count(self) -> int:
        return len(self._transports)
