"""
Room Directory

Tracks which connections are currently joined to which room. A room
exists only while it has at least one member; its history lives in the
message store and is unaffected by the room disappearing here.
"""

import logging
from typing import Dict, List

logger = logging.getLogger(__name__)


class RoomDirectory:
    """
    Maps room ids to their ordered member sets.

    Member sets are dicts used as insertion-ordered sets, so member lists
    come out in join order.
    """

    def __init__(self):
        self._rooms: Dict[str, Dict[str, None]] = {}

    def join(self, room_id: str, channel_id: str) -> bool:
        """
        Add a connection to a room, creating the room if needed.

        Args:
            room_id: The room to join
            channel_id: The connection joining

        Returns:
            True if the connection was newly added, False if already a member
        """
        members = self._rooms.setdefault(room_id, {})
        if channel_id in members:
            return False
        members[channel_id] = None
        logger.debug(f"Room {room_id} now has {len(members)} members")
        return True

    def leave(self, room_id: str, channel_id: str) -> bool:
        """
        Remove a connection from a room, deleting the room once empty.

        Returns:
            True if the connection was a member, False otherwise
        """
        members = self._rooms.get(room_id)
        if members is None or channel_id not in members:
            return False
        del members[channel_id]
        if not members:
            del self._rooms[room_id]
            logger.info(f"Room {room_id} is empty and was removed")
        return True

    def members(self, room_id: str) -> List[str]:
        """Snapshot of the room's members in join order; empty if no room."""
        return list(self._rooms.get(room_id, ()))

    def population(self, room_id: str) -> int:
        return len(self._rooms.get(room_id, ()))

    def exists(self, room_id: str) -> bool:
        return room_id in self._rooms

    def is_member(self, room_id: str, channel_id: str) -> bool:
        return channel_id in self._rooms.get(room_id, ())

