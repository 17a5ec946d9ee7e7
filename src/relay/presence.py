"""
Presence Broadcaster

Computes population counts and member lists for a room and sends them
to every current member.
"""

import logging
from typing import List

from .schemas import create_population_event, create_user_list_event
from .utils import fan_out

logger = logging.getLogger(__name__)

ANONYMOUS_MEMBER = "Anonymous"


class PresenceBroadcaster:
    """
    Read-only view over the registry and directory that fans out presence.
    """

    def __init__(self, registry, rooms):
        """
        Initialize the presence broadcaster.

        Args:
            registry: ConnectionRegistry used to resolve member names
            rooms: RoomDirectory holding room membership
        """
        self.registry = registry
        self.rooms = rooms

    def member_names(self, room_id: str) -> List[str]:
        """
        Usernames of a room's members in join order.

        Members without an identity appear as a placeholder, so the list
        is always as long as the population.
        """
        return [
            self.registry.username_of(channel_id, ANONYMOUS_MEMBER)
            for channel_id in self.rooms.members(room_id)
        ]

    async def broadcast_population(self, room_id: str):
        members = self.rooms.members(room_id)
        if not members:
            return
        await fan_out(
            self.registry, members, create_population_event(room_id, len(members))
        )

    async def broadcast_member_list(self, room_id: str):
        members = self.rooms.members(room_id)
        if not members:
            return
        names = self.member_names(room_id)
        await fan_out(self.registry, members, create_user_list_event(room_id, names))

    async def broadcast(self, room_id: str):
        """Send population then member list to everyone in the room."""
        members = self.rooms.members(room_id)
        if not members:
            logger.debug(f"No members left in {room_id}, skipping presence")
            return
        population = create_population_event(room_id, len(members))
        user_list = create_user_list_event(room_id, self.member_names(room_id))
        await fan_out(self.registry, members, population)
        await fan_out(self.registry, members, user_list)
