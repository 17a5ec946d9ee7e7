"""
Event Schema Definitions

Presence envelopes sent to every member of a room.
"""

from typing import Any, Dict, List


def create_population_event(room_id: str, count: int) -> Dict[str, Any]:
    return {
        "type": "population",
        "room": room_id,
        "count": count,
    }


def create_user_list_event(room_id: str, users: List[str]) -> Dict[str, Any]:
    return {
        "type": "userList",
        "room": room_id,
        "users": users,
    }
