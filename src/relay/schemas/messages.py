"""
Message Schema Definitions

Outbound envelopes carrying message records.
"""

from typing import Any, Dict, List, Optional


def create_message_broadcast(record) -> Dict[str, Any]:
    """
    Create a text message broadcast.

    Args:
        record: The accepted MessageRecord

    Returns:
        dict: Broadcast envelope
    """
    return {
        "type": "message",
        "room": record.room,
        "content": record.content,
        "sender": record.sender,
        "senderProfile": record.sender_profile,
        "id": record.id,
        "timestamp": record.timestamp,
    }


def create_image_broadcast(record, filename: Optional[str] = None) -> Dict[str, Any]:
    """
    Create an image message broadcast.

    Args:
        record: The accepted MessageRecord
        filename: Original client file name, if any

    Returns:
        dict: Broadcast envelope
    """
    return {
        "type": "image",
        "room": record.room,
        "content": record.content,
        "imageRef": record.image_ref,
        "filename": filename,
        "sender": record.sender,
        "senderProfile": record.sender_profile,
        "id": record.id,
        "timestamp": record.timestamp,
    }


def create_history_envelope(room_id: str, records: List) -> Dict[str, Any]:
    """
    Create a history replay for a joining connection.

    Args:
        room_id: Room the history belongs to
        records: MessageRecords in acceptance order

    Returns:
        dict: History envelope
    """
    return {
        "type": "history",
        "room": room_id,
        "messages": [record.to_dict() for record in records],
    }
