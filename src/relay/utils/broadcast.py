"""
Broadcast Utilities

Best-effort delivery of envelopes to one connection or a room snapshot.
A failed send to one connection never affects delivery to the others.
"""

import json
import logging
from typing import Any, Dict, Iterable

from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


async def _send_text(registry, channel_id: str, text: str) -> bool:
    transport = registry.transport(channel_id)
    if transport is None:
        logger.debug(f"Skipping send to detached connection {channel_id}")
        return False
    try:
        await transport.send(text)
        return True
    except ConnectionClosed:
        logger.debug(f"Connection {channel_id} closed during send")
        return False


async def send_envelope(registry, channel_id: str, envelope: Dict[str, Any]) -> bool:
    """
    Send an envelope to a single connection.

    Args:
        registry: ConnectionRegistry resolving ids to transports
        channel_id: Target connection
        envelope: Envelope to serialize as JSON

    Returns:
        True if the send completed, False if the connection is gone
    """
    return await _send_text(registry, channel_id, json.dumps(envelope))


async def fan_out(
    registry,
    channel_ids: Iterable[str],
    envelope: Dict[str, Any],
) -> int:
    """
    Send an envelope to every connection in a membership snapshot.

    Args:
        registry: ConnectionRegistry resolving ids to transports
        channel_ids: Snapshot of recipient connection ids
        envelope: Envelope to serialize as JSON

    Returns:
        Number of connections the envelope was delivered to
    """
    text = json.dumps(envelope)
    delivered = 0
    for channel_id in channel_ids:
        if await _send_text(registry, channel_id, text):
            delivered += 1
    return delivered
