"""
Message Router

Protocol state machine of the relay. Every inbound envelope is parsed,
validated against the sending connection's state and dispatched to one
handler per envelope type.

Each handler performs all of its in-memory mutation and takes its
recipient snapshot before the first suspension point; disk writes and
sends happen afterwards.
"""

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from websockets.exceptions import ConnectionClosed

from .blob_store import BlobStorageError
from .config import DEFAULT_ROOM
from .message_store import KIND_IMAGE, KIND_TEXT, MessageRecord, PersistenceError
from .registry import Identity
from .schemas import (
    create_error_response,
    create_history_envelope,
    create_image_broadcast,
    create_message_broadcast,
)
from .schemas.responses import (
    INTERNAL_ERROR,
    INVALID_CONTENT,
    INVALID_ENVELOPE,
    INVALID_JSON,
    NOT_MEMBER,
    STORAGE_ERROR,
    UNKNOWN_TYPE,
)
from .state import RelayState
from .utils import (
    fan_out,
    optional_string,
    require_string,
    send_envelope,
    validate_message_content,
)

logger = logging.getLogger(__name__)

# WebSocket close code for a join without a username
POLICY_VIOLATION = 1008


class ChannelState(Enum):
    """Per-connection protocol state."""

    UNIDENTIFIED = "unidentified"
    JOINED = "joined"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageRouter:
    """
    Dispatches client envelopes against the relay state.
    """

    def __init__(self, state: RelayState):
        """
        Initialize the router.

        Args:
            state: The relay state this router mutates
        """
        self.state = state
        self.config = state.config
        self.registry = state.registry
        self.rooms = state.rooms
        self.messages = state.messages
        self.blobs = state.blobs
        self.presence = state.presence
        self._handlers = {
            "join": self.handle_join,
            "message": self.handle_message,
            "image": self.handle_image,
            "leave": self.handle_leave,
        }

    def connect(self, transport) -> str:
        """Register a newly opened transport and return its connection id."""
        channel_id = self.registry.attach(transport)
        logger.info(
            f"Client {channel_id} connected "
            f"({self.registry.connection_count()} connections)"
        )
        return channel_id

    def channel_state(self, channel_id: str) -> ChannelState:
        identity = self.registry.lookup(channel_id)
        if identity and identity.current_room:
            return ChannelState.JOINED
        return ChannelState.UNIDENTIFIED

    async def dispatch(self, channel_id: str, raw):
        """
        Handle one inbound frame from a connection.

        Protocol errors are logged and answered with an error envelope;
        nothing raised while handling an envelope escapes this method.

        Args:
            channel_id: The sending connection
            raw: The frame text (JSON)
        """
        try:
            envelope = json.loads(raw)
        except (ValueError, TypeError, RecursionError) as e:
            logger.warning(f"Invalid JSON from {channel_id}: {e}")
            await self._send_error(channel_id, "Message must be valid JSON", INVALID_JSON)
            return

        if not isinstance(envelope, dict):
            logger.warning(f"Non-object envelope from {channel_id}")
            await self._send_error(
                channel_id, "Message must be a JSON object", INVALID_ENVELOPE
            )
            return

        msg_type = envelope.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            logger.warning(f"Unknown message type from {channel_id}: {msg_type}")
            await self._send_error(
                channel_id, f"Unknown message type: {msg_type}", UNKNOWN_TYPE
            )
            return

        try:
            await handler(channel_id, envelope)
        except Exception as e:
            logger.exception(f"Error processing {msg_type} from {channel_id}: {e}")
            await self._send_error(channel_id, "Internal server error", INTERNAL_ERROR)

    async def handle_join(self, channel_id: str, envelope: Dict[str, Any]):
        """
        Handle a join envelope.

        Expected format:
        {"type": "join", "user": "...", "room": "...", "profile": ...}
        """
        username = require_string(envelope, "user")
        if username is None:
            logger.warning(f"Join without username from {channel_id}, closing")
            await self._close(channel_id, "Username is required for join")
            return

        room_id = require_string(envelope, "room") or DEFAULT_ROOM
        previous = self.registry.lookup(channel_id)
        previous_room = previous.current_room if previous else None

        left_previous = False
        if previous_room and previous_room != room_id:
            left_previous = self.rooms.leave(previous_room, channel_id)

        self.registry.register(
            channel_id,
            Identity(
                username=username,
                profile=envelope.get("profile"),
                current_room=room_id,
            ),
        )
        added = self.rooms.join(room_id, channel_id)
        history = self.messages.history(room_id)

        if added:
            logger.info(f"Client {username} joined room: {room_id}")
        else:
            logger.info(f"Client {username} re-joined room: {room_id}")

        await send_envelope(
            self.registry, channel_id, create_history_envelope(room_id, history)
        )

        if left_previous:
            logger.info(f"Client {username} moved out of room: {previous_room}")
            await self.presence.broadcast(previous_room)

        await self.presence.broadcast(room_id)

    async def handle_message(self, channel_id: str, envelope: Dict[str, Any]):
        """
        Handle a text message envelope.

        Expected format:
        {"type": "message", "room": "...", "content": "...",
         "id": "...", "timestamp": "..."}
        """
        identity = self._sender_identity(channel_id, "message")
        if identity is None:
            return

        room_id = require_string(envelope, "room")
        content = envelope.get("content")
        if room_id is None or not isinstance(content, str) or not content:
            logger.warning(
                f"Room and content are required for message, dropping "
                f"envelope from {identity.username}"
            )
            return

        if not await self._check_room(channel_id, room_id):
            return

        is_valid, error = validate_message_content(
            content, self.config.max_message_length
        )
        if not is_valid:
            await self._send_error(channel_id, error, INVALID_CONTENT)
            return

        record = MessageRecord(
            id=optional_string(envelope, "id") or uuid.uuid4().hex,
            room=room_id,
            kind=KIND_TEXT,
            content=content,
            sender=identity.username,
            timestamp=optional_string(envelope, "timestamp") or _now(),
            sender_profile=identity.profile,
        )
        await self._commit(channel_id, record, create_message_broadcast(record))

    async def handle_image(self, channel_id: str, envelope: Dict[str, Any]):
        """
        Handle an image envelope.

        Expected format:
        {"type": "image", "room": "...", "data": "<base64>",
         "filename": "...", "id": "...", "timestamp": "..."}
        """
        identity = self._sender_identity(channel_id, "image")
        if identity is None:
            return

        room_id = require_string(envelope, "room")
        data = require_string(envelope, "data")
        if room_id is None or data is None:
            logger.warning(
                f"Room and data are required for image, dropping "
                f"envelope from {identity.username}"
            )
            return

        if not await self._check_room(channel_id, room_id):
            return

        filename = optional_string(envelope, "filename")
        if filename:
            filename = os.path.basename(filename)
        message_id = optional_string(envelope, "id") or uuid.uuid4().hex
        timestamp = optional_string(envelope, "timestamp") or _now()

        try:
            image_ref = await self.blobs.save(data, filename)
        except BlobStorageError as e:
            logger.error(f"Image {message_id} from {identity.username} rejected: {e}")
            await self._send_error(channel_id, str(e), STORAGE_ERROR)
            return

        if not self.rooms.is_member(room_id, channel_id):
            logger.warning(
                f"{identity.username} left {room_id} while storing image "
                f"{message_id}, dropping"
            )
            return

        record = MessageRecord(
            id=message_id,
            room=room_id,
            kind=KIND_IMAGE,
            content=f"[image] {filename}" if filename else "[image]",
            sender=identity.username,
            timestamp=timestamp,
            image_ref=image_ref,
            sender_profile=identity.profile,
        )
        await self._commit(
            channel_id, record, create_image_broadcast(record, filename)
        )

    async def handle_leave(self, channel_id: str, envelope: Dict[str, Any]):
        """
        Handle a leave envelope.

        Expected format:
        {"type": "leave", "room": "..."}
        """
        room_id = require_string(envelope, "room")
        if room_id is None:
            logger.warning(f"Room is required for leave, dropping envelope from {channel_id}")
            return

        if not self.rooms.leave(room_id, channel_id):
            logger.info(f"Client {channel_id} is not in room {room_id}, ignoring leave")
            return

        username = self.registry.username_of(channel_id)
        identity = self.registry.lookup(channel_id)
        if identity and identity.current_room == room_id:
            self.registry.remove(channel_id)

        logger.info(f"Client {username} left room: {room_id}")
        await self.presence.broadcast(room_id)

    async def disconnect(self, channel_id: str):
        """
        Clean up after a transport closed.

        Acts as an implicit leave of the connection's current room. Safe to
        call more than once and for connections that never joined.
        """
        identity = self.registry.lookup(channel_id)
        room_id = identity.current_room if identity else None
        left = room_id is not None and self.rooms.leave(room_id, channel_id)
        self.registry.detach(channel_id)

        username = identity.username if identity else "Anonymous"
        logger.info(
            f"Client {username} ({channel_id}) disconnected, "
            f"{self.registry.connection_count()} connections remain"
        )

        if left:
            try:
                await self.presence.broadcast(room_id)
            except Exception as e:
                logger.error(f"Failed to update presence for {room_id}: {e}")

    def _sender_identity(self, channel_id: str, msg_type: str) -> Optional[Identity]:
        if self.channel_state(channel_id) is not ChannelState.JOINED:
            logger.warning(
                f"Dropping {msg_type} from {channel_id}: connection has not joined"
            )
            return None
        return self.registry.lookup(channel_id)

    async def _check_room(self, channel_id: str, room_id: str) -> bool:
        if not self.rooms.exists(room_id):
            logger.warning(f"Room {room_id} does not exist, dropping envelope")
            return False
        if not self.rooms.is_member(room_id, channel_id):
            await self._send_error(
                channel_id, f"You are not a member of room '{room_id}'", NOT_MEMBER
            )
            return False
        return True

    def _recipients(self, room_id: str, sender_id: str) -> List[str]:
        members = self.rooms.members(room_id)
        if self.config.echo_to_sender:
            return members
        return [channel_id for channel_id in members if channel_id != sender_id]

    async def _commit(self, channel_id: str, record: MessageRecord, envelope: Dict):
        """Persist an accepted record and fan it out to the room snapshot."""
        recipients = self._recipients(record.room, channel_id)
        try:
            await self.messages.append(record)
        except PersistenceError as e:
            logger.error(f"{e}; delivering message {record.id} anyway")

        delivered = await fan_out(self.registry, recipients, envelope)
        logger.info(
            f"{record.kind} {record.id} from {record.sender} in {record.room} "
            f"delivered to {delivered}/{len(recipients)} members"
        )

    async def _send_error(self, channel_id: str, message: str, code: str):
        logger.warning(f"Error {code} for {channel_id}: {message}")
        await send_envelope(
            self.registry, channel_id, create_error_response(message, code)
        )

    async def _close(self, channel_id: str, reason: str):
        transport = self.registry.transport(channel_id)
        if transport is None:
            return
        try:
            await transport.close(code=POLICY_VIOLATION, reason=reason)
        except ConnectionClosed:
            pass
