"""
Schemas for the Relay

Builders for the outbound envelopes sent to clients.
"""

from .messages import (
    create_message_broadcast,
    create_image_broadcast,
    create_history_envelope,
)
from .events import (
    create_population_event,
    create_user_list_event,
)
from .responses import create_error_response

__all__ = [
    "create_message_broadcast",
    "create_image_broadcast",
    "create_history_envelope",
    "create_population_event",
    "create_user_list_event",
    "create_error_response",
]
