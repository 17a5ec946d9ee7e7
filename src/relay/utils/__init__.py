"""
Utilities for the Relay

Helpers for delivering envelopes to connections and validating
inbound envelope fields.
"""

from .broadcast import send_envelope, fan_out
from .validation import optional_string, require_string, validate_message_content

__all__ = [
    "send_envelope",
    "fan_out",
    "optional_string",
    "require_string",
    "validate_message_content",
]
