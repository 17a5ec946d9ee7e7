"""
Validation Utilities

Helpers for checking fields of inbound envelopes.
"""

from typing import Any, Dict, Optional, Tuple


def require_string(envelope: Dict[str, Any], field: str) -> Optional[str]:
    """Return the field if it is a non-empty string, otherwise None."""
    value = envelope.get(field)
    if isinstance(value, str) and value.strip():
        return value
    return None


def optional_string(envelope: Dict[str, Any], field: str) -> Optional[str]:
    """Return the field as a string if present and non-empty, otherwise None."""
    value = envelope.get(field)
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value
    return None


def validate_message_content(content: str, max_length: int) -> Tuple[bool, Optional[str]]:
    """
    Validate message content.

    Args:
        content: The message content to validate
        max_length: Maximum number of characters allowed

    Returns:
        tuple: (is_valid, error_message)
    """
    if not content:
        return False, "Message content cannot be empty"

    if len(content) > max_length:
        return (
            False,
            f"Message content too long (max {max_length} characters)",
        )

    return True, None
