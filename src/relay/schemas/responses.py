"""
Response Schema Definitions

Error replies sent to a single connection.
"""

from typing import Any, Dict

INVALID_JSON = "invalid_json"
INVALID_ENVELOPE = "invalid_envelope"
UNKNOWN_TYPE = "unknown_type"
NOT_MEMBER = "not_member"
INVALID_CONTENT = "invalid_content"
STORAGE_ERROR = "storage_error"
INTERNAL_ERROR = "internal_error"


def create_error_response(message: str, code: str) -> Dict[str, Any]:
    """
    Create an error reply.

    Args:
        message: Human-readable error text
        code: Machine-readable error code

    Returns:
        dict: Error envelope
    """
    return {
        "type": "error",
        "message": message,
        "code": code,
    }
