"""
Relay Configuration

Runtime settings for the relay server, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_PORT = 4000
DEFAULT_ROOM = "anonymous"
DEFAULT_MAX_MESSAGE_LENGTH = 5000
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024
DEFAULT_COMPACT_EVERY = 500

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: str) -> bool:
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{value}'")


def _parse_int(name: str, value: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{value}'") from None
    if number < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {number}")
    return number


@dataclass(frozen=True)
class RelayConfig:
    """
    Settings for one relay server instance.

    Attributes:
        host: Address the WebSocket server binds to
        port: Port the WebSocket server listens on
        history_file: Path of the durable message log
        upload_dir: Directory holding stored image blobs
        upload_url_prefix: Path prefix under which the static server exposes blobs
        echo_to_sender: Whether message fan-out includes the sending channel
        max_message_length: Maximum accepted text message length
        max_image_bytes: Maximum decoded size of an image attachment
        compact_every: Number of log appends between compactions (0 disables)
        log_level: Logging level name
    """

    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    history_file: str = os.path.join("data", "messages.jsonl")
    upload_dir: str = os.path.join("data", "uploads")
    upload_url_prefix: str = "/uploads"
    echo_to_sender: bool = True
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    compact_every: int = DEFAULT_COMPACT_EVERY
    log_level: str = "INFO"

    @property
    def max_frame_size(self) -> int:
        """Largest inbound frame accepted, sized for a base64 image plus envelope."""
        return (self.max_image_bytes * 4) // 3 + 64 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            The populated RelayConfig

        Raises:
            ValueError: If a numeric or boolean variable cannot be parsed
        """
        env = os.environ if environ is None else environ

        data_dir = env.get("RELAY_DATA_DIR", "data")
        upload_url_prefix = env.get("RELAY_UPLOAD_URL_PREFIX", "/uploads").rstrip("/")

        return cls(
            host=env.get("RELAY_HOST", "0.0.0.0"),
            port=_parse_int("RELAY_PORT", env.get("RELAY_PORT", str(DEFAULT_PORT)), 1),
            history_file=env.get(
                "RELAY_HISTORY_FILE", os.path.join(data_dir, "messages.jsonl")
            ),
            upload_dir=env.get("RELAY_UPLOAD_DIR", os.path.join(data_dir, "uploads")),
            upload_url_prefix=upload_url_prefix or "/uploads",
            echo_to_sender=_parse_bool(
                "RELAY_ECHO_TO_SENDER", env.get("RELAY_ECHO_TO_SENDER", "true")
            ),
            max_message_length=_parse_int(
                "RELAY_MAX_MESSAGE_LENGTH",
                env.get("RELAY_MAX_MESSAGE_LENGTH", str(DEFAULT_MAX_MESSAGE_LENGTH)),
                1,
            ),
            max_image_bytes=_parse_int(
                "RELAY_MAX_IMAGE_BYTES",
                env.get("RELAY_MAX_IMAGE_BYTES", str(DEFAULT_MAX_IMAGE_BYTES)),
                1,
            ),
            compact_every=_parse_int(
                "RELAY_COMPACT_EVERY",
                env.get("RELAY_COMPACT_EVERY", str(DEFAULT_COMPACT_EVERY)),
            ),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
