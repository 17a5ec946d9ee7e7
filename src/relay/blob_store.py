"""
Image Blob Store

Decodes base64 image attachments and writes them to content-independent
file names in the upload directory. The returned reference is the path
under which an external static file server exposes the blob.
"""

import asyncio
import base64
import binascii
import logging
import mimetypes
import os
import re
import tempfile
import uuid
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,")
_EXTENSION_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")


class BlobStorageError(Exception):
    """Raised when an attachment cannot be decoded or written."""


def _split_data_url(data: str) -> Tuple[Optional[str], str]:
    """Return (mime_type, payload) for a data URL, or (None, data) otherwise."""
    match = _DATA_URL_RE.match(data)
    if not match:
        return None, data
    return match.group("mime"), data[match.end():]


def _extension_for(filename: Optional[str], mime_type: Optional[str]) -> str:
    if filename:
        _, ext = os.path.splitext(os.path.basename(filename))
        ext = ext.lstrip(".")
        if _EXTENSION_RE.match(ext):
            return "." + ext.lower()
    if mime_type:
        guessed = mimetypes.guess_extension(mime_type)
        if guessed:
            return guessed
    return ""


class ImageBlobStore:
    """
    File-backed store for image attachments.
    """

    def __init__(
        self,
        directory: str,
        url_prefix: str = "/uploads",
        max_bytes: int = 5 * 1024 * 1024,
    ):
        """
        Initialize the blob store.

        Args:
            directory: Directory blobs are written to
            url_prefix: Prefix of the references handed back to clients
            max_bytes: Maximum decoded size of one blob
        """
        self.directory = directory
        self.url_prefix = url_prefix.rstrip("/")
        self.max_bytes = max_bytes

    def decode(self, data: str, filename: Optional[str] = None) -> Tuple[bytes, str]:
        """
        Decode an attachment and choose its storage name.

        Returns:
            (decoded bytes, generated file name)

        Raises:
            BlobStorageError: If the data is not valid base64, empty or too large
        """
        if not isinstance(data, str) or not data:
            raise BlobStorageError("Image data must be a non-empty base64 string")

        mime_type, payload = _split_data_url(data.strip())
        try:
            blob = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BlobStorageError(f"Image data is not valid base64: {e}") from e

        if not blob:
            raise BlobStorageError("Image data is empty")
        if len(blob) > self.max_bytes:
            raise BlobStorageError(
                f"Image too large ({len(blob)} bytes, max {self.max_bytes})"
            )

        name = uuid.uuid4().hex + _extension_for(filename, mime_type)
        return blob, name

    async def save(self, data: str, filename: Optional[str] = None) -> str:
        """
        Decode and store an attachment.

        Args:
            data: Base64 payload, optionally as a data URL
            filename: Client-supplied name, used only for its extension

        Returns:
            Reference under which the blob can be retrieved

        Raises:
            BlobStorageError: If decoding or writing fails
        """
        blob, name = self.decode(data, filename)

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, name, blob)
        except OSError as e:
            raise BlobStorageError(f"Failed to write image {name}: {e}") from e

        logger.info(f"Stored image {name} ({len(blob)} bytes)")
        return f"{self.url_prefix}/{name}"

    def path_for(self, reference: str) -> str:
        """
        Resolve a reference returned by save() to its file path.

        Raises:
            ValueError: If the reference does not belong to this store
        """
        prefix = self.url_prefix + "/"
        if not reference.startswith(prefix):
            raise ValueError(f"Reference '{reference}' is not under {prefix}")
        name = reference[len(prefix):]
        if not name or os.path.basename(name) != name or name.startswith("."):
            raise ValueError(f"Invalid blob reference '{reference}'")
        return os.path.join(self.directory, name)

    def _write(self, name: str, blob: bytes):
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".part")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, os.path.join(self.directory, name))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
