"""
Message Store

Durable, ordered log of every message record across all rooms.

Records are kept in memory in acceptance order and persisted as a JSON
Lines file. Each append adds the new lines to the end of the file; every
``compact_every`` appends the whole file is rewritten atomically from
memory. After a failed write the next write is a full rewrite, so a
partially written tail never survives. Disk writes for one store go
through a single lock so they are applied in the order records were
accepted.
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

KIND_TEXT = "text"
KIND_IMAGE = "image"


class PersistenceError(Exception):
    """Raised when the message log cannot be written."""


@dataclass(frozen=True)
class MessageRecord:
    """
    One accepted message.

    Attributes:
        id: Client-supplied or generated message id
        room: Room the message was sent to
        kind: "text" or "image"
        content: Message text, or a placeholder for images
        sender: Username of the sender
        timestamp: ISO 8601 timestamp
        image_ref: Blob reference for image messages
        sender_profile: Profile blob of the sender at send time
    """

    id: str
    room: str
    kind: str
    content: str
    sender: str
    timestamp: str
    image_ref: Optional[str] = None
    sender_profile: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire/persisted mapping."""
        return {
            "id": self.id,
            "room": self.room,
            "kind": self.kind,
            "content": self.content,
            "imageRef": self.image_ref,
            "sender": self.sender,
            "senderProfile": self.sender_profile,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageRecord":
        """
        Create a record from its persisted mapping.

        Raises:
            KeyError: If a required field is missing
        """
        return cls(
            id=str(data["id"]),
            room=str(data["room"]),
            kind=data.get("kind", KIND_TEXT),
            content=data.get("content", ""),
            sender=data["sender"],
            timestamp=data["timestamp"],
            image_ref=data.get("imageRef"),
            sender_profile=data.get("senderProfile"),
        )


class MessageStore:
    """
    Append-only message log with room-filtered replay.
    """

    def __init__(self, path: str, compact_every: int = 500):
        """
        Initialize the message store.

        Args:
            path: Location of the JSON Lines log file
            compact_every: Appends between full rewrites (0 disables)
        """
        self.path = path
        self.compact_every = compact_every
        self._records: List[MessageRecord] = []
        self._persisted_count = 0
        self._appends_since_compaction = 0
        # the file may hold a partial tail after a failed write
        self._needs_rewrite = False
        self._write_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def load_on_startup(self):
        """
        Read the persisted log into memory.

        Creates an empty log (and its directory) if none exists. Lines
        that cannot be decoded are skipped and the file is compacted so
        the on-disk sequence matches memory again.
        """
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(self.path):
            open(self.path, "a", encoding="utf-8").close()
            logger.info(f"Created empty message log at {self.path}")

        records = []
        skipped = 0
        with open(self.path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(MessageRecord.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    skipped += 1
                    logger.warning(
                        f"Skipping unreadable record on line {line_number} "
                        f"of {self.path}: {e}"
                    )

        self._records = records
        self._persisted_count = len(records)
        self._appends_since_compaction = 0

        if skipped:
            self._rewrite(list(records))
            logger.info(f"Compacted {self.path} after skipping {skipped} lines")

        logger.info(f"Loaded {len(records)} messages from {self.path}")

    def history(self, room_id: str) -> List[MessageRecord]:
        """All records for a room in acceptance order."""
        return [record for record in self._records if record.room == room_id]

    def rooms(self) -> List[str]:
        """Room ids that have any history, in order of first message."""
        return list(dict.fromkeys(record.room for record in self._records))

    async def append(self, record: MessageRecord):
        """
        Accept a record and persist it.

        The record is added to memory before this coroutine first
        suspends, so ordering is fixed at call time.

        Raises:
            PersistenceError: If the log could not be written; the record
                stays in memory and the next write rebuilds the whole log
                from memory, discarding whatever the failed write left.
        """
        self._records.append(record)
        self._appends_since_compaction += 1

        async with self._write_lock:
            loop = asyncio.get_running_loop()
            compact = self._needs_rewrite or (
                self.compact_every > 0
                and self._appends_since_compaction >= self.compact_every
            )
            try:
                if compact:
                    snapshot = list(self._records)
                    await loop.run_in_executor(None, self._rewrite, snapshot)
                    self._appends_since_compaction = 0
                    self._needs_rewrite = False
                    logger.info(f"Compacted message log ({len(snapshot)} records)")
                else:
                    pending = self._records[self._persisted_count:]
                    if pending:
                        await loop.run_in_executor(
                            None, self._append_lines, pending
                        )
                        self._persisted_count += len(pending)
            except OSError as e:
                self._needs_rewrite = True
                raise PersistenceError(
                    f"Failed to persist message {record.id}: {e}"
                ) from e

    def _append_lines(self, records: List[MessageRecord]):
        with open(self.path, "a", encoding="utf-8") as f:
            for record in records:
                f.write(json.dumps(record.to_dict()) + "\n")
            f.flush()
            os.fsync(f.fileno())

    def _rewrite(self, records: List[MessageRecord]):
        directory = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for record in records:
                    f.write(json.dumps(record.to_dict()) + "\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        self._persisted_count = len(records)
