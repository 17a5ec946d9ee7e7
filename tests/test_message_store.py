"""
Tests for the Message Store

Tests for the durable message log: loading, appending, room-filtered
history, compaction and write failures.
"""

import asyncio
import json
import os

import pytest

from relay import MessageRecord, MessageStore, PersistenceError


def make_record(message_id, room="lobby", content="hello", sender="alice"):
    return MessageRecord(
        id=message_id,
        room=room,
        kind="text",
        content=content,
        sender=sender,
        timestamp="2025-11-23T10:30:15+00:00",
    )


def read_lines(path):
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def test_load_creates_empty_log(tmp_path):
    """Test that loading without a log file creates one."""
    path = tmp_path / "nested" / "messages.jsonl"
    store = MessageStore(str(path))

    store.load_on_startup()

    assert path.exists()
    assert len(store) == 0
    assert store.history("lobby") == []


def test_record_round_trips_through_dict():
    record = MessageRecord(
        id="1",
        room="lobby",
        kind="image",
        content="[image] pic.png",
        sender="alice",
        timestamp="t1",
        image_ref="/uploads/abc.png",
        sender_profile={"avatar": "a.png"},
    )

    data = record.to_dict()

    assert data["imageRef"] == "/uploads/abc.png"
    assert data["senderProfile"] == {"avatar": "a.png"}
    assert MessageRecord.from_dict(data) == record


@pytest.mark.asyncio
async def test_append_persists_in_order(tmp_path):
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path))
    store.load_on_startup()

    await store.append(make_record("1"))
    await store.append(make_record("2", room="garden"))
    await store.append(make_record("3"))

    assert [line["id"] for line in read_lines(path)] == ["1", "2", "3"]

    reloaded = MessageStore(str(path))
    reloaded.load_on_startup()
    assert [r.id for r in reloaded.history("lobby")] == ["1", "3"]
    assert [r.id for r in reloaded.history("garden")] == ["2"]
    assert reloaded.rooms() == ["lobby", "garden"]


@pytest.mark.asyncio
async def test_history_does_not_mutate(tmp_path):
    store = MessageStore(str(tmp_path / "messages.jsonl"))
    store.load_on_startup()
    await store.append(make_record("1"))

    first = store.history("lobby")
    first.clear()

    assert [r.id for r in store.history("lobby")] == ["1"]


@pytest.mark.asyncio
async def test_compaction_rewrites_full_log(tmp_path):
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path), compact_every=2)
    store.load_on_startup()

    for i in range(5):
        await store.append(make_record(str(i)))

    assert [line["id"] for line in read_lines(path)] == ["0", "1", "2", "3", "4"]
    assert list(tmp_path.glob("*.tmp")) == []


def test_unreadable_lines_are_skipped_and_compacted(tmp_path):
    path = tmp_path / "messages.jsonl"
    good = json.dumps(make_record("1").to_dict())
    path.write_text(good + "\n{broken\n" + json.dumps({"id": "x"}) + "\n", encoding="utf-8")

    store = MessageStore(str(path))
    store.load_on_startup()

    assert [r.id for r in store.history("lobby")] == ["1"]
    assert [line["id"] for line in read_lines(path)] == ["1"]


@pytest.mark.asyncio
async def test_failed_write_is_retried_on_next_append(tmp_path):
    """Test that a record kept in memory after a failed write is persisted later."""
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path))
    store.load_on_startup()

    store.path = str(tmp_path / "missing" / "messages.jsonl")
    with pytest.raises(PersistenceError):
        await store.append(make_record("1"))
    assert len(store) == 1

    store.path = str(path)
    await store.append(make_record("2"))

    assert [line["id"] for line in read_lines(path)] == ["1", "2"]


@pytest.mark.asyncio
async def test_failed_fsync_does_not_duplicate_records(tmp_path, monkeypatch):
    """Test that lines left behind by a failed write are not written twice."""
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path))
    store.load_on_startup()

    real_fsync = os.fsync
    calls = {"count": 0}

    def failing_once(fd):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OSError(28, "No space left on device")
        return real_fsync(fd)

    monkeypatch.setattr(os, "fsync", failing_once)

    with pytest.raises(PersistenceError):
        await store.append(make_record("1"))
    await store.append(make_record("2"))

    assert [line["id"] for line in read_lines(path)] == ["1", "2"]
    reloaded = MessageStore(str(path))
    reloaded.load_on_startup()
    assert [r.id for r in reloaded.history("lobby")] == ["1", "2"]


@pytest.mark.asyncio
async def test_partial_line_is_discarded_by_next_write(tmp_path):
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path))
    store.load_on_startup()
    await store.append(make_record("1"))

    store.path = str(tmp_path / "missing" / "messages.jsonl")
    with pytest.raises(PersistenceError):
        await store.append(make_record("2"))
    with open(path, "a", encoding="utf-8") as f:
        f.write('{"id": "2", "room": "lo')

    store.path = str(path)
    await store.append(make_record("3"))

    reloaded = MessageStore(str(path))
    reloaded.load_on_startup()
    assert [r.id for r in reloaded.history("lobby")] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_concurrent_appends_keep_acceptance_order(tmp_path):
    """Test that overlapping appends across compactions land in order."""
    path = tmp_path / "messages.jsonl"
    store = MessageStore(str(path), compact_every=2)
    store.load_on_startup()

    ids = [str(i) for i in range(9)]
    await asyncio.gather(*(store.append(make_record(i)) for i in ids))

    assert [r.id for r in store.history("lobby")] == ids
    assert [line["id"] for line in read_lines(path)] == ids

    reloaded = MessageStore(str(path))
    reloaded.load_on_startup()
    assert [r.id for r in reloaded.history("lobby")] == ids
