"""
Tests for the Image Blob Store
"""

import base64
import os

import pytest

from relay import BlobStorageError, ImageBlobStore

IMAGE_BYTES = b"\x89PNG\r\n\x1a\nfake-image-bytes"
IMAGE_DATA = base64.b64encode(IMAGE_BYTES).decode()


@pytest.fixture
def blob_store(tmp_path):
    return ImageBlobStore(str(tmp_path / "uploads"), url_prefix="/uploads", max_bytes=1024)


@pytest.mark.asyncio
async def test_save_writes_blob(blob_store):
    reference = await blob_store.save(IMAGE_DATA, "holiday.PNG")

    assert reference.startswith("/uploads/")
    assert reference.endswith(".png")
    assert "holiday" not in reference
    with open(blob_store.path_for(reference), "rb") as f:
        assert f.read() == IMAGE_BYTES


@pytest.mark.asyncio
async def test_save_generates_distinct_names(blob_store):
    first = await blob_store.save(IMAGE_DATA, "pic.png")
    second = await blob_store.save(IMAGE_DATA, "pic.png")

    assert first != second
    assert len(os.listdir(blob_store.directory)) == 2


@pytest.mark.asyncio
async def test_save_accepts_data_url(blob_store):
    reference = await blob_store.save("data:image/png;base64," + IMAGE_DATA)

    assert reference.endswith(".png")


@pytest.mark.asyncio
async def test_client_path_is_not_used_for_storage(blob_store):
    reference = await blob_store.save(IMAGE_DATA, "../../etc/passwd.png")

    path = blob_store.path_for(reference)
    assert os.path.dirname(path) == blob_store.directory
    assert "passwd" not in path


@pytest.mark.asyncio
async def test_invalid_base64_raises(blob_store):
    with pytest.raises(BlobStorageError, match="not valid base64"):
        await blob_store.save("%%%not-base64%%%", "pic.png")
    assert not os.path.exists(blob_store.directory)


@pytest.mark.asyncio
async def test_oversized_blob_raises(blob_store):
    data = base64.b64encode(b"x" * 2048).decode()

    with pytest.raises(BlobStorageError, match="too large"):
        await blob_store.save(data, "big.png")


@pytest.mark.asyncio
async def test_write_failure_raises(tmp_path):
    blocker = tmp_path / "uploads"
    blocker.write_text("not a directory")
    store = ImageBlobStore(str(blocker))

    with pytest.raises(BlobStorageError, match="Failed to write"):
        await store.save(IMAGE_DATA, "pic.png")


def test_path_for_rejects_foreign_references(blob_store):
    with pytest.raises(ValueError):
        blob_store.path_for("/elsewhere/abc.png")
    with pytest.raises(ValueError):
        blob_store.path_for("/uploads/../secret")
