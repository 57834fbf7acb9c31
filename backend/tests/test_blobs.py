"""Tests for moving inline data URLs out of message records."""
import base64

import pytest

from ychat.core.errors import ValidationError
from ychat.services.blobs import externalize


@pytest.mark.asyncio
async def test_empty_values_become_none(store):
    assert await externalize(store, None, 1024) is None
    assert await externalize(store, "", 1024) is None


@pytest.mark.asyncio
async def test_references_pass_through(store):
    assert await externalize(store, "/blobs/abc", 1024) == "/blobs/abc"
    assert await externalize(store, "https://cdn.example/a.png", 1024) == "https://cdn.example/a.png"


@pytest.mark.asyncio
async def test_base64_data_url_is_stored(store):
    payload = b"\x89PNG\r\n\x1a\n"
    data_url = "data:image/png;base64," + base64.b64encode(payload).decode()

    ref = await externalize(store, data_url, 1024)

    assert ref.startswith("/blobs/")
    blob_id = ref[len("/blobs/"):]
    assert await store.load_blob(blob_id) == ("image/png", payload)


@pytest.mark.asyncio
async def test_plain_data_url_without_media_type(store):
    ref = await externalize(store, "data:,hello", 1024)

    assert await store.load_blob(ref.split("/")[-1]) == ("application/octet-stream", b"hello")


@pytest.mark.asyncio
async def test_oversized_payload_rejected(store):
    data_url = "data:image/png;base64," + base64.b64encode(b"x" * 2048).decode()

    with pytest.raises(ValidationError):
        await externalize(store, data_url, 1024)


@pytest.mark.asyncio
async def test_malformed_data_url_rejected(store):
    with pytest.raises(ValidationError):
        await externalize(store, "data:image/png;base64,***not base64***", 1024)
    with pytest.raises(ValidationError):
        await externalize(store, "data:no-comma-here", 1024)


@pytest.mark.asyncio
async def test_plain_data_url_is_percent_decoded(store):
    ref = await externalize(store, "data:text/plain,hello%20world%21", 1024)

    assert await store.load_blob(ref.split("/")[-1]) == ("text/plain", b"hello world!")


@pytest.mark.asyncio
async def test_oversized_payload_rejected_before_decoding(store, monkeypatch):
    def must_not_decode(*args, **kwargs):
        raise AssertionError("payload was decoded")

    monkeypatch.setattr("ychat.services.blobs.base64.b64decode", must_not_decode)
    monkeypatch.setattr("ychat.services.blobs.unquote_to_bytes", must_not_decode)
    encoded = base64.b64encode(b"x" * 2048).decode()

    with pytest.raises(ValidationError, match="too large"):
        await externalize(store, "data:image/png;base64," + encoded, 1024)
    with pytest.raises(ValidationError, match="too large"):
        await externalize(store, "data:text/plain," + "x" * 4096, 1024)


@pytest.mark.asyncio
async def test_payload_at_the_limit_is_accepted(store):
    data_url = "data:application/octet-stream;base64," + base64.b64encode(b"x" * 1024).decode()

    ref = await externalize(store, data_url, 1024)

    assert await store.load_blob(ref.split("/")[-1]) == ("application/octet-stream", b"x" * 1024)
