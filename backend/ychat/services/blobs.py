# backend/ychat/services/blobs.py

from __future__ import annotations

import base64
import binascii
import re
from typing import Optional
from urllib.parse import unquote_to_bytes

from ychat.core.errors import ValidationError
from ychat.services.message_store import MessageStore

BLOB_PATH_PREFIX = "/blobs/"

_DATA_URL = re.compile(r"^data:(?P<media>[\w.+-]+/[\w.+-]+)?(?P<params>(;[^;,]*)*),(?P<data>.*)$", re.DOTALL)


def _smallest_decoded_size(data: str, is_base64: bool) -> int:
    # Lower bound on the decoded length, known before decoding anything
    if is_base64:
        return len(data) * 3 // 4 - data[-2:].count("=")
    # A percent escape ("%41") is the longest encoding of one byte
    return (len(data) + 2) // 3


async def externalize(store: MessageStore, ref: Optional[str], max_bytes: int) -> Optional[str]:
    """
    Move an inline `data:` URL into the blob store.

    Returns the reference path ("/blobs/<id>") that replaces it in message
    and member records. Anything that is not a data URL (an existing
    reference, a plain URL) is returned untouched; empty values become None.
    Oversized payloads are turned away before they are decoded.
    """
    if not ref:
        return None
    if not ref.startswith("data:"):
        return ref

    match = _DATA_URL.match(ref)
    if match is None:
        raise ValidationError("Malformed attachment")

    media_type = match.group("media") or "application/octet-stream"
    is_base64 = ";base64" in (match.group("params") or "")
    data = match.group("data")
    if _smallest_decoded_size(data, is_base64) > max_bytes:
        raise ValidationError("Attachment too large")

    try:
        if is_base64:
            payload = base64.b64decode(data, validate=True)
        else:
            payload = unquote_to_bytes(data)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("Malformed attachment") from e

    if len(payload) > max_bytes:
        raise ValidationError("Attachment too large")

    blob_id = await store.save_blob(media_type, payload)
    return f"{BLOB_PATH_PREFIX}{blob_id}"
