# backend/ychat/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "YChat - room chat with 24h message retention",
        "version": "1.0",
        "features": ["rooms", "presence", "typing", "read_receipts", "image_messages", "passkey_rooms"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/rooms",
            "blobs": "/blobs/{blob_id}",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
