# backend/ychat/api/routes/blobs.py

from fastapi import APIRouter, Depends, HTTPException, Response

from ychat.core.errors import NotFoundError, PersistenceError
from ychat.core.state import ChatState, get_chat_state

router = APIRouter()


@router.get("/blobs/{blob_id}")
async def get_blob(blob_id: str, chat: ChatState = Depends(get_chat_state)):
    """
    Serve an avatar or image attachment by reference.

    Message and member records carry "/blobs/<id>" instead of the inline
    data; this resolves it back to bytes with the original media type.
    """
    try:
        media_type, data = await chat.store.load_blob(blob_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Attachment not found")
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)

    return Response(content=data, media_type=media_type)
