# backend/ychat/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ychat.core.state import ChatState, get_chat_state

router = APIRouter()


@router.get("/metrics")
async def get_metrics(chat: ChatState = Depends(get_chat_state)):
    """
    Usage metrics for this process.

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 5.2,
            "messages_per_second": 0.06,
            "daily_messages_projected": 5538,
            "concurrent_connections": 14,
            "total_rooms": 3,
            "active_rooms_with_members": 2
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - chat.app_start_time).total_seconds()
    total_messages = chat.service.message_counter

    if uptime_seconds > 0:
        messages_per_second = total_messages / uptime_seconds
        daily_messages = int(messages_per_second * 86400)
    else:
        messages_per_second = 0
        daily_messages = 0

    return {
        # Statistics
        "total_messages": total_messages,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),
        "daily_messages_projected": daily_messages,

        # Capacity
        "concurrent_connections": len(chat.connection_manager.connections),
        "total_rooms": len(chat.room_manager.rooms),
        "active_rooms_with_members": len(chat.connection_manager.rooms),
    }
