"""Server-Sent Events stream of the caller's change notifications."""

import asyncio
import json
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from .. import config
from ..logging import get_logger
from ..models import User
from ..notifier import broker, room_for
from ..security import get_current_user

logger = get_logger(__name__)

router = APIRouter(tags=["events"])


def format_event(event: str, data) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@router.get("/events")
async def stream_events(request: Request, user: User = Depends(get_current_user)):
    room = room_for(user.id)
    user_id = user.id

    async def event_generator():
        queue = await broker.connect(room)
        try:
            yield format_event("connected", {"userId": user_id, "room": room})

            while True:
                if await request.is_disconnected():
                    break

                try:
                    message = await asyncio.wait_for(queue.get(), timeout=config.SSE_HEARTBEAT_SECONDS)
                except asyncio.TimeoutError:
                    yield format_event("heartbeat", {"timestamp": datetime.now(timezone.utc).isoformat()})
                    continue

                yield format_event(message["type"], message["data"])
        finally:
            broker.disconnect(room, queue)
            logger.info(f"Event stream closed for user {user_id}")

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
