"""
SSE (Server-Sent Events) Routes

Endpoints:
    GET /api/v1/sse/notifications — the user-visible notification stream

Event format (one per line-pair):
    data: {"type": "notification", "data": {"title", "message", "buttons"}, "timestamp": "..."}\n\n

Keepalive comment (every sse_keepalive_interval seconds while idle):
    : keepalive\n\n
"""

import asyncio
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from consent_wallet.config import settings
from consent_wallet.dependencies import get_broadcaster
from consent_wallet.services.sse_manager import NotificationBroadcaster

router = APIRouter(tags=["Server-Sent Events"])
logger = logging.getLogger(__name__)


async def _event_stream(request: Request, broadcaster: NotificationBroadcaster, replay: int = 0):
    """Yield SSE-formatted strings until the client disconnects.

    ``replay`` re-sends that many recent notifications after the handshake.
    """
    queue = await broadcaster.subscribe()
    try:
        connected_payload = json.dumps(
            {
                "type": "connected",
                "data": {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
        yield f"data: {connected_payload}\n\n"

        if replay:
            for event in broadcaster.recent(replay):
                yield f"data: {json.dumps(event)}\n\n"

        while True:
            if await request.is_disconnected():
                logger.debug("SSE client disconnected")
                break

            try:
                event = await asyncio.wait_for(queue.get(), timeout=float(settings.sse_keepalive_interval))
                yield f"data: {json.dumps(event)}\n\n"
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"

    finally:
        await broadcaster.unsubscribe(queue)


@router.get("/sse/notifications")
async def sse_notifications(
    request: Request,
    replay: int = Query(0, ge=0, le=20),
    broadcaster: NotificationBroadcaster = Depends(get_broadcaster),
) -> StreamingResponse:
    """
    Notification stream for the wallet popup.

    ```javascript
    const evtSrc = new EventSource('/api/v1/sse/notifications?replay=5');
    evtSrc.onmessage = (e) => {
        const event = JSON.parse(e.data);
        if (event.type === 'notification') showNotification(event.data);
    };
    ```
    """
    return StreamingResponse(
        _event_stream(request, broadcaster, replay=replay),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
