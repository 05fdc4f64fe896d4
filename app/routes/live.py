from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from starlette.responses import StreamingResponse
import json
import asyncio

from app.core.context import get_context
from app.utils.pubsub import LiveFeed

router = APIRouter(prefix="/live", tags=["Live"])

# seconds between keep-alive comments on an idle SSE stream
KEEPALIVE_SECONDS = 15


async def event_generator(request: Request, feed: LiveFeed):
    q = feed.register_queue()
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(q.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield f"data: {json.dumps(event, default=str)}\n\n"
    finally:
        feed.unregister_queue(q)


@router.get("/stream")
def stream(request: Request, ctx=Depends(get_context)):
    """Server-sent events with every order, table and stock change."""
    return StreamingResponse(event_generator(request, ctx.live), media_type="text/event-stream")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    feed = websocket.app.state.context.live
    await websocket.accept()
    feed.register_ws(websocket)
    try:
        # incoming messages are ignored; the socket only receives events
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        feed.unregister_ws(websocket)


@router.get("/status")
def status(ctx=Depends(get_context)):
    return ctx.live.status()
