import asyncio
import logging
from typing import Any, List

from starlette.websockets import WebSocket

logger = logging.getLogger("app.pubsub")

# events queued for a slow SSE client before it starts losing them
QUEUE_MAXSIZE = 100


class LiveFeed:
    """In-memory pub/sub for the live order/table feed.

    SSE clients get an asyncio.Queue each, WebSocket clients are pushed to
    directly. One instance lives on the application context.
    """

    def __init__(self, queue_maxsize: int = QUEUE_MAXSIZE):
        self.queue_maxsize = queue_maxsize
        self.subscribers: List[asyncio.Queue] = []
        self.websockets: List[WebSocket] = []

    def register_queue(self) -> asyncio.Queue:
        q = asyncio.Queue(maxsize=self.queue_maxsize)
        self.subscribers.append(q)
        return q

    def unregister_queue(self, q: asyncio.Queue) -> None:
        try:
            self.subscribers.remove(q)
        except ValueError:
            pass

    def register_ws(self, ws: WebSocket) -> None:
        self.websockets.append(ws)

    def unregister_ws(self, ws: WebSocket) -> None:
        try:
            self.websockets.remove(ws)
        except ValueError:
            pass

    async def publish(self, event: Any) -> None:
        kind = event.get("type") if isinstance(event, dict) else type(event).__name__
        logger.debug("publish event: %s (sse=%d ws=%d)", kind, len(self.subscribers), len(self.websockets))

        for q in list(self.subscribers):
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("SSE subscriber queue full; dropping %s", kind)

        for ws in list(self.websockets):
            try:
                await ws.send_json(event)
            except Exception as exc:
                # a dead socket is removed; the remaining clients still get the event
                logger.info("Dropping websocket client after send failure: %s", exc)
                self.unregister_ws(ws)

    def status(self) -> dict:
        """Number of connected SSE queues and WebSocket clients."""
        return {"sse_queues": len(self.subscribers), "websockets": len(self.websockets)}

    def close(self) -> None:
        self.subscribers.clear()
        self.websockets.clear()
