"""RadioState - fan-out bridge between the catalog/engines and WebSocket clients."""
import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)


class RadioState:
    def __init__(self):
        self._subscribers: dict[str, asyncio.Queue] = {}

    def subscribe(self, client_id: str) -> asyncio.Queue:
        """Register a new client. Returns a queue that receives (event, data) tuples."""
        q: asyncio.Queue = asyncio.Queue(maxsize=50)
        self._subscribers[client_id] = q
        return q

    def unsubscribe(self, client_id: str):
        self._subscribers.pop(client_id, None)

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    def push(self, client_id: str, event: str, data: Any) -> bool:
        """Queue an event for one client. Returns False if the client was dropped."""
        q = self._subscribers.get(client_id)
        if q is None:
            return False
        try:
            q.put_nowait((event, data))
        except asyncio.QueueFull:
            # Client too slow: drop oldest
            try:
                q.get_nowait()
                q.put_nowait((event, data))
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                logger.warning("Dropping unresponsive client %s", client_id)
                self._subscribers.pop(client_id, None)
                return False
        return True

    async def broadcast(self, event: str, data: Any):
        """Push an event to all connected clients."""
        for cid in list(self._subscribers):
            self.push(cid, event, data)
