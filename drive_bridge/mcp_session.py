"""Per-connection SSE stream with an owned keepalive task."""
import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Optional

from sse_starlette.sse import ServerSentEvent

logger = logging.getLogger(__name__)


@dataclass
class SessionStream:
    """One long-lived streaming connection.

    The keepalive task is created when ``frames()`` starts iterating and is
    cancelled when the generator closes, so every timer started for a
    connection is torn down with it.
    """
    keepalive_interval: float = 25.0
    token: Optional[str] = None
    stream_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    opened_at: datetime = field(default_factory=datetime.now)
    closed: bool = False
    keepalive_task: Optional[asyncio.Task] = None
    _queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    _event_id: int = 0

    def send(self, data: Any, event: Optional[str] = None) -> None:
        """Queue an event; dicts and lists are JSON-encoded."""
        if self.closed:
            return
        if not isinstance(data, str):
            data = json.dumps(data)
        self._event_id += 1
        self._queue.put_nowait(ServerSentEvent(data=data, event=event, id=str(self._event_id)))

    def send_comment(self, comment: str) -> None:
        """Queue a comment-only frame."""
        if self.closed:
            return
        self._queue.put_nowait(ServerSentEvent(comment=comment))

    def pending(self) -> int:
        """Number of frames queued but not yet written."""
        return self._queue.qsize()

    async def _keepalive_loop(self):
        while True:
            await asyncio.sleep(self.keepalive_interval)
            self.send_comment(f"keepalive {int(time.time())}")

    async def frames(self) -> AsyncGenerator[bytes, None]:
        """Yield encoded SSE frames until the connection goes away."""
        self.keepalive_task = asyncio.create_task(self._keepalive_loop())
        logger.info(f"SSE stream opened: {self.stream_id}")
        try:
            while True:
                event = await self._queue.get()
                yield event.encode()
        finally:
            self.close()

    def close(self) -> None:
        """Cancel the keepalive task and drop anything still queued."""
        if self.closed:
            return
        self.closed = True
        if self.keepalive_task is not None:
            self.keepalive_task.cancel()
        while not self._queue.empty():
            self._queue.get_nowait()
        logger.info(f"SSE stream closed: {self.stream_id}")
