"""
Server-Sent Events (SSE) infrastructure.

Provides SSEEvent formatting and SSEChannel (async queue wrapper) used to
push chart frames to the browser.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel


class SSEEvent(BaseModel):
    """A single SSE message."""
    event: str
    data: Any = None
    id: Optional[str] = None

    def format(self) -> str:
        """Serialize to SSE wire format."""
        lines: list[str] = []
        if self.id:
            lines.append(f"id: {self.id}")
        lines.append(f"event: {self.event}")

        if self.data is not None:
            if isinstance(self.data, str):
                payload = self.data
            else:
                payload = json.dumps(self.data, default=str)
            for line in payload.split("\n"):
                lines.append(f"data: {line}")
        else:
            lines.append("data: {}")

        return "\n".join(lines) + "\n\n"


class SSEChannel:
    """
    Queue wrapper for streaming SSE events from one chart instance.

    Producers run synchronously inside the recompute step, so ``publish``
    never awaits; the consumer drains with ``async for``.

        channel = SSEChannel()
        channel.publish("frame", {...})     # controller
        async for event_str in channel:     # SSE endpoint
            yield event_str
    """

    def __init__(self, maxsize: int = 256) -> None:
        self._queue: asyncio.Queue[Optional[SSEEvent]] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, event: str, data: Any = None, event_id: Optional[str] = None) -> None:
        """Put an event onto the channel; ignored once closed."""
        if self._closed:
            return
        self._make_room()
        self._queue.put_nowait(SSEEvent(
            event=event,
            data=data,
            id=event_id or str(uuid.uuid4())[:8],
        ))

    def _make_room(self) -> None:
        # nobody listening: the oldest event goes first
        if self._queue.full():
            self._queue.get_nowait()

    def close(self) -> None:
        """Signal the consumer that no more events will arrive."""
        if self._closed:
            return
        self._closed = True
        self._make_room()
        self._queue.put_nowait(None)  # sentinel

    def pending(self) -> int:
        return self._queue.qsize()

    async def __aiter__(self) -> AsyncIterator[str]:
        """Yield formatted SSE strings until the channel is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event.format()


# ---------------------------------------------------------------------------
# Standard event types (constants for consistency)
# ---------------------------------------------------------------------------

EVT_CLEAR = "clear"
EVT_FRAME = "frame"
EVT_LOAD_STARTED = "load_started"
EVT_LOAD_FAILED = "load_failed"
EVT_CLOSED = "closed"
