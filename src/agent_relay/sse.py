from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger

_CLOSED = object()


def format_sse_event(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class SSESubscriber:
    """Broadcaster subscriber that buffers Server-Sent Events frames for one HTTP response."""

    def __init__(self, subscriber_id: str):
        self._id = subscriber_id
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False
        self._last_activity_time = time.monotonic()

    @property
    def id(self) -> str:
        return self._id

    @property
    def last_activity_time(self) -> float:
        return self._last_activity_time

    def send(self, event: str, data: Any) -> None:
        if self._closed:
            logger.warning(f"Attempted to send to closed SSE client {self._id}")
            return
        self._queue.put_nowait(format_sse_event(event, data))
        self._last_activity_time = time.monotonic()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        logger.debug(f"SSE client {self._id} closed")

    def is_closed(self) -> bool:
        return self._closed

    async def frames(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
