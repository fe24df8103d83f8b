from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from datetime import datetime, timezone

Event = dict[str, str]


class LogStream:
    def __init__(self, backlog: int = 50) -> None:
        self._subscribers: set[asyncio.Queue[Event]] = set()
        self._recent: deque[Event] = deque(maxlen=backlog)
        self._lock = asyncio.Lock()

    def recent(self) -> list[Event]:
        return list(self._recent)

    async def subscribe(self, replay: bool = False) -> AsyncIterator[Event]:
        queue: asyncio.Queue[Event] = asyncio.Queue()
        async with self._lock:
            if replay:
                for event in self._recent:
                    queue.put_nowait(event)
            self._subscribers.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            async with self._lock:
                self._subscribers.discard(queue)

    async def publish(self, message: str, level: str = "info") -> None:
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "message": message,
        }
        async with self._lock:
            self._recent.append(event)
            subscribers = list(self._subscribers)
        for queue in subscribers:
            queue.put_nowait(event)
