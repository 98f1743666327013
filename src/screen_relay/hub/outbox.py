"""
Connection Outbox
=================

Bounded per-connection send queue.

Each connection (hub side and client side) owns one Outbox drained by a
dedicated writer task. Fan-out only ever enqueues, so one slow peer
cannot stall delivery to the others.

Design Rules:
    - Fixed maximum size (drops oldest on overflow)
    - put_nowait() never blocks and never raises
    - Messages are opaque text; the outbox does not inspect them
"""

import asyncio
import logging
from typing import Optional


logger = logging.getLogger(__name__)


class Outbox:
    """
    Drop-oldest bounded queue of outbound text messages.

    Attributes:
        maxsize: Maximum number of queued messages
        dropped_count: Messages discarded because the queue was full

    Example:
        outbox = Outbox(maxsize=32)

        # Producer (synchronous)
        outbox.put_nowait(text)

        # Writer task
        text = await outbox.get()
        await websocket.send_text(text)
    """

    def __init__(self, maxsize: int = 32, name: str = "") -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._name = name
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0
        self._total_put: int = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped_count

    @property
    def total_put(self) -> int:
        return self._total_put

    def put_nowait(self, message: str) -> bool:
        """
        Enqueue a message, dropping the oldest if full.

        Returns:
            True if nothing was dropped to make room.
        """
        self._total_put += 1
        dropped = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
                dropped = True
                if self._dropped_count == 1 or self._dropped_count % 100 == 0:
                    logger.warning(
                        f"Outbox {self._name} full, dropped oldest message. "
                        f"Total dropped: {self._dropped_count}"
                    )
            except asyncio.QueueEmpty:
                pass

        self._queue.put_nowait(message)
        return not dropped

    async def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Wait for the next message.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next message, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[str]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def clear(self) -> int:
        """Discard everything queued. Returns the number discarded."""
        cleared = 0
        while self.get_nowait() is not None:
            cleared += 1
        return cleared

    def metrics(self) -> dict:
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "dropped_count": self._dropped_count,
            "total_put": self._total_put,
        }
