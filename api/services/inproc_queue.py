"""In-process FIFO that runs one dashboard generation at a time.

The local model serves a single request well and several badly, so every
caller goes through this queue. It is per-process and holds nothing once a
task finishes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class GenerationQueue:
    def __init__(self) -> None:
        self._lock: Optional[asyncio.Lock] = None
        self.pending = 0

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the queue can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def submit(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Run ``factory()`` after every earlier submission has settled.

        ``asyncio.Lock`` wakes waiters in arrival order, which gives FIFO.
        The task's own result or exception is returned to its caller only.
        """

        self.pending += 1
        logger.debug("generation_queue_submitted", extra={"pending": self.pending})
        try:
            async with self._get_lock():
                return await factory()
        finally:
            self.pending -= 1
