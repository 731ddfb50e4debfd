"""Paced dispatch queue for a single destination adapter."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from nft_activity_bot.alerter.models import QueueItem

if TYPE_CHECKING:
    from nft_activity_bot.alerter.channels.base import DestinationAdapter
    from nft_activity_bot.alerter.models import RenderedMessage

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 3.0


class QueueState(str, Enum):
    """State of the queue worker."""

    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class QueueStats:
    """Counters for a dispatch queue."""

    enqueued: int = 0
    sent: int = 0
    failed: int = 0


class DispatchQueue:
    """FIFO queue drained by one worker with a fixed delay between sends.

    Items are attempted exactly once, in enqueue order. A failed send is
    logged and dropped; the worker moves on to the next item after the
    usual delay.

    Example:
        ```python
        queue = DispatchQueue(DiscordChannel(bot_token="..."), delay_seconds=3.0)
        queue.enqueue("123456789", message)
        await queue.join()
        ```
    """

    def __init__(
        self,
        adapter: DestinationAdapter,
        *,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        name: str | None = None,
    ) -> None:
        """Initialize the queue.

        Args:
            adapter: Destination adapter used to send items.
            delay_seconds: Pause after each send while items remain.
            name: Queue name for logging (defaults to the adapter name).
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self.adapter = adapter
        self.delay_seconds = delay_seconds
        self.name = name or adapter.name

        self._items: deque[QueueItem] = deque()
        self._sequence = 0
        self._state = QueueState.IDLE
        self._stats = QueueStats()
        self._worker: asyncio.Task[None] | None = None
        self._last_attempt_at: float | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def state(self) -> QueueState:
        """Current worker state."""
        return self._state

    @property
    def stats(self) -> QueueStats:
        """Queue counters."""
        return self._stats

    def size(self) -> int:
        """Number of items waiting to be sent."""
        return len(self._items)

    def enqueue(self, destination_id: str, message: RenderedMessage) -> QueueItem:
        """Add a message to the queue and start the worker if idle.

        Must be called from within a running event loop.

        Returns:
            The queued item.
        """
        self._sequence += 1
        item = QueueItem(destination_id=destination_id, message=message, sequence=self._sequence)
        self._items.append(item)
        self._stats.enqueued += 1

        if self._state is QueueState.IDLE:
            self._state = QueueState.DRAINING
            self._idle.clear()
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(), name=f"dispatch-{self.name}"
            )
            logger.debug(f"[{self.name}] Worker started ({len(self._items)} items)")
        return item

    async def join(self) -> None:
        """Wait until every queued item has been attempted."""
        await self._idle.wait()

    async def _send(self, item: QueueItem) -> None:
        try:
            await self.adapter.send(item.destination_id, item.message)
        except Exception as e:
            self._stats.failed += 1
            logger.error(
                f"[{self.name}] Send #{item.sequence} to {item.destination_id} failed "
                f"({item.message.title}): {e}"
            )
            return
        self._stats.sent += 1
        logger.info(f"[{self.name}] Sent #{item.sequence} to {item.destination_id}: {item.message.title}")

    async def _drain(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            # A burst arriving right after the previous drain still honours the delay
            if self._last_attempt_at is not None:
                remaining = self.delay_seconds - (loop.time() - self._last_attempt_at)
                if remaining > 0:
                    await asyncio.sleep(remaining)

            while self._items:
                item = self._items.popleft()
                await self._send(item)
                self._last_attempt_at = loop.time()
                if self._items:
                    await asyncio.sleep(self.delay_seconds)
        finally:
            self._state = QueueState.IDLE
            self._worker = None
            self._idle.set()
            logger.debug(f"[{self.name}] Queue drained")
