"""Destination adapter protocol shared by all channels."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from nft_activity_bot.alerter.models import RenderedMessage

logger = logging.getLogger(__name__)


class DeliveryFailedError(Exception):
    """Raised when a destination rejects a message."""

    def __init__(self, channel: str, destination_id: str, reason: str) -> None:
        super().__init__(f"{channel} delivery to {destination_id} failed: {reason}")
        self.channel = channel
        self.destination_id = destination_id
        self.reason = reason


class DestinationAdapter(Protocol):
    """Protocol for message delivery channels."""

    name: str

    async def send(self, destination_id: str, message: RenderedMessage) -> None:
        """Send a message to a destination. Raises DeliveryFailedError on failure."""
        ...


class LoggingChannel:
    """Adapter that only logs messages, used for dry runs."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.sent: list[tuple[str, RenderedMessage]] = []

    async def send(self, destination_id: str, message: RenderedMessage) -> None:
        logger.info(f"[dry-run] {self.name} -> {destination_id}: {message.text}")
        self.sent.append((destination_id, message))
