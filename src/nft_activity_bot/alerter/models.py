"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass

from nft_activity_bot.opensea.media import MediaAttachment


@dataclass(frozen=True)
class RenderedMessage:
    """A destination-agnostic message ready for delivery.

    Attributes:
        title: Short headline (embed title).
        text: Single-line summary for text-only destinations.
        fields: Ordered (name, value) pairs.
        color: Embed color as an integer RGB value.
        url: Link the title points to.
        image_url: Remote raster image to display, if any.
        image: Rasterized image bytes, if the source image was vector.
    """

    title: str
    text: str
    fields: tuple[tuple[str, str], ...] = ()
    color: int = 0
    url: str | None = None
    image_url: str | None = None
    image: MediaAttachment | None = None

    @property
    def has_media(self) -> bool:
        return self.image is not None or self.image_url is not None


@dataclass(frozen=True)
class QueueItem:
    """A message waiting in a dispatch queue."""

    destination_id: str
    message: RenderedMessage
    sequence: int
