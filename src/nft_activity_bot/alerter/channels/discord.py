"""Discord bot channel implementation."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from nft_activity_bot.alerter.channels.base import DeliveryFailedError

if TYPE_CHECKING:
    from nft_activity_bot.alerter.models import RenderedMessage

logger = logging.getLogger(__name__)

DISCORD_API_URL = "https://discord.com/api/v10"

# Discord embed limits
MAX_TITLE_LENGTH = 256
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_FIELDS = 25


def _truncate(value: str, limit: int) -> str:
    return value if len(value) <= limit else value[: limit - 1] + "…"


def build_embed(message: RenderedMessage) -> dict[str, Any]:
    """Build a Discord embed from a rendered message.

    Args:
        message: Message to convert.

    Returns:
        Embed dictionary for the ``embeds`` array.
    """
    embed: dict[str, Any] = {
        "title": _truncate(message.title, MAX_TITLE_LENGTH),
        "color": message.color,
        "fields": [
            {
                "name": _truncate(name, MAX_FIELD_NAME_LENGTH),
                "value": _truncate(value or "-", MAX_FIELD_VALUE_LENGTH),
                "inline": "\n" not in value,
            }
            for name, value in message.fields[:MAX_FIELDS]
        ],
    }
    if message.url:
        embed["url"] = message.url
    if message.image is not None:
        embed["image"] = {"url": f"attachment://image.{message.image.extension}"}
    elif message.image_url:
        embed["image"] = {"url": message.image_url}
    return embed


class DiscordChannel:
    """Discord channel posting embeds through the bot API.

    Each send is a single attempt; pacing and failure handling belong to
    the dispatch queue.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        api_url: str = DISCORD_API_URL,
        timeout: float = 10.0,
    ) -> None:
        """Initialize Discord channel.

        Args:
            bot_token: Discord bot token.
            api_url: Discord REST API base URL.
            timeout: HTTP request timeout in seconds.
        """
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.name = "discord"

    async def send(self, destination_id: str, message: RenderedMessage) -> None:
        """Post a message to a Discord channel.

        Args:
            destination_id: Discord channel ID.
            message: Rendered message.

        Raises:
            DeliveryFailedError: If Discord rejects the message or the
                request fails.
        """
        url = f"{self.api_url}/channels/{destination_id}/messages"
        headers = {"Authorization": f"Bot {self.bot_token}"}
        payload = {"embeds": [build_embed(message)]}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                if message.image is not None:
                    filename = f"image.{message.image.extension}"
                    response = await client.post(
                        url,
                        headers=headers,
                        data={"payload_json": json.dumps(payload)},
                        files={"files[0]": (filename, message.image.data, message.image.mime_type)},
                    )
                else:
                    response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise DeliveryFailedError(self.name, destination_id, str(e)) from e

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after", "?")
            raise DeliveryFailedError(
                self.name, destination_id, f"rate limited (retry after {retry_after}s)"
            )
        if response.status_code not in (200, 201):
            raise DeliveryFailedError(
                self.name, destination_id, f"{response.status_code} {response.text}"
            )
        logger.debug(f"Discord message delivered to {destination_id}")
