"""Twitter (X) channel implementation.

Tweets are posted with OAuth 1.0a user context: images go through the v1.1
media upload endpoint and the tweet itself through the v2 API. The
``requests`` calls are blocking, so they run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import requests
from requests_oauthlib import OAuth1

from nft_activity_bot.alerter.channels.base import DeliveryFailedError

if TYPE_CHECKING:
    from nft_activity_bot.alerter.models import MediaAttachment, RenderedMessage
    from nft_activity_bot.opensea.media import MediaFetcher

logger = logging.getLogger(__name__)

MEDIA_UPLOAD_URL = "https://upload.twitter.com/1.1/media/upload.json"
TWEETS_URL = "https://api.twitter.com/2/tweets"
MAX_TWEET_LENGTH = 280


def compose_tweet(text: str, *, prepend: str = "", append: str = "") -> str:
    """Wrap message text with the configured prefix and suffix.

    Text longer than a tweet is cut from the message body, never from the
    prefix or suffix.
    """
    prefix = f"{prepend} " if prepend else ""
    suffix = f" {append}" if append else ""
    room = MAX_TWEET_LENGTH - len(prefix) - len(suffix)
    if len(text) > room:
        text = text[: max(room - 1, 0)] + "…"
    return f"{prefix}{text}{suffix}"


class TwitterChannel:
    """Posts messages as tweets on one account.

    The destination ID only labels the account in logs; every message goes
    to the authenticated user's timeline.
    """

    def __init__(
        self,
        *,
        consumer_key: str,
        consumer_secret: str,
        access_token: str,
        access_token_secret: str,
        media_fetcher: MediaFetcher | None = None,
        prepend: str = "",
        append: str = "",
        timeout: float = 20.0,
    ) -> None:
        """Initialize Twitter channel.

        Args:
            consumer_key: App API key.
            consumer_secret: App API secret.
            access_token: User access token.
            access_token_secret: User access token secret.
            media_fetcher: Downloads remote images for upload. Without it,
                only pre-rasterized images are attached.
            prepend: Text placed before every tweet.
            append: Text placed after every tweet.
            timeout: HTTP request timeout in seconds.
        """
        self.auth = OAuth1(consumer_key, consumer_secret, access_token, access_token_secret)
        self.media_fetcher = media_fetcher
        self.prepend = prepend
        self.append = append
        self.timeout = timeout
        self.name = "twitter"
        self._session = requests.Session()

    def _upload_media(self, media: MediaAttachment) -> str | None:
        files = {"media": (f"image.{media.extension}", media.data, media.mime_type)}
        try:
            response = self._session.post(
                MEDIA_UPLOAD_URL, auth=self.auth, files=files, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning(f"Twitter media upload error: {e}")
            return None
        if response.status_code != 200:
            logger.warning(f"Twitter media upload failed [{response.status_code}]: {response.text}")
            return None
        media_id: str | None = (response.json() or {}).get("media_id_string")
        return media_id

    def _post_tweet(self, destination_id: str, text: str, media_ids: list[str]) -> None:
        payload: dict[str, Any] = {"text": text}
        if media_ids:
            payload["media"] = {"media_ids": media_ids}
        try:
            response = self._session.post(
                TWEETS_URL, auth=self.auth, json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise DeliveryFailedError(self.name, destination_id, str(e)) from e

        if response.status_code == 429:
            raise DeliveryFailedError(self.name, destination_id, f"rate limited: {response.text}")
        if response.status_code not in (200, 201):
            raise DeliveryFailedError(
                self.name, destination_id, f"{response.status_code} {response.text}"
            )
        tweet_id = (response.json() or {}).get("data", {}).get("id")
        logger.debug(f"Tweet posted: {tweet_id}")

    async def _media_for(self, message: RenderedMessage) -> MediaAttachment | None:
        if message.image is not None:
            return message.image
        if message.image_url and self.media_fetcher is not None:
            return await self.media_fetcher.fetch(message.image_url)
        return None

    async def send(self, destination_id: str, message: RenderedMessage) -> None:
        """Post a message as a tweet.

        A failed image upload degrades to a text-only tweet.

        Raises:
            DeliveryFailedError: If the tweet itself is rejected.
        """
        text = compose_tweet(message.text, prepend=self.prepend, append=self.append)

        media_ids: list[str] = []
        media = await self._media_for(message)
        if media is not None:
            media_id = await asyncio.to_thread(self._upload_media, media)
            if media_id:
                media_ids.append(media_id)

        await asyncio.to_thread(self._post_tweet, destination_id, text, media_ids)
