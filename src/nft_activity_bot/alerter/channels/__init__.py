"""Destination adapters for chat and social platforms."""

from nft_activity_bot.alerter.channels.base import (
    DeliveryFailedError,
    DestinationAdapter,
    LoggingChannel,
)
from nft_activity_bot.alerter.channels.discord import DiscordChannel
from nft_activity_bot.alerter.channels.twitter import TwitterChannel

__all__ = [
    "DeliveryFailedError",
    "DestinationAdapter",
    "DiscordChannel",
    "LoggingChannel",
    "TwitterChannel",
]
