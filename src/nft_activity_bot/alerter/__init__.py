"""Alerting layer - Rendering, deduplication and paced delivery."""

from nft_activity_bot.alerter.channels.base import (
    DeliveryFailedError,
    DestinationAdapter,
    LoggingChannel,
)
from nft_activity_bot.alerter.channels.discord import DiscordChannel
from nft_activity_bot.alerter.channels.twitter import TwitterChannel
from nft_activity_bot.alerter.dispatcher import DispatchQueue, QueueState, QueueStats
from nft_activity_bot.alerter.formatter import MessageFormatter
from nft_activity_bot.alerter.history import DedupLedger
from nft_activity_bot.alerter.models import QueueItem, RenderedMessage
from nft_activity_bot.alerter.relay import BatchResult, EventRelay
from nft_activity_bot.alerter.routing import Route, RoutingTable

__all__ = [
    "BatchResult",
    "DedupLedger",
    "DeliveryFailedError",
    "DestinationAdapter",
    "DiscordChannel",
    "DispatchQueue",
    "EventRelay",
    "LoggingChannel",
    "MessageFormatter",
    "QueueItem",
    "QueueState",
    "QueueStats",
    "RenderedMessage",
    "Route",
    "RoutingTable",
    "TwitterChannel",
]
