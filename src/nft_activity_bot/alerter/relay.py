"""Event relay: the ingestion entry point of the dispatch pipeline.

A batch of raw events flows through classification, deduplication and
rendering, and is then committed to one paced dispatch queue per adapter.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from nft_activity_bot.alerter.channels.base import LoggingChannel
from nft_activity_bot.alerter.channels.discord import DiscordChannel
from nft_activity_bot.alerter.channels.twitter import TwitterChannel
from nft_activity_bot.alerter.dispatcher import DispatchQueue
from nft_activity_bot.alerter.formatter import MessageFormatter
from nft_activity_bot.alerter.history import DedupLedger
from nft_activity_bot.alerter.routing import Route, RoutingTable, parse_channel_events, parse_event_kinds
from nft_activity_bot.events.classifier import DEFAULT_MIN_GROUP_SIZE, classify
from nft_activity_bot.opensea.media import MediaFetcher
from nft_activity_bot.opensea.names import NameResolver

if TYPE_CHECKING:
    from pydantic import SecretStr

    from nft_activity_bot.alerter.channels.base import DestinationAdapter
    from nft_activity_bot.config import Settings
    from nft_activity_bot.events.models import RawEvent

logger = logging.getLogger(__name__)

TWITTER_DESTINATION = "timeline"


@dataclass
class BatchResult:
    """Outcome of one handled batch.

    Attributes:
        groups: Groups produced by classification.
        duplicates: Groups suppressed by the dedup ledger.
        unrouted: Groups whose kind has no destination.
        failed: Groups that could not be rendered.
        enqueued: Messages committed to queues (one per destination).
    """

    groups: int = 0
    duplicates: int = 0
    unrouted: int = 0
    failed: int = 0
    enqueued: int = 0


class EventRelay:
    """Classifies, deduplicates, renders and enqueues event batches.

    Example:
        ```python
        relay = EventRelay.from_settings(get_settings())
        await relay.handle_event_batch(parse_events(payloads))
        await relay.join()
        ```
    """

    def __init__(
        self,
        routing: RoutingTable,
        formatter: MessageFormatter,
        queues: Mapping[str, DispatchQueue],
        *,
        min_group_size: int = DEFAULT_MIN_GROUP_SIZE,
        ledger: DedupLedger | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            routing: Destinations per event kind.
            formatter: Renders event groups.
            queues: Dispatch queue per adapter name.
            min_group_size: Minimum same-kind events for a sweep.
            ledger: Dedup ledger (a fresh in-memory ledger by default).
        """
        missing = {route.adapter for route in routing.routes} - set(queues)
        if missing:
            raise ValueError(f"No dispatch queue for adapter(s): {', '.join(sorted(missing))}")
        if min_group_size < 2:
            raise ValueError("min_group_size must be at least 2")

        self.routing = routing
        self.formatter = formatter
        self.queues = dict(queues)
        self.min_group_size = min_group_size
        self.ledger = ledger if ledger is not None else DedupLedger()
        self._lock = asyncio.Lock()

    async def handle_event_batch(self, events: Sequence[RawEvent]) -> BatchResult:
        """Process a batch of raw events.

        Returns once every new message is enqueued; sending happens on the
        queue workers. Re-submitting a batch enqueues nothing new.

        Args:
            events: Parsed events in arrival order.

        Returns:
            Counters for the batch.
        """
        result = BatchResult()
        if not self.routing:
            logger.warning("No destinations configured, ignoring event batch")
            return result

        groups = classify(events, self.min_group_size)
        result.groups = len(groups)

        async with self._lock:
            for group in groups:
                routes = self.routing.destinations_for(group.kind)
                if not routes:
                    result.unrouted += 1
                    continue
                if not self.ledger.should_dispatch(group.dedup_key):
                    result.duplicates += 1
                    continue

                try:
                    message = await self.formatter.render(group)
                except Exception as e:
                    result.failed += 1
                    logger.error(f"Failed to render {group.kind.value} group {group.dedup_key}: {e}")
                    continue

                for route in routes:
                    self.queues[route.adapter].enqueue(route.destination_id, message)
                    result.enqueued += 1
                self.ledger.mark_dispatched(group.dedup_key)

        logger.info(
            f"Batch of {len(events)} events: {result.groups} groups, "
            f"{result.enqueued} enqueued, {result.duplicates} duplicates, "
            f"{result.unrouted} unrouted, {result.failed} failed"
        )
        return result

    async def join(self) -> None:
        """Wait for every dispatch queue to drain."""
        await asyncio.gather(*(queue.join() for queue in self.queues.values()))

    @classmethod
    def from_settings(cls, settings: Settings, *, dry_run: bool = False) -> EventRelay:
        """Build a relay from application settings.

        Args:
            settings: Loaded settings.
            dry_run: Replace real adapters with logging-only adapters.
        """
        media_fetcher = MediaFetcher()
        name_resolver = NameResolver(
            api_key=settings.opensea.api_token.get_secret_value() if settings.opensea.api_token else None,
            base_url=settings.opensea.api_url,
        )
        formatter = MessageFormatter(
            name_resolver, media_fetcher, collection_url=settings.opensea.collection_url
        )

        adapters: dict[str, DestinationAdapter] = {}
        routes: list[Route] = []

        if settings.discord.enabled or (dry_run and settings.discord.events):
            if dry_run or settings.discord.token is None:
                adapters["discord"] = LoggingChannel("discord")
            else:
                adapters["discord"] = DiscordChannel(settings.discord.token.get_secret_value())
            routes.extend(
                Route("discord", channel_id, kinds)
                for channel_id, kinds in parse_channel_events(settings.discord.events)
            )

        twitter = settings.twitter
        if twitter.enabled or (dry_run and twitter.events):
            if dry_run or not twitter.has_credentials:
                adapters["twitter"] = LoggingChannel("twitter")
            else:
                adapters["twitter"] = TwitterChannel(
                    consumer_key=_secret(twitter.consumer_key),
                    consumer_secret=_secret(twitter.consumer_secret),
                    access_token=_secret(twitter.access_token),
                    access_token_secret=_secret(twitter.access_token_secret),
                    media_fetcher=media_fetcher,
                    prepend=twitter.prepend,
                    append=twitter.append,
                )
            routes.append(Route("twitter", TWITTER_DESTINATION, parse_event_kinds(twitter.events)))

        queues = {
            name: DispatchQueue(adapter, delay_seconds=settings.dispatch.delay_seconds)
            for name, adapter in adapters.items()
        }
        return cls(
            RoutingTable(routes),
            formatter,
            queues,
            min_group_size=settings.dispatch.min_group_size,
            ledger=DedupLedger(retention=settings.dispatch.retention),
        )


def _secret(value: SecretStr | None) -> str:
    return value.get_secret_value() if value is not None else ""
