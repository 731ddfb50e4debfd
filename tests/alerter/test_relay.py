"""Tests for the event relay pipeline."""

import asyncio
import os
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nft_activity_bot.alerter.channels.base import LoggingChannel
from nft_activity_bot.alerter.channels.discord import DiscordChannel
from nft_activity_bot.alerter.dispatcher import DispatchQueue
from nft_activity_bot.alerter.formatter import MessageFormatter
from nft_activity_bot.alerter.history import DedupLedger
from nft_activity_bot.alerter.models import RenderedMessage
from nft_activity_bot.alerter.relay import EventRelay
from nft_activity_bot.alerter.routing import Route, RoutingTable
from nft_activity_bot.config import Settings
from nft_activity_bot.events.models import NULL_ADDRESS, EventKind, Item, Payment, SoldEvent, TransferredEvent

ALICE = "0x38a16c7eb3f0d7c1e5b4a2f6d8e9c0b1a2fc7eb3"
BOB = "0x1111111111111111111111111111111111111111"
TIMESTAMP = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
ALL_KINDS = frozenset(EventKind)

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def adapter() -> LoggingChannel:
    """Create a recording adapter."""
    return LoggingChannel("discord")


@pytest.fixture
def formatter() -> MessageFormatter:
    """Create a formatter with mocked collaborators."""
    resolver = MagicMock()
    resolver.resolve = AsyncMock(side_effect=lambda address: {ALICE: "alice"}.get(address, address))
    fetcher = MagicMock()
    fetcher.rasterize = AsyncMock(return_value=None)
    return MessageFormatter(resolver, fetcher)


def make_relay(
    adapter: LoggingChannel,
    formatter: MessageFormatter,
    kinds: frozenset[EventKind] = ALL_KINDS,
    min_group_size: int = 2,
) -> EventRelay:
    routing = RoutingTable([Route("discord", "123", kinds)])
    queues = {"discord": DispatchQueue(adapter, delay_seconds=0)}
    return EventRelay(routing, formatter, queues, min_group_size=min_group_size)


def make_sale(token_id: str = "1", key: str = "0xtx") -> SoldEvent:
    return SoldEvent(
        correlation_key=key,
        timestamp=TIMESTAMP,
        item=Item(identifier=token_id, name=f"Cool Cat #{token_id}"),
        buyer=ALICE,
        price=Payment(
            quantity=1_500_000_000_000_000_000,
            decimals=18,
            symbol="ETH",
            usd_price=Decimal("2000"),
        ),
    )


def make_transfer(token_id: str, key: str = "0xtx") -> TransferredEvent:
    return TransferredEvent(
        correlation_key=key,
        timestamp=TIMESTAMP,
        item=Item(identifier=token_id),
        from_address=ALICE,
        to_address=BOB,
    )


# ============================================================================
# EventRelay Tests
# ============================================================================


class TestHandleEventBatch:
    """Tests for EventRelay.handle_event_batch."""

    @pytest.mark.asyncio
    async def test_sale_sent_once_across_submissions(
        self, adapter: LoggingChannel, formatter: MessageFormatter
    ) -> None:
        """Test the same sale submitted three times is sent once."""
        relay = make_relay(adapter, formatter)
        batch = [make_sale()]

        for _ in range(3):
            await relay.handle_event_batch(batch)
        await relay.join()

        assert len(adapter.sent) == 1
        destination, message = adapter.sent[0]
        assert destination == "123"
        assert "purchased for 1.5 ETH" in message.text
        assert "$3000.00 USD" in message.text

    @pytest.mark.asyncio
    async def test_duplicates_counted(self, adapter: LoggingChannel, formatter: MessageFormatter) -> None:
        """Test a resubmitted batch reports duplicates and enqueues nothing."""
        relay = make_relay(adapter, formatter)

        first = await relay.handle_event_batch([make_sale()])
        second = await relay.handle_event_batch([make_sale()])
        await relay.join()

        assert first.enqueued == 1
        assert second.enqueued == 0
        assert second.duplicates == 1

    @pytest.mark.asyncio
    async def test_sweep_is_one_message(self, adapter: LoggingChannel, formatter: MessageFormatter) -> None:
        """Test K same-key transfers at the minimum become one sweep message."""
        relay = make_relay(adapter, formatter, min_group_size=3)

        await relay.handle_event_batch([make_transfer(str(i)) for i in range(4)])
        await relay.join()

        assert len(adapter.sent) == 1
        assert adapter.sent[0][1].title.startswith("4 items")

    @pytest.mark.asyncio
    async def test_below_minimum_sends_each(self, adapter: LoggingChannel, formatter: MessageFormatter) -> None:
        """Test K transfers below the minimum produce K messages."""
        relay = make_relay(adapter, formatter, min_group_size=3)

        await relay.handle_event_batch([make_transfer("1"), make_transfer("2")])
        await relay.join()

        assert len(adapter.sent) == 2

    @pytest.mark.asyncio
    async def test_mixed_kinds_one_message_per_kind(
        self, adapter: LoggingChannel, formatter: MessageFormatter
    ) -> None:
        """Test sold and transferred events under one key yield two messages."""
        relay = make_relay(adapter, formatter)
        batch = [make_sale("1"), make_transfer("1"), make_sale("2"), make_transfer("2")]

        await relay.handle_event_batch(batch)
        await relay.join()

        titles = [message.title for _, message in adapter.sent]
        assert titles == ["2 items purchased by alice for 3 ETH", "2 items transferred by alice"]

    @pytest.mark.asyncio
    async def test_empty_routing_is_noop(self, formatter: MessageFormatter) -> None:
        """Test batches are ignored when no destination is configured."""
        ledger = DedupLedger()
        relay = EventRelay(RoutingTable(), formatter, {}, ledger=ledger)

        result = await relay.handle_event_batch([make_sale()])

        assert result.enqueued == 0
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_unrouted_kind_not_marked(self, adapter: LoggingChannel, formatter: MessageFormatter) -> None:
        """Test groups without a route are skipped and not recorded."""
        relay = make_relay(adapter, formatter, kinds=frozenset({EventKind.LISTED}))

        result = await relay.handle_event_batch([make_sale()])
        await relay.join()

        assert result.unrouted == 1
        assert adapter.sent == []
        assert len(relay.ledger) == 0

    @pytest.mark.asyncio
    async def test_render_failure_isolated(self, adapter: LoggingChannel) -> None:
        """Test a render error skips only its own group."""
        formatter = MagicMock()
        formatter.render = AsyncMock(
            side_effect=[RuntimeError("bad image"), RenderedMessage(title="ok", text="ok")]
        )
        relay = make_relay(adapter, formatter)

        result = await relay.handle_event_batch([make_sale("1", key="0xa"), make_sale("2", key="0xb")])
        await relay.join()

        assert result.failed == 1
        assert [message.title for _, message in adapter.sent] == ["ok"]
        # The failed group can be retried by a later submission
        assert len(relay.ledger) == 1

    @pytest.mark.asyncio
    async def test_fan_out_to_all_destinations(self, formatter: MessageFormatter) -> None:
        """Test one group is enqueued to every matching destination."""
        discord = LoggingChannel("discord")
        twitter = LoggingChannel("twitter")
        routing = RoutingTable(
            [
                Route("discord", "123", ALL_KINDS),
                Route("discord", "456", frozenset({EventKind.SOLD})),
                Route("twitter", "timeline", frozenset({EventKind.SOLD})),
            ]
        )
        queues = {
            "discord": DispatchQueue(discord, delay_seconds=0),
            "twitter": DispatchQueue(twitter, delay_seconds=0),
        }
        relay = EventRelay(routing, formatter, queues)

        await relay.handle_event_batch([make_sale()])
        await relay.join()

        assert [destination for destination, _ in discord.sent] == ["123", "456"]
        assert [destination for destination, _ in twitter.sent] == ["timeline"]

    @pytest.mark.asyncio
    async def test_concurrent_submissions_send_once(
        self, adapter: LoggingChannel, formatter: MessageFormatter
    ) -> None:
        """Test overlapping submissions of one batch dispatch it once."""
        relay = make_relay(adapter, formatter)
        render = formatter.render

        async def yielding_render(group):
            await asyncio.sleep(0)
            return await render(group)

        formatter.render = yielding_render  # type: ignore[method-assign]
        batch = [make_sale()]

        results = await asyncio.gather(relay.handle_event_batch(batch), relay.handle_event_batch(batch))
        await relay.join()

        assert len(adapter.sent) == 1
        assert sorted(result.enqueued for result in results) == [0, 1]
        assert sorted(result.duplicates for result in results) == [0, 1]

    @pytest.mark.asyncio
    async def test_mint_routed_apart_from_transfers(
        self, adapter: LoggingChannel, formatter: MessageFormatter
    ) -> None:
        """Test a mint-only destination receives mints but not transfers."""
        relay = make_relay(adapter, formatter, kinds=frozenset({EventKind.MINTED}))
        mint = TransferredEvent(
            correlation_key="0xmint",
            timestamp=TIMESTAMP,
            item=Item(identifier="7"),
            from_address=NULL_ADDRESS,
            to_address=ALICE,
        )

        result = await relay.handle_event_batch([mint, make_transfer("1")])
        await relay.join()

        assert result.unrouted == 1
        assert len(adapter.sent) == 1
        assert adapter.sent[0][1].title == "Minted: #7"

    @pytest.mark.asyncio
    async def test_repeated_item_in_transaction_sent_each_time(
        self, adapter: LoggingChannel, formatter: MessageFormatter
    ) -> None:
        """Test two moves of one item in a transaction are both sent, once."""
        relay = make_relay(adapter, formatter, min_group_size=3)
        batch = [make_transfer("1"), make_transfer("1")]

        first = await relay.handle_event_batch(batch)
        second = await relay.handle_event_batch(batch)
        await relay.join()

        assert first.enqueued == 2
        assert second.duplicates == 2
        assert len(adapter.sent) == 2


class TestEventRelayInit:
    """Tests for relay construction."""

    def test_missing_queue_rejected(self, formatter: MessageFormatter) -> None:
        """Test every routed adapter needs a queue."""
        routing = RoutingTable([Route("twitter", "timeline", ALL_KINDS)])
        with pytest.raises(ValueError, match="twitter"):
            EventRelay(routing, formatter, {})

    def test_small_group_size_rejected(self, formatter: MessageFormatter) -> None:
        """Test a minimum group size below 2 is rejected."""
        with pytest.raises(ValueError):
            EventRelay(RoutingTable(), formatter, {}, min_group_size=1)


class TestFromSettings:
    """Tests for EventRelay.from_settings."""

    def test_builds_discord_route(self) -> None:
        """Test Discord routes and adapter come from settings."""
        env = {"DISCORD_TOKEN": "token", "DISCORD_EVENTS": "123=sale&456=listing"}
        with patch.dict(os.environ, env, clear=True):
            relay = EventRelay.from_settings(Settings(_env_file=None))

        assert [r.destination_id for r in relay.routing.routes] == ["123", "456"]
        assert isinstance(relay.queues["discord"].adapter, DiscordChannel)
        assert relay.queues["discord"].delay_seconds == 3.0

    def test_dry_run_uses_logging_channels(self) -> None:
        """Test dry runs swap real adapters for logging ones."""
        env = {
            "DISCORD_TOKEN": "token",
            "DISCORD_EVENTS": "123=sale",
            "TWITTER_EVENTS": "sale",
            "INTER_MESSAGE_DELAY_MS": "500",
        }
        with patch.dict(os.environ, env, clear=True):
            relay = EventRelay.from_settings(Settings(_env_file=None), dry_run=True)

        assert isinstance(relay.queues["discord"].adapter, LoggingChannel)
        assert isinstance(relay.queues["twitter"].adapter, LoggingChannel)
        assert relay.queues["twitter"].delay_seconds == 0.5

    def test_no_destinations(self) -> None:
        """Test an unconfigured environment yields an empty routing table."""
        with patch.dict(os.environ, {}, clear=True):
            relay = EventRelay.from_settings(Settings(_env_file=None))

        assert not relay.routing
        assert relay.queues == {}
