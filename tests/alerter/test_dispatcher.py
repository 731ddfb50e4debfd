"""Tests for the paced dispatch queue."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from nft_activity_bot.alerter.channels.base import DeliveryFailedError
from nft_activity_bot.alerter.dispatcher import DispatchQueue, QueueState
from nft_activity_bot.alerter.models import RenderedMessage

DELAY = 0.05

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def mock_adapter() -> MagicMock:
    """Create a mock destination adapter."""
    adapter = MagicMock()
    adapter.name = "discord"
    adapter.send = AsyncMock(return_value=None)
    return adapter


def make_message(n: int) -> RenderedMessage:
    return RenderedMessage(title=f"Message {n}", text=f"text {n}")


# ============================================================================
# DispatchQueue Tests
# ============================================================================


class TestDispatchQueue:
    """Tests for DispatchQueue."""

    def test_init(self, mock_adapter: MagicMock) -> None:
        """Test queue initialization."""
        queue = DispatchQueue(mock_adapter, delay_seconds=3.0)

        assert queue.name == "discord"
        assert queue.delay_seconds == 3.0
        assert queue.state is QueueState.IDLE
        assert queue.size() == 0

    def test_negative_delay_rejected(self, mock_adapter: MagicMock) -> None:
        """Test a negative delay is rejected."""
        with pytest.raises(ValueError):
            DispatchQueue(mock_adapter, delay_seconds=-1)

    @pytest.mark.asyncio
    async def test_sends_in_fifo_order(self, mock_adapter: MagicMock) -> None:
        """Test items are sent in enqueue order."""
        queue = DispatchQueue(mock_adapter, delay_seconds=0)
        for n in range(3):
            queue.enqueue("chan", make_message(n))

        await queue.join()

        titles = [call.args[1].title for call in mock_adapter.send.call_args_list]
        assert titles == ["Message 0", "Message 1", "Message 2"]
        assert queue.stats.sent == 3
        assert queue.state is QueueState.IDLE

    @pytest.mark.asyncio
    async def test_enqueue_returns_sequenced_items(self, mock_adapter: MagicMock) -> None:
        """Test enqueue assigns increasing sequence numbers."""
        queue = DispatchQueue(mock_adapter, delay_seconds=0)

        first = queue.enqueue("chan", make_message(1))
        second = queue.enqueue("chan", make_message(2))
        await queue.join()

        assert first.sequence < second.sequence
        assert first.destination_id == "chan"

    @pytest.mark.asyncio
    async def test_pacing_between_sends(self, mock_adapter: MagicMock) -> None:
        """Test M messages take at least (M-1) * delay."""
        loop = asyncio.get_running_loop()
        send_times: list[float] = []
        mock_adapter.send.side_effect = lambda *_: send_times.append(loop.time())

        queue = DispatchQueue(mock_adapter, delay_seconds=DELAY)
        start = loop.time()
        for n in range(4):
            queue.enqueue("chan", make_message(n))
        await queue.join()

        assert loop.time() - start >= 3 * DELAY * 0.95
        gaps = [b - a for a, b in zip(send_times, send_times[1:], strict=False)]
        assert all(gap >= DELAY * 0.95 for gap in gaps)

    @pytest.mark.asyncio
    async def test_no_delay_after_last_item(self, mock_adapter: MagicMock) -> None:
        """Test the worker goes idle right after the final send."""
        loop = asyncio.get_running_loop()
        queue = DispatchQueue(mock_adapter, delay_seconds=1.0)

        start = loop.time()
        queue.enqueue("chan", make_message(1))
        await queue.join()

        assert loop.time() - start < 0.5

    @pytest.mark.asyncio
    async def test_pacing_holds_across_drains(self, mock_adapter: MagicMock) -> None:
        """Test a burst right after a drain still waits out the delay."""
        loop = asyncio.get_running_loop()
        send_times: list[float] = []
        mock_adapter.send.side_effect = lambda *_: send_times.append(loop.time())
        queue = DispatchQueue(mock_adapter, delay_seconds=DELAY)

        queue.enqueue("chan", make_message(1))
        await queue.join()
        queue.enqueue("chan", make_message(2))
        await queue.join()

        assert send_times[1] - send_times[0] >= DELAY * 0.95

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_queue(self, mock_adapter: MagicMock) -> None:
        """Test a failing send is dropped and later items still go out."""
        mock_adapter.send.side_effect = [
            DeliveryFailedError("discord", "chan", "500 Internal Server Error"),
            None,
            None,
        ]
        queue = DispatchQueue(mock_adapter, delay_seconds=0)
        for n in range(3):
            queue.enqueue("chan", make_message(n))

        await queue.join()

        assert mock_adapter.send.call_count == 3
        assert queue.stats.failed == 1
        assert queue.stats.sent == 2

    @pytest.mark.asyncio
    async def test_failed_item_not_retried(self, mock_adapter: MagicMock) -> None:
        """Test a failed item is attempted exactly once."""
        mock_adapter.send.side_effect = RuntimeError("boom")
        queue = DispatchQueue(mock_adapter, delay_seconds=0)

        queue.enqueue("chan", make_message(1))
        await queue.join()

        assert mock_adapter.send.call_count == 1
        assert queue.size() == 0

    @pytest.mark.asyncio
    async def test_join_when_idle(self, mock_adapter: MagicMock) -> None:
        """Test join returns immediately on an empty queue."""
        queue = DispatchQueue(mock_adapter, delay_seconds=DELAY)
        await asyncio.wait_for(queue.join(), timeout=1.0)
