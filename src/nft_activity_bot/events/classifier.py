"""Event classification into dispatchable groups.

A batch of raw events is partitioned by correlation key (the transaction
hash shared by every event of one on-chain action). Inside a partition,
same-kind events at or above the minimum group size collapse into a single
sweep; everything else is dispatched one event per group.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from nft_activity_bot.events.models import EventKind, RawEvent

DEFAULT_MIN_GROUP_SIZE = 2


@dataclass(frozen=True)
class EventGroup:
    """A non-empty run of same-kind events rendered as one message.

    Attributes:
        correlation_key: Shared transaction/order identifier, if any.
        events: Member events in arrival order.
        is_sweep: True when several items moved in one transaction.
        occurrence: How many earlier singletons in the batch shared this
            event's identity (an ERC1155 item moved twice in one transaction).
    """

    correlation_key: str | None
    events: tuple[RawEvent, ...]
    is_sweep: bool = False
    occurrence: int = 0

    def __post_init__(self) -> None:
        if not self.events:
            raise ValueError("EventGroup requires at least one event")

    @property
    def kind(self) -> EventKind:
        return self.events[0].kind

    @property
    def first(self) -> RawEvent:
        return self.events[0]

    @property
    def dedup_key(self) -> str:
        """Key recorded in the dedup ledger once this group is dispatched."""
        if self.is_sweep:
            return f"sweep|{self.correlation_key}|{self.kind.value}"
        if self.occurrence:
            return f"{self.first.identity}#{self.occurrence}"
        return self.first.identity


def classify(batch: Sequence[RawEvent], min_group_size: int = DEFAULT_MIN_GROUP_SIZE) -> list[EventGroup]:
    """Group a batch of events by correlation key and detect sweeps.

    Args:
        batch: Raw events in arrival order.
        min_group_size: Minimum same-kind members for a sweep.

    Returns:
        Groups in first-seen order of correlation key, then of kind.

    Raises:
        ValueError: If min_group_size is below 2.
    """
    if min_group_size < 2:
        raise ValueError("min_group_size must be at least 2")

    # dicts keep insertion order, which gives first-seen ordering for free
    partitions: dict[str, dict[EventKind, list[RawEvent]]] = {}
    for index, event in enumerate(batch):
        if event.correlation_key:
            key = f"key:{event.correlation_key}"
        else:
            # Events without a transaction identifier never group together
            key = f"solo:{index}"
        partitions.setdefault(key, {}).setdefault(event.kind, []).append(event)

    groups: list[EventGroup] = []
    occurrences: dict[str, int] = {}
    for by_kind in partitions.values():
        for events in by_kind.values():
            correlation_key = events[0].correlation_key
            if correlation_key and len(events) >= min_group_size:
                groups.append(
                    EventGroup(
                        correlation_key=correlation_key,
                        events=tuple(events),
                        is_sweep=True,
                    )
                )
            else:
                for event in events:
                    occurrence = occurrences.get(event.identity, 0)
                    occurrences[event.identity] = occurrence + 1
                    groups.append(
                        EventGroup(correlation_key=correlation_key, events=(event,), occurrence=occurrence)
                    )
    return groups
