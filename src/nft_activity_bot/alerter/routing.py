"""Destination routing table.

Routing is configured per adapter as a list of event selectors. A selector
is either a canonical event kind (``sold``), a marketplace stream name
(``item_sold``) or one of the aliases in ``EVENT_ALIASES``. Aliases are the
only place where one configured name expands into several kinds.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from nft_activity_bot.events.models import EVENT_TYPE_NAMES, EventKind

EVENT_ALIASES: dict[str, frozenset[EventKind]] = {
    "listing": frozenset({EventKind.LISTED}),
    "sale": frozenset({EventKind.SOLD}),
    # Offers and bids are both "someone wants to buy" notifications
    "offer": frozenset({EventKind.OFFER_RECEIVED, EventKind.BID_RECEIVED}),
    # Mints and burns are transfers too, so "transfer" keeps receiving them
    "transfer": frozenset({EventKind.TRANSFERRED, EventKind.MINTED, EventKind.BURNED}),
    "mint": frozenset({EventKind.MINTED}),
    "burn": frozenset({EventKind.BURNED}),
    "cancel": frozenset({EventKind.CANCELLED}),
    "metadata": frozenset({EventKind.METADATA_UPDATED}),
}

KIND_VALUES = frozenset(kind.value for kind in EventKind)


def expand_selector(selector: str) -> frozenset[EventKind]:
    """Expand one configured event selector into event kinds.

    Raises:
        ValueError: If the selector names no known kind or alias.
    """
    name = selector.strip().lower()
    if name in EVENT_ALIASES:
        return EVENT_ALIASES[name]
    if name in EVENT_TYPE_NAMES:
        return frozenset({EVENT_TYPE_NAMES[name]})
    if name in KIND_VALUES:
        return frozenset({EventKind(name)})
    allowed = sorted({*EVENT_ALIASES, *(k.value for k in EventKind)})
    raise ValueError(f"Invalid event value: {selector!r}. Allowed: {', '.join(allowed)}")


def parse_event_kinds(raw: str | None) -> frozenset[EventKind]:
    """Parse a comma separated selector list (``sale,offer``)."""
    kinds: set[EventKind] = set()
    for part in (raw or "").split(","):
        if part.strip():
            kinds |= expand_selector(part)
    return frozenset(kinds)


def parse_channel_events(raw: str | None) -> list[tuple[str, frozenset[EventKind]]]:
    """Parse ``channelId=kinds&channelId=kinds`` into (channel, kinds) pairs.

    Raises:
        ValueError: On a malformed entry or an unknown selector.
    """
    channels: list[tuple[str, frozenset[EventKind]]] = []
    for entry in (raw or "").split("&"):
        entry = entry.strip()
        if not entry:
            continue
        channel_id, sep, selectors = entry.partition("=")
        if not sep or not channel_id.strip():
            raise ValueError(f"Invalid channel entry {entry!r}, expected channelId=events")
        kinds = parse_event_kinds(selectors)
        if not kinds:
            raise ValueError(f"Channel {channel_id.strip()} has no events configured")
        channels.append((channel_id.strip(), kinds))
    return channels


@dataclass(frozen=True)
class Route:
    """One destination and the event kinds it receives."""

    adapter: str
    destination_id: str
    kinds: frozenset[EventKind]

    def accepts(self, kind: EventKind) -> bool:
        return kind in self.kinds


class RoutingTable:
    """Ordered set of routes across all adapters."""

    def __init__(self, routes: Iterable[Route] = ()) -> None:
        self._routes = tuple(routes)

    def __bool__(self) -> bool:
        return bool(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._routes

    @property
    def kinds(self) -> frozenset[EventKind]:
        """Every event kind routed to at least one destination."""
        return frozenset(kind for route in self._routes for kind in route.kinds)

    def destinations_for(self, kind: EventKind) -> list[Route]:
        """Routes accepting ``kind``, in configuration order."""
        return [route for route in self._routes if route.accepts(kind)]

    def describe(self) -> list[str]:
        """Human-readable routing summary, one line per route."""
        return [
            f"{route.adapter}:{route.destination_id} <- "
            + ", ".join(sorted(kind.value for kind in route.kinds))
            for route in self._routes
        ]
