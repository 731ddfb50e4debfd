"""Data models for marketplace events.

Every marketplace event kind has its own frozen dataclass carrying exactly
the fields that kind defines. ``RawEvent`` is the union of those classes, so
consumers dispatch on the concrete type instead of probing a loosely shaped
payload dictionary.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, TypeAlias

logger = logging.getLogger(__name__)


class UnrecognizedVariantError(ValueError):
    """Raised for an unknown event kind or listing type."""


class EventKind(str, Enum):
    """Marketplace lifecycle event kinds."""

    LISTED = "listed"
    SOLD = "sold"
    CANCELLED = "cancelled"
    OFFER_RECEIVED = "offer_received"
    BID_RECEIVED = "bid_received"
    TRANSFERRED = "transferred"
    MINTED = "minted"
    BURNED = "burned"
    METADATA_UPDATED = "metadata_updated"


class ListingType(str, Enum):
    """Listing sub-kinds."""

    AUCTION = "auction"
    DUTCH = "dutch"
    LISTING = "listing"


# Marketplace stream names and short names accepted for each kind
EVENT_TYPE_NAMES: dict[str, EventKind] = {
    "item_listed": EventKind.LISTED,
    "listed": EventKind.LISTED,
    "item_sold": EventKind.SOLD,
    "sold": EventKind.SOLD,
    "sale": EventKind.SOLD,
    "item_cancelled": EventKind.CANCELLED,
    "cancelled": EventKind.CANCELLED,
    "cancel": EventKind.CANCELLED,
    "item_received_offer": EventKind.OFFER_RECEIVED,
    "offer_received": EventKind.OFFER_RECEIVED,
    "item_received_bid": EventKind.BID_RECEIVED,
    "bid_received": EventKind.BID_RECEIVED,
    "item_transferred": EventKind.TRANSFERRED,
    "transferred": EventKind.TRANSFERRED,
    "transfer": EventKind.TRANSFERRED,
    "item_metadata_updated": EventKind.METADATA_UPDATED,
    "metadata_updated": EventKind.METADATA_UPDATED,
}

LISTING_TYPE_NAMES: dict[str, ListingType] = {
    "english": ListingType.AUCTION,
    "auction": ListingType.AUCTION,
    "dutch": ListingType.DUTCH,
    "listing": ListingType.LISTING,
    "fixed": ListingType.LISTING,
}

NULL_ADDRESS = "0x0000000000000000000000000000000000000000"
DEAD_ADDRESS = "0x000000000000000000000000000000000000dead"
NULL_ONE_ADDRESS = "0x0000000000000000000000000000000000000001"

# Receiving any of these takes a token out of circulation
BURN_ADDRESSES = frozenset({NULL_ADDRESS, DEAD_ADDRESS, NULL_ONE_ADDRESS})


@dataclass(frozen=True)
class Payment:
    """A payment amount in the asset's base units.

    Attributes:
        quantity: Amount in base units (e.g. wei).
        decimals: Decimal precision declared by the payment asset.
        symbol: Asset ticker, e.g. ``ETH``.
        usd_price: USD price of one whole unit, if known.
    """

    quantity: int
    decimals: int
    symbol: str
    usd_price: Decimal | None = None

    @property
    def amount(self) -> Decimal:
        """Amount in whole units, exact at any size."""
        sign, digits, exponent = Decimal(self.quantity).as_tuple()
        return Decimal((sign, digits, int(exponent) - self.decimals))

    @property
    def usd_value(self) -> Decimal | None:
        """USD equivalent of the amount, or None without a unit price."""
        if self.usd_price is None:
            return None
        return self.amount * self.usd_price

    @classmethod
    def from_dict(cls, data: dict[str, Any], quantity: Any) -> Payment:
        """Create a Payment from a payment token dict and a base-unit quantity."""
        usd_price = data.get("usd_price")
        return cls(
            quantity=int(Decimal(str(quantity))),
            decimals=int(data.get("decimals", 18)),
            symbol=str(data.get("symbol", "")),
            usd_price=_parse_decimal(usd_price),
        )


@dataclass(frozen=True)
class Item:
    """The NFT an event refers to."""

    identifier: str
    name: str | None = None
    image_url: str | None = None
    permalink: str | None = None

    @property
    def display_name(self) -> str:
        """Item name, or ``#<identifier>`` when the item has no name."""
        return self.name or f"#{self.identifier}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Item:
        """Create an Item from a stream ``item`` or REST ``nft`` dict."""
        metadata = data.get("metadata") or {}
        identifier = data.get("identifier")
        if identifier is None:
            # Stream payloads use "<chain>/<contract>/<token id>"
            identifier = str(data.get("nft_id", "")).rstrip("/").split("/")[-1]
        return cls(
            identifier=str(identifier),
            name=metadata.get("name") or data.get("name") or None,
            image_url=metadata.get("image_url") or data.get("image_url") or None,
            permalink=data.get("permalink") or data.get("opensea_url") or None,
        )


@dataclass(frozen=True)
class Trait:
    """A single metadata trait."""

    trait_type: str
    value: str


@dataclass(frozen=True, kw_only=True)
class _BaseEvent:
    """Fields shared by every event kind."""

    kind: ClassVar[EventKind]

    correlation_key: str | None
    timestamp: datetime
    item: Item
    quantity: int = 1

    @property
    def identity(self) -> str:
        """Stable identity for this single event.

        Keyed events are identified by transaction, kind and item alone, so
        a re-delivered payload without its timestamp still matches.
        """
        parts = [self.kind.value, self.correlation_key or "", self.item.identifier]
        if not self.correlation_key:
            parts.append(self.timestamp.isoformat())
        return "|".join(parts)


@dataclass(frozen=True, kw_only=True)
class ListedEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.LISTED

    listing_type: ListingType
    maker: str
    price: Payment
    expiration: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class SoldEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.SOLD

    buyer: str
    price: Payment
    seller: str | None = None


@dataclass(frozen=True, kw_only=True)
class CancelledEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.CANCELLED

    listing_type: ListingType
    maker: str | None = None


@dataclass(frozen=True, kw_only=True)
class OfferReceivedEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.OFFER_RECEIVED

    maker: str
    price: Payment
    expiration: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class BidReceivedEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.BID_RECEIVED

    maker: str
    price: Payment
    expiration: datetime | None = None


@dataclass(frozen=True, kw_only=True)
class TransferredEvent(_BaseEvent):
    """A token moving between accounts.

    Moves out of the null address are mints and moves into a burn address
    are burns; both report their own kind so they route and group apart
    from ordinary transfers.
    """

    from_address: str
    to_address: str

    @property
    def kind(self) -> EventKind:  # type: ignore[override]
        if self.from_address.lower() == NULL_ADDRESS:
            return EventKind.MINTED
        if self.to_address.lower() in BURN_ADDRESSES:
            return EventKind.BURNED
        return EventKind.TRANSFERRED


@dataclass(frozen=True, kw_only=True)
class MetadataUpdatedEvent(_BaseEvent):
    kind: ClassVar[EventKind] = EventKind.METADATA_UPDATED

    description: str | None = None
    traits: tuple[Trait, ...] = field(default_factory=tuple)


RawEvent: TypeAlias = (
    ListedEvent
    | SoldEvent
    | CancelledEvent
    | OfferReceivedEvent
    | BidReceivedEvent
    | TransferredEvent
    | MetadataUpdatedEvent
)


def _parse_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or unix timestamp into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _address(value: Any) -> str | None:
    """Accounts arrive either as a bare address or as ``{"address": ...}``."""
    if isinstance(value, dict):
        value = value.get("address")
    return str(value) if value else None


def _correlation_key(data: dict[str, Any]) -> str | None:
    transaction = data.get("transaction")
    if isinstance(transaction, dict):
        transaction = transaction.get("hash")
    key = (
        transaction
        or data.get("transaction_hash")
        or data.get("tx_hash")
        or data.get("order_hash")
    )
    return str(key) if key else None


def _payment(data: dict[str, Any], price_field: str) -> Payment:
    payment = data.get("payment")
    if isinstance(payment, dict):
        return Payment.from_dict(payment, payment.get("quantity", 0))
    return Payment.from_dict(data.get("payment_token") or {}, data.get(price_field, 0))


def _listing_type(value: Any) -> ListingType:
    if value is None or value == "":
        return ListingType.LISTING
    listing_type = LISTING_TYPE_NAMES.get(str(value).lower())
    if listing_type is None:
        raise UnrecognizedVariantError(f"unknown listing_type: {value}")
    return listing_type


def parse_event(data: dict[str, Any]) -> RawEvent:
    """Parse a marketplace event payload into its typed event.

    Accepts both the stream envelope (``{"event_type": ..., "payload": {...}}``)
    and flat payloads carrying ``event_type`` alongside the event fields.

    Raises:
        UnrecognizedVariantError: For an unknown event type or listing type.
    """
    raw_type = str(data.get("event_type", ""))
    kind = EVENT_TYPE_NAMES.get(raw_type.lower())
    if kind is None:
        raise UnrecognizedVariantError(f"unknown event_type: {raw_type}")

    payload: dict[str, Any] = data.get("payload") or data
    common: dict[str, Any] = {
        "correlation_key": _correlation_key(payload),
        "timestamp": _parse_datetime(payload.get("event_timestamp"))
        or _parse_datetime(data.get("sent_at"))
        or datetime.now(UTC),
        "item": Item.from_dict(payload.get("item") or payload.get("nft") or payload.get("asset") or {}),
        "quantity": int(payload.get("quantity") or 1),
    }

    if kind is EventKind.LISTED:
        return ListedEvent(
            **common,
            listing_type=_listing_type(payload.get("listing_type") or payload.get("order_type")),
            maker=_address(payload.get("maker")) or "",
            price=_payment(payload, "base_price"),
            expiration=_parse_datetime(payload.get("expiration_date")),
        )
    if kind is EventKind.SOLD:
        return SoldEvent(
            **common,
            buyer=_address(payload.get("taker") or payload.get("buyer")) or "",
            seller=_address(payload.get("maker") or payload.get("seller")),
            price=_payment(payload, "sale_price"),
        )
    if kind is EventKind.CANCELLED:
        return CancelledEvent(
            **common,
            listing_type=_listing_type(payload.get("listing_type")),
            maker=_address(payload.get("maker")),
        )
    if kind is EventKind.OFFER_RECEIVED:
        return OfferReceivedEvent(
            **common,
            maker=_address(payload.get("maker")) or "",
            price=_payment(payload, "base_price"),
            expiration=_parse_datetime(payload.get("expiration_date")),
        )
    if kind is EventKind.BID_RECEIVED:
        return BidReceivedEvent(
            **common,
            maker=_address(payload.get("maker")) or "",
            price=_payment(payload, "base_price"),
            expiration=_parse_datetime(payload.get("expiration_date")),
        )
    if kind is EventKind.TRANSFERRED:
        return TransferredEvent(
            **common,
            from_address=_address(payload.get("from_account") or payload.get("from_address")) or "",
            to_address=_address(payload.get("to_account") or payload.get("to_address")) or "",
        )
    traits = tuple(
        Trait(trait_type=str(t.get("trait_type", "")), value=str(t.get("value", "")))
        for t in payload.get("traits") or []
    )
    return MetadataUpdatedEvent(
        **common,
        description=payload.get("description") or None,
        traits=traits,
    )


def parse_events(payloads: Iterable[dict[str, Any]]) -> list[RawEvent]:
    """Parse a batch of payloads, skipping the ones that cannot be parsed."""
    events: list[RawEvent] = []
    for payload in payloads:
        try:
            events.append(parse_event(payload))
        except UnrecognizedVariantError as e:
            logger.warning(f"Skipping event: {e}")
        except (AttributeError, KeyError, TypeError, ValueError, InvalidOperation) as e:
            logger.warning(f"Skipping malformed event payload: {e}")
    return events
