"""Message formatter for marketplace event groups.

This module turns classified event groups into destination-agnostic
messages: an embed-style title with ordered fields for chat channels and a
single-line summary for the social feed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, localcontext
from typing import TYPE_CHECKING

from nft_activity_bot.alerter.models import MediaAttachment, RenderedMessage
from nft_activity_bot.events.models import (
    BidReceivedEvent,
    CancelledEvent,
    EventKind,
    Item,
    ListedEvent,
    ListingType,
    MetadataUpdatedEvent,
    OfferReceivedEvent,
    Payment,
    RawEvent,
    SoldEvent,
    TransferredEvent,
    UnrecognizedVariantError,
)
from nft_activity_bot.opensea.media import display_image_url, is_vector_image

if TYPE_CHECKING:
    from nft_activity_bot.events.classifier import EventGroup
    from nft_activity_bot.opensea.media import MediaFetcher
    from nft_activity_bot.opensea.names import NameResolver

logger = logging.getLogger(__name__)

# Embed colors (decimal values)
COLOR_LISTED = 0x1ABC9C  # Aqua
COLOR_SOLD = 0x57F287  # Green
COLOR_OFFER = 0xE91E63  # Luminous vivid pink
COLOR_BID = 0xFEE75C  # Yellow
COLOR_CANCELLED = 0xEB459E  # Fuchsia
COLOR_TRANSFERRED = 0x5296D5  # Blue
COLOR_MINTED = 0x2ECC71  # Emerald
COLOR_BURNED = 0xE74C3C  # Alizarin
COLOR_METADATA = 0xE67E22  # Orange
COLOR_SWEEP = 0x62B778

KIND_COLORS: dict[EventKind, int] = {
    EventKind.LISTED: COLOR_LISTED,
    EventKind.SOLD: COLOR_SOLD,
    EventKind.OFFER_RECEIVED: COLOR_OFFER,
    EventKind.BID_RECEIVED: COLOR_BID,
    EventKind.CANCELLED: COLOR_CANCELLED,
    EventKind.TRANSFERRED: COLOR_TRANSFERRED,
    EventKind.MINTED: COLOR_MINTED,
    EventKind.BURNED: COLOR_BURNED,
    EventKind.METADATA_UPDATED: COLOR_METADATA,
}

LISTING_TITLES: dict[ListingType, str] = {
    ListingType.AUCTION: "English auction:",
    ListingType.DUTCH: "Reverse Dutch auction:",
    ListingType.LISTING: "Listed for sale:",
}

LISTING_LABELS: dict[ListingType, str] = {
    ListingType.AUCTION: "Auction",
    ListingType.DUTCH: "Dutch auction",
    ListingType.LISTING: "Fixed price",
}

# Sweep verb and actor label per kind
SWEEP_VERBS: dict[EventKind, tuple[str, str]] = {
    EventKind.SOLD: ("purchased", "Buyer"),
    EventKind.TRANSFERRED: ("transferred", "From"),
    EventKind.MINTED: ("minted", "Minter"),
    EventKind.BURNED: ("burned", "By"),
    EventKind.LISTED: ("listed", "Lister"),
    EventKind.OFFER_RECEIVED: ("offered on", "Offerer"),
    EventKind.BID_RECEIVED: ("bid on", "Bidder"),
    EventKind.CANCELLED: ("cancelled", "By"),
    EventKind.METADATA_UPDATED: ("updated", "By"),
}

MAX_FRACTION_DIGITS = 4
TOP_ITEMS_COUNT = 4


def format_amount(payment: Payment) -> str:
    """Format a payment using its decimals, e.g. ``1.5 ETH``.

    At most four fractional digits are kept (truncated, not rounded).
    """
    amount = payment.amount
    with localcontext() as ctx:
        # Room for every whole digit plus the kept fraction
        ctx.prec = max(ctx.prec, amount.adjusted() + MAX_FRACTION_DIGITS + 2)
        value = amount.quantize(Decimal(1).scaleb(-MAX_FRACTION_DIGITS), rounding=ROUND_DOWN)
        text = f"{value.normalize():f}"
    return f"{text} {payment.symbol}".strip()


def format_usd(value: Decimal) -> str:
    """Format a USD value to two decimal places, e.g. ``$3000.00 USD``."""
    return f"${value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)} USD"


def format_price(payment: Payment) -> str:
    """Amount with its USD equivalent when a unit price is known."""
    text = format_amount(payment)
    usd = payment.usd_value
    if usd is not None:
        text += f" ({format_usd(usd)})"
    return text


def format_relative(when: datetime, now: datetime | None = None) -> str:
    """Describe a moment relative to now (``in 3 days``, ``2 hours ago``)."""
    now = now or datetime.now(UTC)
    seconds = int((when - now).total_seconds())
    future = seconds >= 0
    seconds = abs(seconds)

    for unit, size in (("year", 31536000), ("month", 2592000), ("week", 604800),
                       ("day", 86400), ("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            break
    else:
        return "just now"

    label = f"{count} {unit}{'' if count == 1 else 's'}"
    return f"in {label}" if future else f"{label} ago"


def total_payment(events: tuple[RawEvent, ...]) -> Payment | None:
    """Sum event payments that share the first payment's currency."""
    payments = [p for p in (_payment_of(e) for e in events) if p is not None]
    if not payments:
        return None
    first = payments[0]
    same = [p for p in payments if p.symbol == first.symbol and p.decimals == first.decimals]
    usd_prices = {p.usd_price for p in same}
    usd_price = first.usd_price if None not in usd_prices and len(usd_prices) == 1 else None
    return Payment(
        quantity=sum(p.quantity for p in same),
        decimals=first.decimals,
        symbol=first.symbol,
        usd_price=usd_price,
    )


def _payment_of(event: RawEvent) -> Payment | None:
    if isinstance(event, ListedEvent | SoldEvent | OfferReceivedEvent | BidReceivedEvent):
        return event.price
    return None


def _price_quantity(event: RawEvent) -> int:
    payment = _payment_of(event)
    return payment.quantity if payment is not None else 0


def _actor_of(event: RawEvent) -> str | None:
    if isinstance(event, SoldEvent):
        return event.buyer
    if isinstance(event, TransferredEvent):
        return event.to_address if event.kind is EventKind.MINTED else event.from_address
    if isinstance(event, ListedEvent | OfferReceivedEvent | BidReceivedEvent | CancelledEvent):
        return event.maker
    return None


class MessageFormatter:
    """Renders event groups into RenderedMessages.

    Address fields are resolved through the name resolver; images go
    through the media fetcher when they need rasterizing.
    """

    def __init__(
        self,
        name_resolver: NameResolver,
        media_fetcher: MediaFetcher,
        *,
        collection_url: str | None = None,
    ) -> None:
        """Initialize the formatter.

        Args:
            name_resolver: Resolves addresses to display names.
            media_fetcher: Rasterizes vector images.
            collection_url: Link used for sweep messages.
        """
        self.name_resolver = name_resolver
        self.media_fetcher = media_fetcher
        self.collection_url = collection_url

    async def render(self, group: EventGroup) -> RenderedMessage:
        """Render an event group.

        Raises:
            UnrecognizedVariantError: If the group holds an unknown event
                kind or listing type.
        """
        if group.is_sweep:
            return await self._render_sweep(group)
        return await self._render_event(group.first)

    async def _name(self, address: str | None) -> str:
        if not address:
            return "Unknown"
        try:
            return await self.name_resolver.resolve(address)
        except Exception as e:
            logger.debug(f"Name resolution failed for {address}: {e}")
            return address

    async def _image_for(self, item: Item) -> tuple[str | None, MediaAttachment | None]:
        """Pick the image for an item: remote raster URL or attached bytes."""
        if not item.image_url:
            return None, None
        if is_vector_image(item.image_url) or item.image_url.startswith("data:"):
            return None, await self.media_fetcher.rasterize(item.image_url)
        return display_image_url(item.image_url), None

    async def _describe(self, event: RawEvent) -> tuple[str, list[tuple[str, str]], str]:
        """Build (title prefix, fields, text phrase) for one event."""
        fields: list[tuple[str, str]] = []

        if isinstance(event, ListedEvent):
            title = LISTING_TITLES.get(event.listing_type)
            if title is None:
                raise UnrecognizedVariantError(f"unknown listing_type: {event.listing_type}")
            price = format_price(event.price)
            ends = format_relative(event.expiration) if event.expiration else None
            name = await self._name(event.maker)
            if event.listing_type is ListingType.LISTING:
                fields.append(("Price", price))
                if ends:
                    fields.append(("Expires", ends))
                phrase = f"listed on sale for {price} by {name}"
            else:
                fields.append(("Starting Price", price))
                if ends:
                    fields.append(("Ends", ends))
                auction = "auction" if event.listing_type is ListingType.AUCTION else "reverse Dutch auction"
                phrase = f"{auction} started for {price}"
                phrase += f", ends {ends}, by {name}" if ends else f" by {name}"
            fields.append(("By", name))
            return title, fields, phrase

        if isinstance(event, SoldEvent):
            price = format_price(event.price)
            name = await self._name(event.buyer)
            fields.append(("Price", price))
            fields.append(("By", name))
            return "Purchased:", fields, f"purchased for {price} by {name}"

        if isinstance(event, CancelledEvent):
            label = LISTING_LABELS[event.listing_type]
            return f"{label} listing cancelled:", fields, f"{label.lower()} listing cancelled"

        if isinstance(event, OfferReceivedEvent | BidReceivedEvent):
            amount = format_price(event.price)
            name = await self._name(event.maker)
            fields.append(("Amount", amount))
            fields.append(("By", name))
            if isinstance(event, OfferReceivedEvent):
                return "Offer entered:", fields, f"has a new offer for {amount} by {name}"
            return "Bid entered:", fields, f"has a new bid for {amount} by {name}"

        if isinstance(event, TransferredEvent):
            if event.kind is EventKind.MINTED:
                to_name = await self._name(event.to_address)
                fields.append(("To", to_name))
                return "Minted:", fields, f"minted by {to_name}"
            if event.kind is EventKind.BURNED:
                from_name = await self._name(event.from_address)
                fields.append(("From", from_name))
                return "Burned:", fields, f"burned by {from_name}"
            from_name = await self._name(event.from_address)
            to_name = await self._name(event.to_address)
            fields.append(("From", from_name))
            fields.append(("To", to_name))
            return "Transferred:", fields, f"transferred from {from_name} to {to_name}"

        if isinstance(event, MetadataUpdatedEvent):
            if event.description:
                fields.append(("Description", event.description))
            fields.extend((trait.trait_type, trait.value) for trait in event.traits)
            return "Metadata updated:", fields, "metadata updated"

        raise UnrecognizedVariantError(f"unknown event_type: {type(event).__name__}")

    async def _render_event(self, event: RawEvent) -> RenderedMessage:
        prefix, fields, phrase = await self._describe(event)
        if event.quantity > 1:
            fields.insert(0, ("Quantity", str(event.quantity)))

        item = event.item
        text = f"{item.display_name} {phrase}"
        if item.permalink:
            text += f" {item.permalink}"

        image_url, image = await self._image_for(item)
        return RenderedMessage(
            title=f"{prefix} {item.display_name}",
            text=text,
            fields=tuple(fields),
            color=KIND_COLORS[event.kind],
            url=item.permalink,
            image_url=image_url,
            image=image,
        )

    async def _render_sweep(self, group: EventGroup) -> RenderedMessage:
        kind = group.kind
        count = len(group.events)
        verb, actor_label = SWEEP_VERBS[kind]
        fields: list[tuple[str, str]] = []

        title = f"{count} items {verb}"
        actor = _actor_of(group.first)
        if actor:
            actor_name = await self._name(actor)
            title += f" by {actor_name}"
        total = total_payment(group.events)
        if kind is EventKind.SOLD and total is not None:
            title += f" for {format_amount(total)}"
            fields.append(("Total", format_price(total)))
        if actor:
            fields.append((actor_label, actor_name))

        # Most expensive first; stable for equal prices
        ranked = sorted(group.events, key=_price_quantity, reverse=True)
        lines = []
        for index, event in enumerate(ranked[:TOP_ITEMS_COUNT], start=1):
            label = event.item.display_name
            line = f"{index}. [{label}]({event.item.permalink})" if event.item.permalink else f"{index}. {label}"
            payment = _payment_of(event)
            if payment is not None:
                line += f" - {format_amount(payment)}"
            lines.append(line)
        fields.append(("Top Items", "\n".join(lines)))

        text = title
        if self.collection_url:
            text += f" {self.collection_url}"

        image_url, image = await self._image_for(ranked[0].item)
        return RenderedMessage(
            title=title,
            text=text,
            fields=tuple(fields),
            color=COLOR_SWEEP,
            url=self.collection_url,
            image_url=image_url,
            image=image,
        )
