"""Event layer - Typed marketplace events and batch classification."""

from nft_activity_bot.events.classifier import EventGroup, classify
from nft_activity_bot.events.models import (
    BURN_ADDRESSES,
    NULL_ADDRESS,
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
    Trait,
    TransferredEvent,
    UnrecognizedVariantError,
    parse_event,
    parse_events,
)

__all__ = [
    # Classifier
    "EventGroup",
    "classify",
    # Models
    "BURN_ADDRESSES",
    "NULL_ADDRESS",
    "BidReceivedEvent",
    "CancelledEvent",
    "EventKind",
    "Item",
    "ListedEvent",
    "ListingType",
    "MetadataUpdatedEvent",
    "OfferReceivedEvent",
    "Payment",
    "RawEvent",
    "SoldEvent",
    "Trait",
    "TransferredEvent",
    "UnrecognizedVariantError",
    "parse_event",
    "parse_events",
]
