"""OpenSea collaborators - Account names and item media."""

from nft_activity_bot.opensea.media import (
    MediaAttachment,
    MediaFetcher,
    decode_data_url,
    display_image_url,
    fix_svg_fonts,
    is_vector_image,
    svg_to_png,
)
from nft_activity_bot.opensea.names import NameResolver, short_address

__all__ = [
    "MediaAttachment",
    "MediaFetcher",
    "NameResolver",
    "decode_data_url",
    "display_image_url",
    "fix_svg_fonts",
    "is_vector_image",
    "short_address",
    "svg_to_png",
]
