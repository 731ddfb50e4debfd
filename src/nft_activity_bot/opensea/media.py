"""Image download and SVG rasterization."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # Twitter's image upload limit
SVG_MIME_TYPE = "image/svg+xml"

_WIDTH_QUERY_PARAM = re.compile(r"w=\d*")
_FONT_FAMILY = re.compile(rb"""font-family:(?:"[^"<>]*"(?=[,;}\s])|'[^'<>]*'|[^;'"}<>])+""")

# Monospace stacks in on-chain art miss most box-drawing and math glyphs
UNICODE_FONT_STACK = b"font-family:'DejaVu Sans','Liberation Sans','Noto Sans','Arial Unicode MS',sans-serif"


@dataclass(frozen=True)
class MediaAttachment:
    """Image bytes ready for upload."""

    data: bytes
    mime_type: str

    @property
    def extension(self) -> str:
        """File extension derived from the mime type (``image/png`` -> ``png``)."""
        subtype = self.mime_type.split("/")[-1].split("+")[0]
        return "jpg" if subtype == "jpeg" else subtype


def display_image_url(url: str) -> str:
    """Request a 1000px wide rendition from the image CDN."""
    return _WIDTH_QUERY_PARAM.sub("w=1000", url)


def is_vector_image(url: str) -> bool:
    """Check whether a URL points at an SVG image."""
    path = url.split("?", 1)[0].lower()
    return path.endswith(".svg") or url.startswith("data:image/svg+xml")


def fix_svg_fonts(data: bytes) -> bytes:
    """Swap every font-family declaration for a stack with wide glyph coverage."""
    return _FONT_FAMILY.sub(UNICODE_FONT_STACK, data)


def decode_data_url(url: str) -> MediaAttachment | None:
    """Decode an inline ``data:`` image URL.

    Returns:
        The embedded image, or None if the URL is malformed.
    """
    header, sep, payload = url.partition(",")
    if not sep or not header.startswith("data:"):
        return None
    params = header[len("data:") :].split(";")
    mime_type = params[0] or "text/plain"
    try:
        if "base64" in params[1:]:
            data = base64.b64decode(payload, validate=True)
        else:
            data = unquote_to_bytes(payload)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Invalid data URL for {mime_type} image: {e}")
        return None
    return MediaAttachment(data=data, mime_type=mime_type)


def svg_to_png(data: bytes) -> bytes:
    """Rasterize SVG bytes to PNG."""
    import cairosvg

    png: bytes = cairosvg.svg2png(bytestring=fix_svg_fonts(data))
    return png


class MediaFetcher:
    """Downloads images and converts vector images to PNG.

    Every method returns None instead of raising when no image can be
    produced; a message without media is still a valid message.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        """Initialize the fetcher.

        Args:
            timeout: HTTP request timeout in seconds.
            max_bytes: Largest image accepted.
        """
        self.timeout = timeout
        self.max_bytes = max_bytes

    async def fetch(self, url: str) -> MediaAttachment | None:
        """Download an image as-is.

        Returns:
            The image with its mime type, or None on any failure.
        """
        if url.startswith("data:"):
            media = decode_data_url(url)
            if media is not None and len(media.data) > self.max_bytes:
                logger.warning(f"Inline image exceeds {self.max_bytes} bytes, skipping")
                return None
            return media

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            logger.warning(f"Image download failed for {url}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Image download failed for {url}: HTTP {response.status_code}")
            return None
        if len(response.content) > self.max_bytes:
            logger.warning(f"Image at {url} exceeds {self.max_bytes} bytes, skipping")
            return None

        content_type = response.headers.get("content-type") or "image/jpeg"
        mime_type = content_type.split(";")[0].strip()
        return MediaAttachment(data=response.content, mime_type=mime_type)

    async def rasterize(self, url: str) -> MediaAttachment | None:
        """Download a vector image and convert it to PNG.

        Returns:
            A PNG attachment, or None if the image is unavailable or the
            conversion fails.
        """
        media = await self.fetch(url)
        if media is None:
            return None
        if media.mime_type != SVG_MIME_TYPE and not is_vector_image(url):
            # Already raster despite the URL, use it directly
            return media

        try:
            png = svg_to_png(media.data)
        except Exception as e:
            logger.warning(f"SVG to PNG conversion failed for {url}: {e}")
            return None
        return MediaAttachment(data=png, mime_type="image/png")
