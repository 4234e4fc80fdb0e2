"""
Template image URLs.

Telegram fetches photos by URL, so relative upload paths must be turned
into absolute HTTPS URLs before sending.
"""

from typing import Optional
from urllib.parse import urljoin, urlparse

from tradecast.core.logging_config import get_logger

logger = get_logger("media")

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "0.0.0.0"}


def usable_base_url(base_url: Optional[str]) -> Optional[str]:
    """The base URL if it is HTTPS and publicly reachable, else None."""
    if not base_url:
        return None
    parsed = urlparse(base_url)
    if parsed.scheme != "https":
        logger.warning("Skipping non-HTTPS base URL", base_url=base_url)
        return None
    if not parsed.hostname or parsed.hostname in _LOCAL_HOSTS:
        logger.warning("Skipping local base URL", base_url=base_url)
        return None
    return base_url


def resolve_image_url(image_url: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """
    Absolute URL for a template image, or None when it cannot be served.

    Args:
        image_url: URL or path stored on the template
        base_url: Public base URL of the upload host

    Returns:
        Absolute URL, or None if the image should be skipped
    """
    if not image_url or not image_url.strip():
        return None

    image_url = image_url.strip()
    parsed = urlparse(image_url)
    if parsed.scheme in ("http", "https"):
        return image_url if parsed.netloc else None

    base = usable_base_url(base_url)
    if base is None:
        logger.warning("Cannot absolutize relative image URL", image_url=image_url)
        return None

    return urljoin(base.rstrip("/") + "/", image_url.lstrip("/"))
