import base64
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from flatlist.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImagePayload:
    media_type: str
    data: str  # base64


async def fetch_images(
    urls: Optional[list[str]],
    limit: Optional[int] = None,
    timeout: Optional[float] = None,
) -> list[ImagePayload]:
    """
    Download listing images for a vision call.

    Best-effort: an image that fails to download or is not an image is
    logged and skipped, so callers proceed with fewer images.
    """
    if not urls:
        return []

    limit = limit if limit is not None else settings.MAX_LISTING_IMAGES
    timeout = timeout if timeout is not None else settings.IMAGE_FETCH_TIMEOUT_SECONDS

    payloads = []
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        for url in urls[:limit]:
            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning(f"Failed to fetch image {url}: {e}")
                continue

            media_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
            if not media_type.startswith("image/"):
                logger.warning(f"Skipping non-image content at {url} ({media_type})")
                continue

            payloads.append(ImagePayload(
                media_type=media_type,
                data=base64.b64encode(response.content).decode("ascii"),
            ))

    logger.info(f"Fetched {len(payloads)}/{min(len(urls), limit)} images")
    return payloads
