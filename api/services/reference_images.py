"""
Loads catalog reference images so they can be sent as material references.
"""
import asyncio
import io
import logging
import random
from pathlib import Path
from typing import Dict, Optional

import aiohttp
from PIL import Image, UnidentifiedImageError

from core.config import settings
from services.image_codec import ImagePayload

logger = logging.getLogger(__name__)


class ReferenceImageLoader:
    """Download, downscale and cache product reference images"""

    def __init__(
        self,
        max_size: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        self.max_size = max_size or settings.reference_image_max_size
        self.timeout_seconds = timeout_seconds or settings.reference_image_timeout_seconds
        self.max_retries = max_retries or settings.reference_image_max_retries
        self.session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, ImagePayload] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session"""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        return self.session

    def _prepare(self, image_bytes: bytes) -> ImagePayload:
        image = Image.open(io.BytesIO(image_bytes))
        if image.mode != "RGB":
            image = image.convert("RGB")

        # Material swatches don't need more than max_size px
        if image.width > self.max_size or image.height > self.max_size:
            image.thumbnail((self.max_size, self.max_size), Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=85, optimize=True)
        return ImagePayload(data=buffer.getvalue(), mime_type="image/jpeg")

    async def _fetch(self, image_url: str) -> Optional[bytes]:
        last_error = None

        for attempt in range(self.max_retries):
            try:
                session = await self._get_session()
                async with session.get(image_url) as response:
                    if response.status == 200:
                        return await response.read()
                    logger.warning(f"Failed to download reference image from {image_url}: {response.status}")
                    last_error = f"HTTP {response.status}"
            except asyncio.TimeoutError as e:
                logger.warning(f"Timeout downloading reference image (attempt {attempt + 1}/{self.max_retries}): {image_url}")
                last_error = str(e) or "Timeout"
            except (aiohttp.ClientError, OSError) as e:
                logger.warning(f"Network error downloading reference image (attempt {attempt + 1}/{self.max_retries}): {e}")
                last_error = str(e)

            if attempt < self.max_retries - 1:
                wait_time = (2**attempt) + (random.random() * 0.5)
                logger.info(f"Retrying reference image download in {wait_time:.1f}s...")
                await asyncio.sleep(wait_time)

        logger.error(f"Failed to download reference image after {self.max_retries} attempts: {image_url}, last error: {last_error}")
        return None

    async def load(self, location: str) -> Optional[ImagePayload]:
        """
        Reference image for a catalog location (http(s) URL or local path).
        Returns None when it cannot be loaded.
        """
        if location in self._cache:
            return self._cache[location]

        if location.startswith(("http://", "https://")):
            image_bytes = await self._fetch(location)
        else:
            path = Path(location)
            image_bytes = path.read_bytes() if path.is_file() else None
            if image_bytes is None:
                logger.error(f"Reference image not found: {location}")

        if image_bytes is None:
            return None

        try:
            payload = self._prepare(image_bytes)
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Reference image at {location} is not a valid image: {e}")
            return None

        self._cache[location] = payload
        return payload

    async def close(self):
        """Close HTTP session"""
        if self.session:
            await self.session.close()
            self.session = None
