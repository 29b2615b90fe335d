"""
Tests for the catalog reference image loader.
"""
import io
from unittest.mock import AsyncMock, patch

import pytest
from PIL import Image

from services.reference_images import ReferenceImageLoader


@pytest.fixture
def loader():
    return ReferenceImageLoader(max_size=32, timeout_seconds=1, max_retries=2)


class TestLoad:
    @pytest.mark.asyncio
    async def test_local_file_is_downscaled_to_jpeg(self, loader, tmp_path, png_factory):
        path = tmp_path / "swatch.png"
        path.write_bytes(png_factory(size=(128, 64), color="red"))

        payload = await loader.load(str(path))

        assert payload.mime_type == "image/jpeg"
        with Image.open(io.BytesIO(payload.data)) as image:
            assert image.size == (32, 16)

    @pytest.mark.asyncio
    async def test_missing_file_returns_none(self, loader, tmp_path):
        assert await loader.load(str(tmp_path / "missing.jpg")) is None

    @pytest.mark.asyncio
    async def test_invalid_image_returns_none(self, loader, tmp_path):
        path = tmp_path / "broken.jpg"
        path.write_bytes(b"not an image")
        assert await loader.load(str(path)) is None

    @pytest.mark.asyncio
    async def test_urls_are_downloaded_once(self, loader, png_factory):
        with patch.object(loader, "_fetch", new_callable=AsyncMock, return_value=png_factory()) as mock_fetch:
            first = await loader.load("https://example.com/swatch.png")
            second = await loader.load("https://example.com/swatch.png")

        assert first is second
        mock_fetch.assert_awaited_once_with("https://example.com/swatch.png")

    @pytest.mark.asyncio
    async def test_failed_download_returns_none(self, loader):
        with patch.object(loader, "_fetch", new_callable=AsyncMock, return_value=None):
            assert await loader.load("https://example.com/gone.png") is None


class TestFetch:
    @pytest.mark.asyncio
    async def test_retries_with_backoff_then_gives_up(self, loader):
        response = AsyncMock()
        response.status = 503
        request = AsyncMock()
        request.__aenter__.return_value = response
        session = AsyncMock()
        session.get = lambda url: request

        with patch.object(loader, "_get_session", new_callable=AsyncMock, return_value=session), patch(
            "services.reference_images.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            assert await loader._fetch("https://example.com/swatch.png") is None

        assert mock_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_close_without_session(self, loader):
        await loader.close()
        assert loader.session is None
