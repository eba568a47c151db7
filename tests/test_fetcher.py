"""Tests for page/image fetching and hero image encoding."""

import io

import httpx
import pytest
from PIL import Image

from mealdeck.ingest.fetcher import FetchError, PageFetcher
from mealdeck.ingest.media import (
    ImageEncodeError,
    encode_full_and_thumb,
    store_recipe_image,
    write_recipe_images,
)

PAGE_URL = "https://soup.example.com/recipes/tomato-soup"
IMAGE_URL = "https://soup.example.com/images/soup-ld.jpg"


def make_fetcher(handler) -> PageFetcher:
    return PageFetcher(http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


class TestPageFetcher:
    """Tests for PageFetcher."""

    @pytest.mark.asyncio
    async def test_fetch_page(self, recipe_page_html):
        """Test title and visible text of a fetched page."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user_agent"] = request.headers.get("User-Agent", "")
            return httpx.Response(200, text=recipe_page_html)

        page = await make_fetcher(handler).fetch_page(PAGE_URL)

        assert page.title == "Easy Tomato Soup Recipe"
        assert "800 g tomatoes" in page.text
        assert page.html == recipe_page_html
        assert seen["user_agent"].startswith("Mozilla/5.0")

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        """Test that a 404 becomes a FetchError with its status."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="gone")

        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(handler).fetch_html(PAGE_URL)

        assert exc_info.value.status_code == 404
        assert exc_info.value.url == PAGE_URL

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Test that timeouts become a FetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(FetchError, match="timed out"):
            await make_fetcher(handler).fetch_html(PAGE_URL)

    @pytest.mark.asyncio
    async def test_fetch_image(self, png_bytes):
        """Test a successful image download."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, content=png_bytes, headers={"Content-Type": "image/png; charset=binary"}
            )

        data, content_type = await make_fetcher(handler).fetch_image(IMAGE_URL)
        assert data == png_bytes
        assert content_type == "image/png"

    @pytest.mark.asyncio
    async def test_fetch_image_wrong_type(self):
        """Test that HTML served at an image URL is rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html></html>", headers={"Content-Type": "text/html"})

        with pytest.raises(FetchError, match="not an image"):
            await make_fetcher(handler).fetch_image(IMAGE_URL)

    @pytest.mark.asyncio
    async def test_fetch_image_empty(self):
        """Test that an empty image body is rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"", headers={"Content-Type": "image/jpeg"})

        with pytest.raises(FetchError, match="empty"):
            await make_fetcher(handler).fetch_image(IMAGE_URL)


class TestMedia:
    """Tests for WebP re-encoding and storage."""

    def test_encode_full_and_thumb(self, png_bytes):
        """Test that both outputs are WebP and the thumb is bounded."""
        full, thumb = encode_full_and_thumb(png_bytes)

        with Image.open(io.BytesIO(full)) as img:
            assert img.format == "WEBP"
            assert img.size == (1600, 900)
        with Image.open(io.BytesIO(thumb)) as img:
            assert img.format == "WEBP"
            assert max(img.size) == 1024

    def test_small_image_not_upscaled(self):
        """Test that images under the bound keep their size in the thumb."""
        buffer = io.BytesIO()
        Image.new("P", (200, 100)).save(buffer, format="PNG")

        _, thumb = encode_full_and_thumb(buffer.getvalue())
        with Image.open(io.BytesIO(thumb)) as img:
            assert img.size == (200, 100)

    def test_invalid_bytes(self):
        """Test that undecodable data raises ImageEncodeError."""
        with pytest.raises(ImageEncodeError):
            encode_full_and_thumb(b"definitely not an image")

    def test_write_recipe_images(self, tmp_path):
        """Test the on-disk layout and returned relative paths."""
        small, full = write_recipe_images(tmp_path, 7, b"FULL", b"THUMB")

        assert small == "recipes/7/thumb.webp"
        assert full == "recipes/7/full.webp"
        assert (tmp_path / "recipes" / "7" / "full.webp").read_bytes() == b"FULL"
        assert (tmp_path / "recipes" / "7" / "thumb.webp").read_bytes() == b"THUMB"

    @pytest.mark.asyncio
    async def test_store_recipe_image(self, tmp_path, png_bytes):
        """Test encoding and writing together."""
        small, full = await store_recipe_image(tmp_path, 3, png_bytes)
        assert (tmp_path / small).is_file()
        assert (tmp_path / full).is_file()
