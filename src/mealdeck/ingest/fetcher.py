"""HTTP fetching of recipe pages and hero images."""

from typing import Any

import httpx

from mealdeck.config import get_settings
from mealdeck.ingest.html_text import PageText, extract_title, html_to_text
from mealdeck.logging_config import get_logger

logger = get_logger(__name__)


class FetchError(Exception):
    """Upstream fetch failure: network error, timeout or non-2xx status."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PageFetcher:
    """
    Fetches recipe pages and images over a shared async HTTP client.

    A single attempt per call with explicit timeouts; retrying is left to
    whoever called the import.
    """

    def __init__(
        self,
        timeout: float | None = None,
        connect_timeout: float | None = None,
        image_timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        settings = get_settings()
        self.timeout = timeout or settings.fetch_timeout
        self.connect_timeout = connect_timeout or settings.fetch_connect_timeout
        self.image_timeout = image_timeout or settings.image_fetch_timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_headers(self) -> dict[str, str]:
        """Browser-like headers; many recipe sites reject bare clients."""
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "User-Agent": (
                "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/120.0.0.0 Safari/537.36"
            ),
        }

    def _page_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout, connect=self.connect_timeout)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._page_timeout(),
                headers=self._get_headers(),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get(self, url: str, timeout: httpx.Timeout) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.get(
                url,
                headers=self._get_headers(),
                timeout=timeout,
                follow_redirects=True,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timed out fetching {url}")
            raise FetchError(f"timed out fetching {url}", url=url) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed fetching {url}: {e}")
            raise FetchError(f"fetching {url}: {e}", url=url) from e

        if not response.is_success:
            logger.error(f"Fetch of {url} returned HTTP {response.status_code}")
            raise FetchError(
                f"upstream returned HTTP {response.status_code}",
                url=url,
                status_code=response.status_code,
            )
        return response

    async def fetch_html(self, url: str) -> str:
        """Fetch a page and return its decoded body."""
        response = await self._get(url, self._page_timeout())
        return response.text

    async def fetch_page(self, url: str) -> PageText:
        """
        Fetch a page and extract its title and visible text.

        Raises:
            FetchError: On transport failure, timeout or non-2xx status.
        """
        html = await self.fetch_html(url)
        text = html_to_text(html)
        logger.info(f"Fetched {url}: {len(html)} bytes of HTML, {len(text)} chars of text")
        return PageText(title=extract_title(html), text=text, html=html)

    async def fetch_image(self, url: str) -> tuple[bytes, str]:
        """
        Fetch an image and return ``(bytes, content_type)``.

        Raises:
            FetchError: On failure, a non-image content type or an empty body.
        """
        response = await self._get(
            url, httpx.Timeout(self.image_timeout, connect=self.connect_timeout)
        )

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            raise FetchError(f"not an image (content-type {content_type or 'missing'})", url=url)

        data = response.content
        if not data:
            raise FetchError("empty image body", url=url)
        return data, content_type

    async def __aenter__(self) -> "PageFetcher":
        await self._get_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
