"""Source text extraction for repurposing.

Fetches the subject URL with a browser user agent and reduces the HTML
document to the visible text of its body.
"""

from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup
from recast_core.errors import FetchError

from recast_api.config import APISettings

logger = logging.getLogger(__name__)

# Elements whose text never belongs in the extracted article.
_NON_CONTENT_TAGS = ("script", "style", "nav", "footer", "iframe", "svg", "noscript")

_WHITESPACE = re.compile(r"\s+")

_TEXT_CONTENT_TYPES = ("text/html", "application/xhtml+xml", "text/plain")


def html_to_text(html: str, max_chars: int) -> str:
    """Strip non-content elements from *html* and return collapsed body text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(list(_NON_CONTENT_TAGS)):
        tag.decompose()

    root = soup.body or soup
    text = _WHITESPACE.sub(" ", root.get_text(separator=" ")).strip()
    return text[:max_chars]


class TextExtractor:
    """Fetch a URL and return its plain text.

    Parameters
    ----------
    settings:
        Supplies the fetch timeout, the user agent and the text cap.
    client:
        Optional shared ``httpx.AsyncClient``.  When omitted a client is
        created per call.
    """

    def __init__(self, settings: APISettings, client: httpx.AsyncClient | None = None) -> None:
        self._timeout = settings.fetch_timeout
        self._max_chars = settings.fetch_max_chars
        self._headers = {"User-Agent": settings.user_agent}
        self._client = client

    async def extract(self, url: str) -> str:
        """Return the visible text of *url*, truncated to the configured cap.

        Raises
        ------
        FetchError
            On transport failure, a non-2xx status, a non-text content
            type, or a page without any text.
        """
        try:
            response = await self._get(url)
        except httpx.HTTPError as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            raise FetchError("Failed to extract content from URL") from exc

        if not response.is_success:
            logger.warning("Fetch for %s returned HTTP %d", url, response.status_code)
            raise FetchError("Failed to extract content from URL")

        content_type = response.headers.get("content-type", "text/html").split(";", 1)[0].strip().lower()
        if content_type not in _TEXT_CONTENT_TYPES:
            logger.warning("Unsupported content type for %s: %s", url, content_type)
            raise FetchError("Failed to extract content from URL")

        if content_type == "text/plain":
            text = _WHITESPACE.sub(" ", response.text).strip()[: self._max_chars]
        else:
            text = html_to_text(response.text, self._max_chars)

        if not text:
            raise FetchError("No readable text found at URL")

        logger.debug("Extracted %d chars from %s", len(text), url)
        return text

    async def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, headers=self._headers, timeout=self._timeout, follow_redirects=True)
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            return await client.get(url, headers=self._headers)
