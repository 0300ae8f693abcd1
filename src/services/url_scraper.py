"""URL scraping service for fetching pages and extracting link-preview metadata."""
import asyncio
import ipaddress
import logging
import socket
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from schemas.metadata import PageMetadata
from services.exceptions import MetadataExtractionError

logger = logging.getLogger(__name__)

# Some sites serve stripped-down or blocked pages to non-browser agents
USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36'
)
DEFAULT_TIMEOUT = 10.0
ABSOLUTE_URL_SCHEMES = ('http', 'https')


class SSRFBlockedError(Exception):
    """Raised when a URL targets a private/internal network address."""

    pass


def is_private_ip(ip_str: str) -> bool:
    """
    Check if an IP address is private, loopback, or otherwise internal.

    Unparseable input counts as private.
    """
    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        return True
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


async def validate_url_not_private(url: str) -> None:
    """
    Validate that a URL does not target a private/internal network.

    The hostname is resolved and every returned address is checked, so a public
    name pointing at an internal address is refused as well. Resolution runs
    through the event loop so it does not block other requests.

    Raises:
        SSRFBlockedError: If the URL targets a private network.
        ValueError: If the URL has no hostname or the hostname does not resolve.
    """
    hostname = urlparse(url).hostname

    if not hostname:
        raise ValueError(f"Invalid URL (no hostname): {url}")

    if hostname.lower() in ('localhost', 'localhost.localdomain'):
        raise SSRFBlockedError(f"Blocked request to localhost: {url}")

    try:
        addrinfo = await asyncio.get_running_loop().getaddrinfo(
            hostname, None, family=socket.AF_UNSPEC, type=socket.SOCK_STREAM,
        )
    except socket.gaierror as e:
        raise ValueError(f"Could not resolve hostname: {hostname}") from e

    for _, _, _, _, sockaddr in addrinfo:
        ip_str = sockaddr[0]
        if is_private_ip(ip_str):
            raise SSRFBlockedError(
                f"Blocked request to private/internal address: {url} resolves to {ip_str}",
            )


@dataclass
class FetchResult:
    """Result of fetching a URL (raw HTML before extraction)."""

    html: str | None
    final_url: str
    status_code: int | None
    content_type: str | None
    error: str | None


async def fetch_url(url: str, timeout: float = DEFAULT_TIMEOUT) -> FetchResult:  # noqa: ASYNC109
    """
    Fetch a page's HTML.

    Best-effort fetch that returns error info on failure rather than raising.
    Follows redirects and captures the final URL. Both the requested URL and the
    final URL are checked against private/internal networks.

    Args:
        url:
            The URL to fetch.
        timeout:
            Request timeout in seconds.

    Returns:
        FetchResult with the response body, or with `error` set on failure.
    """
    try:
        await validate_url_not_private(url)
    except (SSRFBlockedError, ValueError) as e:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=str(e),
        )

    try:
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={'User-Agent': USER_AGENT},
            http2=True,
        ) as client:
            response = await client.get(url)

            final_url = str(response.url)
            content_type = response.headers.get('content-type', '')
            if final_url != url:
                try:
                    await validate_url_not_private(final_url)
                except (SSRFBlockedError, ValueError) as e:
                    return FetchResult(
                        html=None,
                        final_url=final_url,
                        status_code=response.status_code,
                        content_type=content_type,
                        error=f"Redirect blocked: {e}",
                    )

            if not response.is_success:
                return FetchResult(
                    html=None,
                    final_url=final_url,
                    status_code=response.status_code,
                    content_type=content_type,
                    error=f"HTTP {response.status_code}",
                )

            return FetchResult(
                html=response.text,
                final_url=final_url,
                status_code=response.status_code,
                content_type=content_type,
                error=None,
            )
    except httpx.TimeoutException:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error="Request timed out",
        )
    except httpx.RequestError as e:
        return FetchResult(
            html=None,
            final_url=url,
            status_code=None,
            content_type=None,
            error=f"Request failed: {e}",
        )


def _meta_content(soup: BeautifulSoup, **attrs: str) -> str:
    """Return the stripped `content` of the first matching <meta>, or ''."""
    tag = soup.find('meta', attrs=attrs)
    if tag is None:
        return ''
    content = tag.get('content')
    return content.strip() if isinstance(content, str) else ''


def _first_non_empty(*candidates: str) -> str:
    for candidate in candidates:
        if candidate:
            return candidate
    return ''


def resolve_image_url(image: str, page_url: str) -> str:
    """
    Make an extracted image reference absolute.

    Empty stays empty, http(s) URLs are returned unchanged, and anything else
    (relative or protocol-relative paths) is resolved against the page URL.
    """
    if not image:
        return ''
    if urlparse(image).scheme in ABSOLUTE_URL_SCHEMES:
        return image
    return urljoin(page_url, image)


def extract_html_metadata(html: str, page_url: str) -> PageMetadata:
    """
    Extract link-preview metadata from HTML.

    Pure function with no I/O. Uses BeautifulSoup with the lxml parser.

    Priority (first non-empty value wins, values are stripped):
    - title: og:title, then <title>
    - description: og:description, then <meta name="description">
    - image: og:image, then twitter:image (resolved against `page_url`)

    Args:
        html:
            Raw HTML string to parse.
        page_url:
            URL the HTML was requested from, used to resolve relative images.

    Returns:
        PageMetadata with empty strings for anything not found.
    """
    soup = BeautifulSoup(html, 'lxml')

    title_tag = soup.find('title')
    title = _first_non_empty(
        _meta_content(soup, property='og:title'),
        title_tag.get_text().strip() if title_tag else '',
    )
    description = _first_non_empty(
        _meta_content(soup, property='og:description'),
        _meta_content(soup, name='description'),
    )
    image = _first_non_empty(
        _meta_content(soup, property='og:image'),
        _meta_content(soup, name='twitter:image'),
    )

    return PageMetadata(
        title=title,
        description=description,
        image=resolve_image_url(image, page_url),
    )


async def scrape_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> PageMetadata:  # noqa: ASYNC109
    """
    Fetch a URL and extract its link-preview metadata.

    All-or-nothing: any fetch or parse failure raises, partial results are never
    returned.

    Raises:
        MetadataExtractionError: If the page cannot be fetched or parsed.
    """
    try:
        result = await fetch_url(url, timeout)
    except Exception as e:
        # e.g. ExceptionGroup/OverflowError from the transport on an out-of-range port
        logger.warning("Metadata fetch failed for %s: %s", url, e)
        raise MetadataExtractionError(url, f"Fetch error: {e}") from e

    if result.error or result.html is None:
        reason = result.error or "Empty response"
        logger.warning("Metadata fetch failed for %s: %s", url, reason)
        raise MetadataExtractionError(url, reason)

    try:
        return extract_html_metadata(result.html, url)
    except Exception as e:
        logger.warning("Metadata parse failed for %s: %s", url, e)
        raise MetadataExtractionError(url, f"Parse error: {e}") from e
