"""Tests for the page metadata endpoint."""
from collections.abc import Generator
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from schemas.metadata import PageMetadata
from services.exceptions import MetadataExtractionError
from services.metadata_cache import MetadataCache, get_metadata_cache

PREVIEW = PageMetadata(
    title="Example Domain",
    description="An example page",
    image="https://example.com/preview.png",
)


@pytest.fixture
def mock_scrape() -> Generator[AsyncMock]:
    """Patch the scraper so no network call is made."""
    with patch(
        'api.routers.metadata.scrape_metadata',
        new_callable=AsyncMock,
        return_value=PREVIEW,
    ) as mock:
        yield mock


@pytest.fixture
def cache_mock() -> Generator[AsyncMock]:
    """Install a mocked metadata cache for the request."""
    from api.main import app

    cache = AsyncMock(spec=MetadataCache)
    cache.get.return_value = None
    app.dependency_overrides[get_metadata_cache] = lambda: cache
    yield cache
    app.dependency_overrides.pop(get_metadata_cache, None)


class TestGetMetadata:
    """Tests for GET /api/metadata."""

    async def test__success(self, client: AsyncClient, mock_scrape: AsyncMock) -> None:
        """Extracted metadata is returned with a cache header."""
        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.status_code == 200
        assert response.json() == {
            'title': 'Example Domain',
            'description': 'An example page',
            'image': 'https://example.com/preview.png',
        }
        assert response.headers['cache-control'] == 'public, max-age=3600'
        mock_scrape.assert_awaited_once()
        assert mock_scrape.await_args.args == ('https://example.com',)

    async def test__missing_url__400_without_fetch(
        self, client: AsyncClient, mock_scrape: AsyncMock,
    ) -> None:
        """No url parameter is a client error and nothing is fetched."""
        response = await client.get('/api/metadata')

        assert response.status_code == 400
        assert response.json() == {'error': 'URL is required'}
        mock_scrape.assert_not_awaited()

    async def test__empty_url__400(self, client: AsyncClient, mock_scrape: AsyncMock) -> None:
        """An empty url parameter counts as missing."""
        response = await client.get('/api/metadata', params={'url': ''})

        assert response.status_code == 400
        mock_scrape.assert_not_awaited()

    async def test__extraction_failure__generic_500(
        self, client: AsyncClient, mock_scrape: AsyncMock,
    ) -> None:
        """Failures return a generic message; the cause is not leaked."""
        mock_scrape.side_effect = MetadataExtractionError(
            'https://example.com', 'Request failed: connection refused',
        )

        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.status_code == 500
        assert response.json() == {'error': 'Failed to fetch metadata'}
        assert 'connection refused' not in response.text

    async def test__out_of_range_port__generic_500(self, client: AsyncClient) -> None:
        """A transport error outside httpx's hierarchy still maps to the generic 500."""
        error = ExceptionGroup(
            'unhandled errors in a TaskGroup',
            [OverflowError('connect(): port must be 0-65535.')],
        )
        with patch(
            'services.url_scraper.fetch_url', new_callable=AsyncMock, side_effect=error,
        ):
            response = await client.get('/api/metadata', params={'url': 'http://1.1.1.1:99999/'})

        assert response.status_code == 500
        assert response.json() == {'error': 'Failed to fetch metadata'}

    async def test__security_headers_present(
        self, client: AsyncClient, mock_scrape: AsyncMock,  # noqa: ARG002
    ) -> None:
        """Responses carry the security headers."""
        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.headers['x-content-type-options'] == 'nosniff'
        assert response.headers['x-frame-options'] == 'DENY'


class TestGetMetadataCaching:
    """Tests for the metadata response cache on the endpoint."""

    async def test__cache_miss__fetches_and_stores(
        self, client: AsyncClient, mock_scrape: AsyncMock, cache_mock: AsyncMock,
    ) -> None:
        """A miss scrapes the page and stores the result."""
        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.status_code == 200
        mock_scrape.assert_awaited_once()
        cache_mock.set.assert_awaited_once_with('https://example.com', PREVIEW)

    async def test__cache_hit__no_fetch(
        self, client: AsyncClient, mock_scrape: AsyncMock, cache_mock: AsyncMock,
    ) -> None:
        """A hit is served without fetching the page."""
        cache_mock.get.return_value = PageMetadata(title='Cached')

        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.status_code == 200
        assert response.json()['title'] == 'Cached'
        mock_scrape.assert_not_awaited()
        cache_mock.set.assert_not_awaited()

    async def test__failure__not_cached(
        self, client: AsyncClient, mock_scrape: AsyncMock, cache_mock: AsyncMock,
    ) -> None:
        """Failed extractions are never cached."""
        mock_scrape.side_effect = MetadataExtractionError('https://example.com', 'HTTP 503')

        response = await client.get('/api/metadata', params={'url': 'https://example.com'})

        assert response.status_code == 500
        cache_mock.set.assert_not_awaited()
