"""Client-side access to the bookmark store and its change feed."""
import logging
from collections.abc import AsyncIterator
from typing import Protocol
from uuid import UUID

import httpx
from pydantic import ValidationError

from client.api_client import api_delete, api_get, api_patch, api_post, get_headers
from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent

logger = logging.getLogger(__name__)

# The change stream stays open indefinitely; only connecting is bounded
STREAM_TIMEOUT = httpx.Timeout(10.0, read=None)


class StoreError(Exception):
    """Raised when a store operation fails (transport, HTTP status or payload)."""

    pass


class BookmarkStore(Protocol):
    """Operations the views need from the bookmark store."""

    async def insert(self, data: BookmarkCreate) -> BookmarkResponse: ...

    async def set_pinned(self, bookmark_id: UUID, is_pinned: bool) -> BookmarkResponse: ...

    async def delete(self, bookmark_id: UUID) -> None: ...

    async def select_all(self, user_id: UUID) -> list[BookmarkResponse]: ...

    def subscribe(self, user_id: UUID) -> AsyncIterator[ChangeEvent]: ...


async def parse_sse(lines: AsyncIterator[str]) -> AsyncIterator[ChangeEvent]:
    """
    Decode a server-sent event stream into change events.

    Comment lines (keepalives) are skipped; multi-line `data` fields are joined
    with newlines as the SSE format requires.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            if data_lines:
                yield ChangeEvent.model_validate_json("\n".join(data_lines))
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field == "data":
            data_lines.append(value.removeprefix(" "))


class ApiBookmarkStore:
    """
    BookmarkStore backed by the REST API.

    The server scopes every call to the token's user, so the `user_id`
    arguments only document intent here.
    """

    def __init__(self, client: httpx.AsyncClient, token: str | None) -> None:
        self._client = client
        self._token = token

    async def insert(self, data: BookmarkCreate) -> BookmarkResponse:
        """Create a bookmark."""
        try:
            payload = await api_post(
                self._client, "/bookmarks/", self._token, data.model_dump(mode="json"),
            )
            return BookmarkResponse.model_validate(payload)
        except (httpx.HTTPError, ValidationError) as e:
            raise StoreError(f"Insert failed: {e}") from e

    async def set_pinned(self, bookmark_id: UUID, is_pinned: bool) -> BookmarkResponse:
        """Set a bookmark's pin flag."""
        try:
            payload = await api_patch(
                self._client,
                f"/bookmarks/{bookmark_id}",
                self._token,
                {"is_pinned": is_pinned},
            )
            return BookmarkResponse.model_validate(payload)
        except (httpx.HTTPError, ValidationError) as e:
            raise StoreError(f"Update failed: {e}") from e

    async def delete(self, bookmark_id: UUID) -> None:
        """Delete a bookmark."""
        try:
            await api_delete(self._client, f"/bookmarks/{bookmark_id}", self._token)
        except httpx.HTTPError as e:
            raise StoreError(f"Delete failed: {e}") from e

    async def select_all(self, user_id: UUID) -> list[BookmarkResponse]:
        """Read every bookmark of the user, in list order."""
        try:
            payload = await api_get(self._client, "/bookmarks/", self._token)
            return [BookmarkResponse.model_validate(item) for item in payload]
        except (httpx.HTTPError, ValidationError) as e:
            raise StoreError(f"Select failed: {e}") from e

    async def subscribe(self, user_id: UUID) -> AsyncIterator[ChangeEvent]:
        """Yield the user's change events until the stream ends or is closed."""
        try:
            async with self._client.stream(
                "GET",
                "/bookmarks/changes",
                headers=get_headers(self._token),
                timeout=STREAM_TIMEOUT,
            ) as response:
                response.raise_for_status()
                async for change in parse_sse(response.aiter_lines()):
                    yield change
        except (httpx.HTTPError, ValidationError) as e:
            raise StoreError(f"Change stream failed: {e}") from e
        logger.debug("Change stream for user %s ended", user_id)
