"""Fixtures for the client state layer."""
import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest

from client.store import StoreError
from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent


class FakeBookmarkStore:
    """In-memory BookmarkStore that records calls and replays pushed events."""

    def __init__(self, user_id: UUID) -> None:
        self.user_id = user_id
        self.records: list[BookmarkResponse] = []
        self.inserted: list[BookmarkCreate] = []
        self.pin_calls: list[tuple[UUID, bool]] = []
        self.deleted: list[UUID] = []
        self.fail = False
        self.subscriptions = 0
        self._events: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()

    def _check(self) -> None:
        if self.fail:
            raise StoreError("store unavailable")

    async def insert(self, data: BookmarkCreate) -> BookmarkResponse:
        self._check()
        self.inserted.append(data)
        return BookmarkResponse(
            id=uuid4(),
            user_id=self.user_id,
            created_at=datetime.now(UTC),
            **data.model_dump(),
        )

    async def set_pinned(self, bookmark_id: UUID, is_pinned: bool) -> BookmarkResponse:
        self._check()
        self.pin_calls.append((bookmark_id, is_pinned))
        record = next(r for r in self.records if r.id == bookmark_id)
        return record.model_copy(update={"is_pinned": is_pinned})

    async def delete(self, bookmark_id: UUID) -> None:
        self._check()
        self.deleted.append(bookmark_id)

    async def select_all(self, user_id: UUID) -> list[BookmarkResponse]:
        self._check()
        return [r for r in self.records if r.user_id == user_id]

    def push(self, change: ChangeEvent | None) -> None:
        """Queue a feed event; None ends the stream."""
        self._events.put_nowait(change)

    async def subscribe(self, user_id: UUID) -> AsyncIterator[ChangeEvent]:  # noqa: ARG002
        self.subscriptions += 1
        self._check()
        while True:
            change = await self._events.get()
            if change is None:
                return
            yield change


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def fake_store(user_id: UUID) -> FakeBookmarkStore:
    return FakeBookmarkStore(user_id)
