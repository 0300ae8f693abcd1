"""Bookmark list view state: initial load, live updates, search, pin and delete."""
import asyncio
import logging
from collections.abc import Iterable
from uuid import UUID

from client.delete_dialog import DeleteDialog
from client.store import BookmarkStore, StoreError
from schemas.bookmark import BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)

MAX_RECONNECT_DELAY = 30.0


def sort_bookmarks(bookmarks: Iterable[BookmarkResponse]) -> list[BookmarkResponse]:
    """Order bookmarks pinned first, then newest first within each group."""
    newest_first = sorted(bookmarks, key=lambda b: b.created_at, reverse=True)
    # sorted() is stable, so recency order survives inside each pin group
    return sorted(newest_first, key=lambda b: not b.is_pinned)


def filter_bookmarks(
    bookmarks: Iterable[BookmarkResponse],
    search_term: str,
) -> list[BookmarkResponse]:
    """Case-insensitive substring match over title, URL and tags."""
    needle = search_term.strip().lower()
    if not needle:
        return list(bookmarks)
    return [
        b for b in bookmarks
        if needle in b.title.lower()
        or needle in b.url.lower()
        or any(needle in tag.lower() for tag in b.tags)
    ]


def link_href(url: str) -> str:
    """Link target for a stored URL; scheme-less URLs are opened over https."""
    if url.startswith(("http://", "https://")):
        return url
    return f"https://{url}"


def display_url(url: str) -> str:
    """URL as shown in the list, without its http(s) scheme."""
    return url.removeprefix("https://").removeprefix("http://")


class BookmarkListView:
    """
    Live list of the user's bookmarks.

    The local collection is a cache of the store: pin and delete only call the
    store, and the collection changes when the matching feed event arrives.
    When the feed drops, the view reconnects after `reconnect_delay` seconds
    (doubling per attempt up to MAX_RECONNECT_DELAY) and reloads the collection.
    """

    def __init__(
        self,
        store: BookmarkStore,
        user_id: UUID,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._reconnect_delay = reconnect_delay
        self.bookmarks: list[BookmarkResponse] = []
        self.loading = True
        self.search_term = ""
        self.dialog = DeleteDialog(on_confirm=self.delete)
        self._feed_task: asyncio.Task[None] | None = None

    @property
    def visible(self) -> list[BookmarkResponse]:
        """Bookmarks matching the current search term, in list order."""
        return filter_bookmarks(self.bookmarks, self.search_term)

    def empty_message(self) -> str | None:
        """Heading for the empty state, or None when something is shown."""
        if self.visible:
            return None
        return "No results found" if self.search_term.strip() else "Empty Archive"

    def find(self, bookmark_id: UUID) -> BookmarkResponse | None:
        return next((b for b in self.bookmarks if b.id == bookmark_id), None)

    async def mount(self) -> None:
        """Load the collection, then follow the change feed until unmount()."""
        await self.load()
        self._feed_task = asyncio.create_task(self._follow_changes())

    async def unmount(self) -> None:
        """Stop following the change feed."""
        if self._feed_task is None:
            return
        self._feed_task.cancel()
        try:
            await self._feed_task
        except asyncio.CancelledError:
            pass
        self._feed_task = None

    async def load(self) -> None:
        """Replace the local collection with a fresh read from the store."""
        try:
            rows = await self._store.select_all(self.user_id)
        except StoreError as e:
            logger.error("Error fetching bookmarks: %s", e)
        else:
            self.bookmarks = sort_bookmarks(rows)
        finally:
            self.loading = False

    async def _follow_changes(self) -> None:
        """
        Apply feed events until unmount(), reconnecting whenever the stream drops.

        Events sent while disconnected are never replayed, so every reconnect
        reloads the whole collection before subscribing again.
        """
        delay = self._reconnect_delay
        while True:
            if await self._consume_feed():
                delay = self._reconnect_delay
            logger.info("Reconnecting to bookmark change feed in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, MAX_RECONNECT_DELAY)
            await self.load()

    async def _consume_feed(self) -> bool:
        """Apply events from one subscription; returns whether any arrived."""
        received = False
        subscription = self._store.subscribe(self.user_id)
        try:
            async for change in subscription:
                received = True
                self.apply_event(change)
        except StoreError as e:
            logger.error("Bookmark change feed stopped: %s", e)
        else:
            logger.warning("Bookmark change feed ended")
        finally:
            aclose = getattr(subscription, "aclose", None)
            if aclose is not None:
                await aclose()
        return received

    def apply_event(self, change: ChangeEvent) -> None:
        """Fold one feed event into the local collection."""
        if change.event_type == ChangeType.DELETE:
            self.bookmarks = [b for b in self.bookmarks if b.id != change.record_id]
            return

        record = change.new
        if record is None:
            return
        if record.user_id != self.user_id:
            logger.warning("Ignoring change for another user's bookmark %s", record.id)
            return
        others = [b for b in self.bookmarks if b.id != record.id]
        self.bookmarks = sort_bookmarks([*others, record])

    async def toggle_pin(self, bookmark_id: UUID) -> None:
        """Flip the pin flag in the store; the feed delivers the new state."""
        bookmark = self.find(bookmark_id)
        if bookmark is None:
            return
        try:
            await self._store.set_pinned(bookmark_id, not bookmark.is_pinned)
        except StoreError as e:
            logger.error("Error updating bookmark: %s", e)

    def request_delete(self, bookmark_id: UUID) -> None:
        """Ask for confirmation before deleting."""
        bookmark = self.find(bookmark_id)
        if bookmark is not None:
            self.dialog.open(bookmark.id, bookmark.title)

    async def delete(self, bookmark_id: UUID) -> None:
        """Delete in the store; the feed removes the record locally."""
        try:
            await self._store.delete(bookmark_id)
        except StoreError as e:
            logger.error("Error deleting bookmark: %s", e)
