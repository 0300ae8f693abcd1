"""Add-bookmark form state: debounced link preview lookup and submit."""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from uuid import UUID

from pydantic import ValidationError

from client.metadata import MetadataLookupError
from client.store import BookmarkStore, StoreError
from schemas.bookmark import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    BookmarkCreate,
    BookmarkResponse,
    parse_tag_input,
)
from schemas.metadata import PageMetadata

logger = logging.getLogger(__name__)

MetadataLookup = Callable[[str], Awaitable[PageMetadata]]

DEFAULT_DEBOUNCE_SECONDS = 1.0
MIN_LOOKUP_URL_LENGTH = 10
LOOKUP_SCHEMES = ("http://", "https://")


class FormState(StrEnum):
    """Where a submission currently is."""

    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING_METADATA = "fetching_metadata"
    SUBMITTING = "submitting"


def is_lookup_candidate(url: str) -> bool:
    """Whether a URL looks complete enough to ask for a preview."""
    url = url.strip()
    return len(url) >= MIN_LOOKUP_URL_LENGTH and url.startswith(LOOKUP_SCHEMES)


class AddBookmarkForm:
    """
    Quick-add form for one user.

    Editing the URL re-arms a quiet-period timer; when it fires the preview is
    looked up in the background. Each lookup carries a sequence number and a
    result is applied only if it is newer than the last one applied, so a slow
    stale response can't overwrite a fresher preview.
    """

    def __init__(
        self,
        store: BookmarkStore,
        user_id: UUID,
        lookup: MetadataLookup | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._lookup = lookup
        self._debounce_seconds = debounce_seconds

        self.title = ""
        self.url = ""
        self.tags_input = ""
        self.is_pinned = False
        self.description = ""
        self.image_url = ""
        self.state = FormState.IDLE
        self.error: str | None = None

        self._timer: asyncio.TimerHandle | None = None
        self._lookups: set[asyncio.Task[bool]] = set()
        self._lookup_seq = 0
        self._applied_seq = 0
        self._preview_url: str | None = None

    @property
    def can_submit(self) -> bool:
        return (
            self.state == FormState.IDLE
            and bool(self.title.strip())
            and bool(self.url.strip())
        )

    def set_title(self, value: str) -> None:
        self.title = value

    def set_tags(self, value: str) -> None:
        self.tags_input = value

    def set_pinned(self, value: bool) -> None:
        self.is_pinned = value

    def set_url(self, value: str) -> None:
        """Update the URL and (re)arm the preview lookup timer."""
        self.url = value
        self._cancel_timer()
        if self._lookup is None or not is_lookup_candidate(value):
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(
            self._debounce_seconds, self._start_lookup, value.strip(),
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_lookup(self, url: str) -> None:
        self._timer = None
        self._lookup_seq += 1
        task = asyncio.create_task(self._run_lookup(url, self._lookup_seq))
        self._lookups.add(task)
        task.add_done_callback(self._lookups.discard)

    async def _run_lookup(self, url: str, seq: int) -> bool:
        """Fetch a preview and apply it unless a newer one already landed."""
        try:
            metadata = await self._lookup(url)  # type: ignore[misc]
        except MetadataLookupError as e:
            logger.warning("Metadata lookup failed for %s: %s", url, e)
            return False
        if seq <= self._applied_seq:
            logger.debug("Discarding stale metadata for %s", url)
            return False
        self._applied_seq = seq
        self._apply_metadata(url, metadata)
        return True

    def _apply_metadata(self, url: str, metadata: PageMetadata) -> None:
        # Clipped to the lengths BookmarkCreate accepts
        if not self.title.strip():
            self.title = metadata.title[:MAX_TITLE_LENGTH]
        self.description = metadata.description[:MAX_DESCRIPTION_LENGTH]
        self.image_url = metadata.image
        self._preview_url = url

    async def wait_for_lookups(self) -> None:
        """Wait for in-flight preview lookups (not for an armed timer)."""
        if self._lookups:
            await asyncio.gather(*self._lookups, return_exceptions=True)

    async def submit(self) -> BookmarkResponse | None:
        """
        Validate and store the bookmark.

        Returns the stored record, or None when validation or the store write
        failed. On failure the input is kept for a retry.
        """
        if self.state != FormState.IDLE:
            return None

        self.state = FormState.VALIDATING
        self.error = None
        title = self.title.strip()
        url = self.url.strip()
        if not title or not url:
            self.error = "Title and URL are required"
            self.state = FormState.IDLE
            return None

        try:
            if (
                self._lookup is not None
                and self._preview_url != url
                and is_lookup_candidate(url)
            ):
                self._cancel_timer()
                self.state = FormState.FETCHING_METADATA
                self._lookup_seq += 1
                await self._run_lookup(url, self._lookup_seq)

            self.state = FormState.SUBMITTING
            data = BookmarkCreate(
                title=title,
                url=url,
                description=self.description or None,
                image_url=self.image_url or None,
                tags=parse_tag_input(self.tags_input),
                is_pinned=self.is_pinned,
            )
            record = await self._store.insert(data)
        except ValidationError as e:
            self.error = f"Invalid bookmark: {e.errors()[0]['msg']}"
            return None
        except StoreError as e:
            logger.error("Error saving bookmark: %s", e)
            self.error = str(e)
            return None
        finally:
            self.state = FormState.IDLE

        self.reset()
        return record

    def reset(self) -> None:
        """Clear every field back to its default."""
        self._cancel_timer()
        self.title = ""
        self.url = ""
        self.tags_input = ""
        self.is_pinned = False
        self.description = ""
        self.image_url = ""
        self.error = None
        self._preview_url = None
        # Lookups still in flight belong to the cleared input
        self._applied_seq = self._lookup_seq

    async def close(self) -> None:
        """Cancel the timer and any in-flight lookups."""
        self._cancel_timer()
        for task in list(self._lookups):
            task.cancel()
        await asyncio.gather(*self._lookups, return_exceptions=True)
