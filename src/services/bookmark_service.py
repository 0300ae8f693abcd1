"""Service layer for bookmark store operations."""
import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.bookmark import Bookmark
from schemas.bookmark import BookmarkCreate, BookmarkResponse
from schemas.change_event import ChangeEvent, ChangeType
from services.change_feed import queue_change

logger = logging.getLogger(__name__)


async def create_bookmark(
    db: AsyncSession,
    user_id: UUID,
    data: BookmarkCreate,
) -> Bookmark:
    """
    Create a new bookmark for a user.

    Metadata is not fetched here: the form looks it up beforehand and submits
    whatever preview it has.

    Note: Does not commit. Caller (session generator) handles commit at request end,
    which is also when the INSERT change event is published.
    """
    bookmark = Bookmark(
        user_id=user_id,
        title=data.title,
        url=data.url,
        description=data.description,
        image_url=data.image_url,
        tags=data.tags,
        is_pinned=data.is_pinned,
    )
    db.add(bookmark)
    await db.flush()
    await db.refresh(bookmark)

    queue_change(
        db,
        ChangeEvent(event_type=ChangeType.INSERT, new=BookmarkResponse.model_validate(bookmark)),
    )
    logger.info("Created bookmark %s for user %s", bookmark.id, user_id)
    return bookmark


async def get_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> Bookmark | None:
    """Get a bookmark by ID, scoped to user. Returns None if not found or wrong user."""
    result = await db.execute(
        select(Bookmark).where(
            Bookmark.id == bookmark_id,
            Bookmark.user_id == user_id,
        ),
    )
    return result.scalar_one_or_none()


async def get_bookmarks(
    db: AsyncSession,
    user_id: UUID,
) -> list[Bookmark]:
    """Get all bookmarks for a user: pinned first, then newest first."""
    result = await db.execute(
        select(Bookmark)
        .where(Bookmark.user_id == user_id)
        .order_by(
            Bookmark.is_pinned.desc(),
            Bookmark.created_at.desc(),
            Bookmark.id,
        ),
    )
    return list(result.scalars().all())


async def set_pinned(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
    is_pinned: bool,
) -> Bookmark | None:
    """
    Set a bookmark's pin flag. Returns None if not found or wrong user.

    An UPDATE change event is queued even when the flag does not change, so
    every session converges on the stored value.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return None

    old = BookmarkResponse.model_validate(bookmark)
    bookmark.is_pinned = is_pinned
    await db.flush()
    await db.refresh(bookmark)

    queue_change(
        db,
        ChangeEvent(
            event_type=ChangeType.UPDATE,
            old=old,
            new=BookmarkResponse.model_validate(bookmark),
        ),
    )
    return bookmark


async def delete_bookmark(
    db: AsyncSession,
    user_id: UUID,
    bookmark_id: UUID,
) -> bool:
    """
    Delete a bookmark. Returns True if deleted, False if not found.

    Note: Does not commit. Caller (session generator) handles commit at request end.
    """
    bookmark = await get_bookmark(db, user_id, bookmark_id)
    if bookmark is None:
        return False

    old = BookmarkResponse.model_validate(bookmark)
    await db.delete(bookmark)
    await db.flush()

    queue_change(db, ChangeEvent(event_type=ChangeType.DELETE, old=old))
    logger.info("Deleted bookmark %s for user %s", bookmark_id, user_id)
    return True
