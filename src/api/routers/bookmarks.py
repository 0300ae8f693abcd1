"""Bookmark store endpoints and the live change stream."""
import asyncio
from collections.abc import AsyncGenerator
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.dependencies import (
    get_async_session,
    get_current_user,
    get_session_factory,
    get_settings,
)
from core.auth import resolve_user, security
from core.config import Settings
from models.user import User
from schemas.bookmark import BookmarkCreate, BookmarkResponse, BookmarkUpdate
from schemas.change_event import ChangeEvent
from services import bookmark_service
from services.change_feed import ChangeSubscription, get_change_feed

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])

KEEPALIVE_MESSAGE = ": keepalive\n\n"


def format_sse(change: ChangeEvent) -> str:
    """Encode a change event as one server-sent event message."""
    return f"event: {change.event_type}\ndata: {change.model_dump_json()}\n\n"


async def stream_changes(
    subscription: ChangeSubscription,
    keepalive: float,
) -> AsyncGenerator[str]:
    """
    Yield SSE messages for a subscription until it closes or the client leaves.

    A keepalive comment is sent after `keepalive` seconds without events so
    proxies don't drop the idle connection.
    """
    try:
        while True:
            try:
                change = await asyncio.wait_for(subscription.get(), timeout=keepalive)
            except TimeoutError:
                yield KEEPALIVE_MESSAGE
                continue
            if change is None:
                break
            yield format_sse(change)
    finally:
        subscription.close()


@router.post("/", response_model=BookmarkResponse, status_code=201)
async def create_bookmark(
    data: BookmarkCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Create a new bookmark."""
    bookmark = await bookmark_service.create_bookmark(db, current_user.id, data)
    return BookmarkResponse.model_validate(bookmark)


@router.get("/", response_model=list[BookmarkResponse])
async def list_bookmarks(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> list[BookmarkResponse]:
    """List all of the current user's bookmarks, pinned first, then newest first."""
    bookmarks = await bookmark_service.get_bookmarks(db, current_user.id)
    return [BookmarkResponse.model_validate(b) for b in bookmarks]


@router.get("/changes")
async def stream_bookmark_changes(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    settings: Settings = Depends(get_settings),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> StreamingResponse:
    """
    Stream the current user's bookmark changes as server-sent events.

    Each message is `event: INSERT|UPDATE|DELETE` with a ChangeEvent JSON body.
    The user is resolved in a short-lived session that is committed and closed
    before streaming starts, so an open stream holds no connection or transaction.
    """
    async with session_factory() as db:
        try:
            user = await resolve_user(credentials, db, settings)
            user_id = user.id
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    subscription = get_change_feed().subscribe(user_id)
    return StreamingResponse(
        stream_changes(subscription, settings.change_feed_keepalive),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{bookmark_id}", response_model=BookmarkResponse)
async def get_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Get a single bookmark by ID."""
    bookmark = await bookmark_service.get_bookmark(db, current_user.id, bookmark_id)
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.patch("/{bookmark_id}", response_model=BookmarkResponse)
async def update_bookmark(
    bookmark_id: UUID,
    data: BookmarkUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> BookmarkResponse:
    """Pin or unpin a bookmark."""
    bookmark = await bookmark_service.set_pinned(
        db, current_user.id, bookmark_id, data.is_pinned,
    )
    if bookmark is None:
        raise HTTPException(status_code=404, detail="Bookmark not found")
    return BookmarkResponse.model_validate(bookmark)


@router.delete("/{bookmark_id}", status_code=204)
async def delete_bookmark(
    bookmark_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Delete a bookmark."""
    deleted = await bookmark_service.delete_bookmark(db, current_user.id, bookmark_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Bookmark not found")
