"""
In-process change feed for per-user bookmark notifications.

Services queue ChangeEvents on the database session; they are published to
subscribers only after that session commits, and dropped if it rolls back.
"""
import asyncio
import logging
from collections import defaultdict
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from schemas.change_event import ChangeEvent

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_change_events"


class ChangeSubscription:
    """
    A live subscription to one user's changes.

    Events arrive in publish order. Iterate with `async for`, or call `get()`
    directly to combine with a timeout. Iteration ends once `close()` is called.
    """

    def __init__(self, feed: "ChangeFeed", user_id: UUID) -> None:
        self._feed = feed
        self.user_id = user_id
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the subscription has been closed."""
        return self._closed

    def deliver(self, change: ChangeEvent) -> None:
        """Enqueue an event for this subscriber (ignored once closed)."""
        if not self._closed:
            self._queue.put_nowait(change)

    async def get(self) -> ChangeEvent | None:
        """Wait for the next event. Returns None once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        change = await self._queue.get()
        if change is None:
            # Keep the sentinel for any other waiter
            self._queue.put_nowait(None)
        return change

    def close(self) -> None:
        """Stop receiving events and wake any pending `get()`."""
        if self._closed:
            return
        self._closed = True
        self._feed.unsubscribe(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> "ChangeSubscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        change = await self.get()
        if change is None:
            raise StopAsyncIteration
        return change

    async def __aenter__(self) -> "ChangeSubscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of change events to the subscriptions of each record owner."""

    def __init__(self) -> None:
        self._subscriptions: dict[UUID, set[ChangeSubscription]] = defaultdict(set)

    def subscribe(self, user_id: UUID) -> ChangeSubscription:
        """Open a subscription to `user_id`'s changes."""
        subscription = ChangeSubscription(self, user_id)
        self._subscriptions[user_id].add(subscription)
        logger.debug("change_feed_subscribe user_id=%s", user_id)
        return subscription

    def unsubscribe(self, subscription: ChangeSubscription) -> None:
        """Remove a subscription; unknown subscriptions are ignored."""
        subscribers = self._subscriptions.get(subscription.user_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.user_id]
        logger.debug("change_feed_unsubscribe user_id=%s", subscription.user_id)

    def subscriber_count(self, user_id: UUID) -> int:
        """Number of open subscriptions for a user."""
        return len(self._subscriptions.get(user_id, ()))

    @property
    def total_subscribers(self) -> int:
        """Number of open subscriptions across all users."""
        return sum(len(subscribers) for subscribers in self._subscriptions.values())

    def publish(self, change: ChangeEvent) -> None:
        """Deliver an event to every subscription of the record's owner."""
        for subscription in list(self._subscriptions.get(change.user_id, ())):
            subscription.deliver(change)


_change_feed = ChangeFeed()


def get_change_feed() -> ChangeFeed:
    """Get the process-wide change feed."""
    return _change_feed


def set_change_feed(feed: ChangeFeed) -> None:
    """Replace the process-wide change feed (used by tests)."""
    global _change_feed  # noqa: PLW0603
    _change_feed = feed


def queue_change(db: AsyncSession, change: ChangeEvent) -> None:
    """Queue an event to be published when `db` commits."""
    db.sync_session.info.setdefault(PENDING_CHANGES_KEY, []).append(change)


@event.listens_for(Session, "after_commit")
def _publish_pending_changes(session: Session) -> None:
    changes = session.info.pop(PENDING_CHANGES_KEY, [])
    feed = get_change_feed()
    for change in changes:
        feed.publish(change)


@event.listens_for(Session, "after_rollback")
def _discard_pending_changes(session: Session) -> None:
    dropped = session.info.pop(PENDING_CHANGES_KEY, None)
    if dropped:
        logger.info("Discarded %d change events after rollback", len(dropped))
