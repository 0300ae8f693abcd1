"""Tests for the in-process change feed."""
import asyncio
from uuid import UUID, uuid4

from schemas.change_event import ChangeEvent, ChangeType
from services.change_feed import ChangeFeed
from tests.conftest import make_bookmark


def _insert(user_id: UUID | None = None) -> ChangeEvent:
    return ChangeEvent(event_type=ChangeType.INSERT, new=make_bookmark(user_id=user_id))


class TestChangeFeed:
    """Tests for ChangeFeed fan-out."""

    async def test__publish__delivered_in_order(self) -> None:
        """Subscribers receive events in publish order."""
        feed = ChangeFeed()
        user_id = uuid4()
        subscription = feed.subscribe(user_id)
        first, second = _insert(user_id), _insert(user_id)

        feed.publish(first)
        feed.publish(second)

        assert await subscription.get() == first
        assert await subscription.get() == second

    async def test__publish__only_to_record_owner(self) -> None:
        """Events are never delivered to other users' subscriptions."""
        feed = ChangeFeed()
        mine = feed.subscribe(uuid4())
        theirs_user = uuid4()
        theirs = feed.subscribe(theirs_user)

        feed.publish(_insert(theirs_user))

        assert mine._queue.empty()
        assert not theirs._queue.empty()

    async def test__publish__fans_out_to_every_session(self) -> None:
        """Every open subscription of the owner gets the event."""
        feed = ChangeFeed()
        user_id = uuid4()
        tab1, tab2 = feed.subscribe(user_id), feed.subscribe(user_id)
        change = _insert(user_id)

        feed.publish(change)

        assert await tab1.get() == change
        assert await tab2.get() == change

    async def test__publish__no_subscribers_is_noop(self) -> None:
        """Publishing with nobody listening does nothing."""
        ChangeFeed().publish(_insert())

    def test__close__unsubscribes(self) -> None:
        """Closing removes the subscription from the feed."""
        feed = ChangeFeed()
        user_id = uuid4()
        subscription = feed.subscribe(user_id)
        assert feed.subscriber_count(user_id) == 1

        subscription.close()
        subscription.close()

        assert feed.subscriber_count(user_id) == 0
        assert subscription.closed is True

    def test__total_subscribers__across_users(self) -> None:
        feed = ChangeFeed()
        user_id = uuid4()
        feed.subscribe(user_id)
        feed.subscribe(user_id)
        other = feed.subscribe(uuid4())

        assert feed.total_subscribers == 3

        other.close()

        assert feed.total_subscribers == 2

    async def test__closed_subscription__ignores_new_events(self) -> None:
        feed = ChangeFeed()
        user_id = uuid4()
        subscription = feed.subscribe(user_id)
        subscription.close()

        subscription.deliver(_insert(user_id))

        assert await subscription.get() is None

    async def test__close__wakes_pending_get(self) -> None:
        """A waiting get() returns None once the subscription closes."""
        feed = ChangeFeed()
        subscription = feed.subscribe(uuid4())
        waiter = asyncio.create_task(subscription.get())
        await asyncio.sleep(0)

        subscription.close()

        assert await asyncio.wait_for(waiter, timeout=1) is None

    async def test__async_iteration__ends_on_close(self) -> None:
        """`async for` yields queued events and stops after close()."""
        feed = ChangeFeed()
        user_id = uuid4()
        changes = [_insert(user_id), _insert(user_id)]
        received = []

        async with feed.subscribe(user_id) as subscription:
            for change in changes:
                feed.publish(change)
            subscription.close()
            async for change in subscription:
                received.append(change)

        assert received == changes
