"""Pytest fixtures for testing."""
import os

# Must be set before any app imports that trigger Settings validation.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
# Ensure tests run in dev mode (bypasses auth) regardless of local .env
os.environ["DEV_MODE"] = "true"
os.environ["REDIS_ENABLED"] = "false"

from collections.abc import AsyncGenerator, Generator  # noqa: E402
from datetime import UTC, datetime  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from models.base import Base  # noqa: E402
from models.user import User  # noqa: E402
from schemas.bookmark import BookmarkResponse  # noqa: E402
from services.change_feed import ChangeFeed, set_change_feed  # noqa: E402


def make_bookmark(
    title: str = "Example",
    url: str = "https://example.com",
    *,
    user_id: UUID | None = None,
    is_pinned: bool = False,
    created_at: datetime | None = None,
    tags: list[str] | None = None,
    bookmark_id: UUID | None = None,
) -> BookmarkResponse:
    """Build a bookmark record as the client layer sees it."""
    return BookmarkResponse(
        id=bookmark_id or uuid4(),
        user_id=user_id or uuid4(),
        title=title,
        url=url,
        tags=tags or [],
        is_pinned=is_pinned,
        created_at=created_at or datetime.now(UTC),
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create a fresh in-memory database with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create an async session on the test database."""
    session_factory = async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def change_feed() -> Generator[ChangeFeed]:
    """Give every test its own change feed."""
    feed = ChangeFeed()
    set_change_feed(feed)
    yield feed
    set_change_feed(ChangeFeed())


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """A persisted user that is not the dev-mode user."""
    user = User(auth_id="test|user-1", email="user1@example.com")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def client(
    async_engine: AsyncEngine,
    db_session: AsyncSession,
) -> AsyncGenerator[AsyncClient]:
    """
    Create a test client with database session override.

    The override commits at the end of each request like the real session
    generator does, so change events are published.
    """
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import get_async_session, get_session_factory

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_session_factory] = lambda: async_sessionmaker(
        bind=async_engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
