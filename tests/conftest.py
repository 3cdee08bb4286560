from __future__ import annotations

import os

# settings are read at import time
os.environ.setdefault("SECRET", "test-secret-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from petflix import models  # noqa: F401  registers tables on Base
from petflix.container import build_services
from petflix.database import Base
from petflix.models import Follow, PushSubscription, User, Video, VideoTag
from petflix.services.push import PushResult
from petflix.services.youtube import ExternalVideo, QuotaExceededError, VideoMetadata
from petflix.settings.config import Settings


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeYouTube:
    """Stands in for YouTubeClient and counts every call by method."""

    def __init__(self) -> None:
        self.calls = {"get_metadata": 0, "get_stats": 0, "search": 0}
        self.search_limits: list[int] = []
        self.search_results: dict[str, list[ExternalVideo]] = {}
        self.views: dict[str, int] = {}
        self.quota_exceeded = False

    async def get_metadata(self, video_id: str) -> Optional[VideoMetadata]:
        self.calls["get_metadata"] += 1
        return VideoMetadata(title=f"Title {video_id}", description="By Someone")

    async def get_stats(self, video_id: str) -> int:
        self.calls["get_stats"] += 1
        if self.quota_exceeded:
            raise QuotaExceededError("quota")
        return self.views.get(video_id, 0)

    async def search(self, query: str, limit: int = 10) -> list[ExternalVideo]:
        self.calls["search"] += 1
        self.search_limits.append(limit)
        if self.quota_exceeded:
            raise QuotaExceededError("quota")
        return self.search_results.get(query.strip().lower(), [])[:limit]


class FakePushTransport:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.results: dict[str, PushResult] = {}

    async def send(self, subscription, payload) -> PushResult:
        self.sent.append((subscription.endpoint, payload.title))
        return self.results.get(subscription.endpoint, PushResult.ok)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(anyio_backend, tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'petflix.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def youtube() -> FakeYouTube:
    return FakeYouTube()


@pytest.fixture
def push_transport() -> FakePushTransport:
    return FakePushTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def services(session_maker, youtube, push_transport, clock):
    settings = Settings(SECRET="test", BACKGROUND_WORKERS=2, NOTIFICATION_BATCH_SIZE=2)
    svc = build_services(session_maker, settings, youtube=youtube, push_transport=push_transport, clock=clock)
    yield svc
    await svc.aclose()


@pytest.fixture
def make_user(session_maker):
    counter = {"n": 0}

    async def _make(username: Optional[str] = None) -> User:
        counter["n"] += 1
        name = username or f"user{counter['n']}"
        async with session_maker() as session:
            user = User(email=f"{name}@example.com", username=name, hashed_password="x")
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def add_video(session_maker):
    """Insert a video row directly, bypassing the share path."""
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    counter = {"n": 0}

    async def _add(user_id: int, youtube_video_id: str, *, title: str = "A pet video",
                   description: str = "", tags=(), views: int = 0,
                   original_user_id: Optional[int] = None,
                   created_at: Optional[datetime] = None) -> Video:
        counter["n"] += 1
        async with session_maker() as session:
            video = Video(
                youtube_video_id=youtube_video_id,
                title=title,
                description=description,
                user_id=user_id,
                original_user_id=original_user_id,
                view_count=views,
                created_at=created_at or base + timedelta(minutes=counter["n"]),
            )
            video.tags = [VideoTag(tag_name=t) for t in tags]
            session.add(video)
            await session.commit()
            return video

    return _add


@pytest.fixture
def follow(session_maker):
    async def _follow(follower_id: int, following_id: int) -> None:
        async with session_maker() as session:
            session.add(Follow(follower_id=follower_id, following_id=following_id))
            await session.commit()

    return _follow


@pytest.fixture
def subscribe(session_maker):
    async def _subscribe(user_id: int, endpoint: str) -> None:
        async with session_maker() as session:
            session.add(PushSubscription(user_id=user_id, endpoint=endpoint, p256dh_key="p", auth_key="a"))
            await session.commit()

    return _subscribe
