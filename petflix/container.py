"""Wiring of the service graph.

The FastAPI app builds one :class:`Services` at startup; tests build their own
with fakes for YouTube and push and a SQLite session factory.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from petflix.background import TaskQueue
from petflix.services.attribution import AttributionService
from petflix.services.feed import FeedService
from petflix.services.follows import FollowService
from petflix.services.notifications import NotificationService
from petflix.services.push import PushDispatcher, PushTransport, build_transport
from petflix.services.search_cache import SearchCache
from petflix.services.view_counts import ViewCountRefresher
from petflix.services.youtube import YouTubeClient
from petflix.settings.config import Settings

_UNSET = object()


@dataclass
class Services:
    queue: TaskQueue
    youtube: YouTubeClient
    cache: SearchCache
    push: PushDispatcher
    notifications: NotificationService
    refresher: ViewCountRefresher
    attribution: AttributionService
    feed: FeedService
    follows: FollowService

    async def aclose(self) -> None:
        await self.queue.join()
        await self.queue.stop()


def build_services(
    session_maker,
    settings: Settings,
    *,
    youtube: Optional[YouTubeClient] = None,
    push_transport=_UNSET,
    clock: Callable[[], float] = time.monotonic,
) -> Services:
    queue = TaskQueue(workers=settings.BACKGROUND_WORKERS, maxsize=settings.BACKGROUND_QUEUE_SIZE)
    youtube = youtube or YouTubeClient(settings.YOUTUBE_API_KEY, timeout=settings.YOUTUBE_TIMEOUT_SECONDS)
    cache = SearchCache(
        ttl_seconds=settings.SEARCH_CACHE_TTL_SECONDS,
        max_entries=settings.SEARCH_CACHE_MAX_ENTRIES,
        clock=clock,
    )
    if push_transport is _UNSET:
        transport: Optional[PushTransport] = build_transport(settings)
    else:
        transport = push_transport
    push = PushDispatcher(session_maker, transport)
    notifications = NotificationService(
        session_maker, push, queue, batch_size=settings.NOTIFICATION_BATCH_SIZE,
    )
    refresher = ViewCountRefresher(session_maker, youtube, queue)
    return Services(
        queue=queue,
        youtube=youtube,
        cache=cache,
        push=push,
        notifications=notifications,
        refresher=refresher,
        attribution=AttributionService(session_maker, youtube, notifications),
        feed=FeedService(
            session_maker, youtube, cache, refresher, queue,
            feed_limit=settings.FEED_LIMIT,
            external_ceiling=settings.EXTERNAL_SEARCH_CEILING,
        ),
        follows=FollowService(session_maker, notifications),
    )


__all__ = ["Services", "build_services"]
