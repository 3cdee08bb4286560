"""Lazy refresher for videos whose stored view count is still zero."""
from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update

from petflix.background import TaskQueue
from petflix.models import Video
from petflix.services.youtube import YouTubeClient, YouTubeError

logger = logging.getLogger(__name__)


class ViewCountRefresher:
    def __init__(self, session_maker, youtube: YouTubeClient, queue: TaskQueue) -> None:
        self.session_maker = session_maker
        self.youtube = youtube
        self.queue = queue
        self._in_flight: set[int] = set()

    async def refresh(self, video_id: int, youtube_video_id: str) -> None:
        """Overwrite the stored count with the provider's current value.

        Safe to run repeatedly or concurrently; the last write wins.
        """
        try:
            views = await self.youtube.get_stats(youtube_video_id)
        except YouTubeError as e:
            logger.info("View count refresh skipped for video %s: %s", video_id, e)
            return
        try:
            async with self.session_maker() as session:
                await session.execute(
                    update(Video).where(Video.id == video_id).values(view_count=views)
                )
                await session.commit()
        except Exception:  # noqa: BLE001
            logger.exception("View count refresh failed to store video %s", video_id)

    def schedule(self, videos: Iterable[Video]) -> int:
        """Queue refreshes for every zero-count video not already queued."""
        queued = 0
        for video in videos:
            if video.view_count or video.id in self._in_flight:
                continue
            self._in_flight.add(video.id)
            fut = self.queue.submit(self._job(video.id, video.youtube_video_id), name=f"views:{video.id}")
            if fut.done():
                # dropped by a full queue
                self._in_flight.discard(video.id)
                continue
            queued += 1
        return queued

    def _job(self, video_id: int, youtube_video_id: str):
        async def run() -> None:
            try:
                await self.refresh(video_id, youtube_video_id)
            finally:
                self._in_flight.discard(video_id)
        return run


__all__ = ["ViewCountRefresher"]
