"""Sharing and reposting with provenance.

An original share has no credited predecessor. A repost credits the root
original sharer: reposting a repost credits whoever that repost credits, never
the intermediate reposter. ``resolve_original_sharer`` holds that rule and is
kept free of I/O so it can be tested on plain rows.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from petflix.errors import (
    AlreadyRepostedError,
    AlreadySharedError,
    NoEligibleOriginalError,
    NotFoundError,
    PermissionDeniedError,
    SelfRepostError,
    ValidationError,
)
from petflix.models import Video, VideoTag
from petflix.schemas import RepostCheck
from petflix.services.notifications import NotificationService
from petflix.services.tags import normalize_tags
from petflix.services.youtube import YouTubeClient, YouTubeError, extract_video_id

logger = logging.getLogger(__name__)

_LOADED = ["sharer", "original_sharer", "tags"]


@dataclass(slots=True, frozen=True)
class VideoRef:
    """Either a local video row id or a bare YouTube id."""
    video_id: Optional[int] = None
    youtube_video_id: Optional[str] = None

    @classmethod
    def parse(cls, raw: Union[int, str, "VideoRef"]) -> "VideoRef":
        if isinstance(raw, VideoRef):
            return raw
        if isinstance(raw, int):
            return cls(video_id=raw)
        value = str(raw or "").strip()
        # all-digit refs are local ids; use the youtube_ prefix to force an external id
        if value.isdigit():
            return cls(video_id=int(value))
        yt_id = extract_video_id(value)
        if not yt_id:
            raise ValidationError("Invalid video reference")
        return cls(youtube_video_id=yt_id)


@dataclass(slots=True, frozen=True)
class Attribution:
    credited_user_id: int
    source: Video


def resolve_original_sharer(caller_id: int, source: Optional[Video],
                            originals: Sequence[Video] = ()) -> Attribution:
    """Decide who a repost by ``caller_id`` credits.

    ``source`` is the row the caller pointed at, if any. Without one,
    ``originals`` are the original-share rows for the requested YouTube id and
    the earliest one not shared by the caller is used.
    """
    if source is not None:
        if source.original_user_id is not None:
            return Attribution(source.original_user_id, source)
        return Attribution(source.user_id, source)

    eligible = sorted(
        (v for v in originals if v.original_user_id is None and v.user_id != caller_id),
        key=lambda v: (v.created_at, v.id),
    )
    if not eligible:
        raise NoEligibleOriginalError()
    return Attribution(eligible[0].user_id, eligible[0])


class AttributionService:
    def __init__(self, session_maker, youtube: YouTubeClient, notifications: NotificationService) -> None:
        self.session_maker = session_maker
        self.youtube = youtube
        self.notifications = notifications

    # ------------------------------------------------------------------
    # Share
    # ------------------------------------------------------------------
    @staticmethod
    async def _has_share(session, user_id: int, yt_id: str) -> bool:
        row = (await session.execute(
            select(Video.id)
            .where(Video.youtube_video_id == yt_id)
            .where(Video.user_id == user_id)
            .where(Video.original_user_id.is_(None))
        )).scalar_one_or_none()
        return row is not None

    async def share(self, user_id: int, external_video_id: str, tags=None,
                    title: Optional[str] = None, description: Optional[str] = None) -> Video:
        yt_id = extract_video_id(external_video_id)
        if not yt_id:
            raise ValidationError("A valid YouTube video id or URL is required")
        clean_tags = normalize_tags(tags)

        async with self.session_maker() as session:
            if await self._has_share(session, user_id, yt_id):
                raise AlreadySharedError()

        meta = await self.youtube.get_metadata(yt_id)
        try:
            views = await self.youtube.get_stats(yt_id)
        except YouTubeError as e:
            logger.info("share: view count unavailable for %s: %s", yt_id, e)
            views = 0

        video = Video(
            youtube_video_id=yt_id,
            title=(title or "").strip() or (meta.title if meta else f"YouTube Video {yt_id}"),
            description=(description or "").strip() or (meta.description if meta else ""),
            user_id=user_id,
            original_user_id=None,
            view_count=views,
        )
        video.tags = [VideoTag(tag_name=t) for t in clean_tags]

        async with self.session_maker() as session:
            session.add(video)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                # only a concurrent share of the same id is a conflict; FK failures propagate
                if await self._has_share(session, user_id, yt_id):
                    raise AlreadySharedError() from None
                raise
            await session.refresh(video, attribute_names=_LOADED)

        logger.info("User %s shared %s as video %s", user_id, yt_id, video.id)
        self.notifications.schedule_share_fanout(user_id, video.id, video.title)
        return video

    # ------------------------------------------------------------------
    # Repost
    # ------------------------------------------------------------------
    async def _resolve(self, session, caller_id: int, ref: VideoRef) -> Attribution:
        if ref.video_id is not None:
            source = await session.get(Video, ref.video_id)
            if source is None:
                raise NotFoundError("Video not found")
            return resolve_original_sharer(caller_id, source)

        originals = (await session.execute(
            select(Video)
            .where(Video.youtube_video_id == ref.youtube_video_id)
            .where(Video.original_user_id.is_(None))
            .order_by(Video.created_at.asc(), Video.id.asc())
        )).scalars().all()
        return resolve_original_sharer(caller_id, None, originals)

    @staticmethod
    async def _has_repost(session, caller_id: int, yt_id: str) -> bool:
        row = (await session.execute(
            select(Video.id)
            .where(Video.youtube_video_id == yt_id)
            .where(Video.user_id == caller_id)
            .where(Video.original_user_id.is_not(None))
        )).scalar_one_or_none()
        return row is not None

    async def _check(self, session, caller_id: int, ref: VideoRef) -> Attribution:
        attribution = await self._resolve(session, caller_id, ref)
        if attribution.credited_user_id == caller_id:
            raise SelfRepostError()
        if await self._has_repost(session, caller_id, attribution.source.youtube_video_id):
            raise AlreadyRepostedError()
        return attribution

    async def repost(self, user_id: int, video_ref) -> Video:
        ref = VideoRef.parse(video_ref)
        async with self.session_maker() as session:
            attribution = await self._check(session, user_id, ref)
            source = attribution.source
            yt_id = source.youtube_video_id
            repost = Video(
                youtube_video_id=yt_id,
                title=source.title,
                description=source.description,
                user_id=user_id,
                original_user_id=attribution.credited_user_id,
                view_count=source.view_count or 0,
            )
            repost.tags = [VideoTag(tag_name=t.tag_name) for t in source.tags]
            session.add(repost)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if await self._has_repost(session, user_id, yt_id):
                    raise AlreadyRepostedError() from None
                raise
            await session.refresh(repost, attribute_names=_LOADED)

        logger.info(
            "User %s reposted %s as video %s crediting user %s",
            user_id, repost.youtube_video_id, repost.id, repost.original_user_id,
        )
        self.notifications.schedule_share_fanout(user_id, repost.id, repost.title, reposted=True)
        self.notifications.schedule_repost_notice(repost.original_user_id, user_id, repost.id, repost.title)
        return repost

    async def can_repost(self, user_id: int, video_ref) -> RepostCheck:
        """Dry run of :meth:`repost`; bad or unknown refs still raise."""
        ref = VideoRef.parse(video_ref)
        async with self.session_maker() as session:
            try:
                attribution = await self._check(session, user_id, ref)
            except (SelfRepostError, AlreadyRepostedError, NoEligibleOriginalError) as e:
                return RepostCheck(allowed=False, reason=e.code)
        return RepostCheck(allowed=True, original_user_id=attribution.credited_user_id)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------
    async def delete_video(self, user_id: int, video_id: int) -> None:
        """Delete one of the caller's rows. Reposts crediting it are left alone."""
        async with self.session_maker() as session:
            video = await session.get(Video, video_id)
            if video is None:
                raise NotFoundError("Video not found")
            if video.user_id != user_id:
                raise PermissionDeniedError("You can only delete your own videos")
            await session.delete(video)
            await session.commit()
        logger.info("User %s deleted video %s", user_id, video_id)


__all__ = ["AttributionService", "Attribution", "VideoRef", "resolve_original_sharer"]
