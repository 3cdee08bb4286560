"""
Feed, search and browse over shared videos.

Search pipeline:
1. Local tag-name matches (highest relevance)
2. Local title/description matches
3. Dedupe by row id, paginate
4. Only if the local page is short: cached or live YouTube search
5. Append external hits after local ones, cap to the page size

Every read hands zero-view rows to the view-count refresher.
"""
from __future__ import annotations

import logging
from typing import Optional, Sequence

from sqlalchemy import func, insert, or_, select

from petflix.background import TaskQueue
from petflix.errors import NotFoundError, ValidationError
from petflix.models import Follow, SearchHistory, Video, VideoTag
from petflix.schemas import SearchPage, VideoCard
from petflix.services.search_cache import SearchCache
from petflix.services.tags import TagCategory, parse_category, synonyms_for
from petflix.services.view_counts import ViewCountRefresher
from petflix.services.youtube import ExternalVideo, YouTubeClient, YouTubeError, extract_video_id

logger = logging.getLogger(__name__)

SORT_RELEVANCE = "relevance"
SORT_RECENCY = "recency"
SORT_VIEWS = "views"
MAX_PAGE_SIZE = 50


def normalize_sort(sort: Optional[str], *, allow_relevance: bool = True) -> str:
    value = (sort or "").strip().lower()
    if value == SORT_RELEVANCE and allow_relevance:
        return SORT_RELEVANCE
    if value == SORT_RECENCY:
        return SORT_RECENCY
    # "engagement" and anything unknown rank by views
    return SORT_VIEWS


def _order_by(sort: str):
    if sort == SORT_RECENCY:
        return (Video.created_at.desc(), Video.id.desc())
    if sort == SORT_VIEWS:
        return (Video.view_count.desc(), Video.created_at.desc(), Video.id.desc())
    return (Video.created_at.desc(), Video.id.desc())


def _sort_key(sort: str):
    if sort == SORT_RECENCY:
        return lambda v: (v.created_at, v.id)
    return lambda v: (v.view_count or 0, v.created_at, v.id)


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def merge_local_results(tag_hits: Sequence[Video], text_hits: Sequence[Video], sort: str) -> list[Video]:
    """Dedupe by row id; relevance keeps tag hits ahead of text hits."""
    merged: list[Video] = []
    seen: set[int] = set()
    for video in list(tag_hits) + list(text_hits):
        if video.id in seen:
            continue
        seen.add(video.id)
        merged.append(video)
    if sort != SORT_RELEVANCE:
        merged.sort(key=_sort_key(sort), reverse=True)
    return merged


class FeedService:
    def __init__(
        self,
        session_maker,
        youtube: YouTubeClient,
        cache: SearchCache,
        refresher: ViewCountRefresher,
        queue: TaskQueue,
        *,
        feed_limit: int = 50,
        external_ceiling: int = 10,
    ) -> None:
        self.session_maker = session_maker
        self.youtube = youtube
        self.cache = cache
        self.refresher = refresher
        self.queue = queue
        self.feed_limit = feed_limit
        self.external_ceiling = external_ceiling

    def _cards(self, videos: Sequence[Video]) -> list[VideoCard]:
        self.refresher.schedule(videos)
        return [VideoCard.from_video(v) for v in videos]

    # ------------------------------------------------------------------
    # Home feed
    # ------------------------------------------------------------------
    async def feed(self, user_id: int, limit: Optional[int] = None) -> list[VideoCard]:
        """Newest rows shared or reposted by people ``user_id`` follows.

        Reposts are included because the followed user reposted them, but the
        card is attributed to the original sharer.
        """
        limit = min(limit or self.feed_limit, self.feed_limit)
        async with self.session_maker() as session:
            following = select(Follow.following_id).where(Follow.follower_id == user_id)
            videos = (await session.execute(
                select(Video)
                .where(Video.user_id.in_(following))
                .order_by(Video.created_at.desc(), Video.id.desc())
                .limit(limit)
            )).scalars().all()
        return self._cards(videos)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------
    async def _local_search(self, query: str, sort: str, window: int) -> list[Video]:
        pattern = _like_pattern(query)
        order = _order_by(sort)
        async with self.session_maker() as session:
            tagged = select(VideoTag.video_id).where(VideoTag.tag_name.ilike(pattern, escape="\\"))
            tag_hits = (await session.execute(
                select(Video).where(Video.id.in_(tagged)).order_by(*order).limit(window)
            )).scalars().all()
            text_hits = (await session.execute(
                select(Video)
                .where(or_(
                    Video.title.ilike(pattern, escape="\\"),
                    Video.description.ilike(pattern, escape="\\"),
                ))
                .order_by(*order)
                .limit(window)
            )).scalars().all()
        return merge_local_results(tag_hits, text_hits, sort)

    async def _external_search(self, query: str, wanted: int) -> Sequence[ExternalVideo]:
        cached = self.cache.get(query)
        if cached is not None:
            logger.debug("search cache hit for %r", query)
            return cached
        try:
            found = await self.youtube.search(query, wanted)
        except YouTubeError as e:
            # quota or outage: serve local results only
            logger.warning("External search failed for %r: %s", query, e)
            return ()
        self.cache.set(query, found)
        return found

    async def search(self, query: str, page: int = 1, limit: int = 10,
                     sort: str = SORT_RELEVANCE, user_id: Optional[int] = None) -> SearchPage:
        q = (query or "").strip()
        if not q:
            raise ValidationError("Search query is required")
        page = max(1, int(page or 1))
        limit = max(1, min(int(limit or 10), MAX_PAGE_SIZE))
        sort = normalize_sort(sort)
        offset = (page - 1) * limit

        merged = await self._local_search(q, sort, offset + limit)
        local = merged[offset:offset + limit]
        cards = self._cards(local)

        external_cards: list[VideoCard] = []
        if len(local) < limit:
            wanted = min(limit - len(local), self.external_ceiling)
            have = {c.youtube_video_id for c in cards}
            for video in await self._external_search(q, wanted):
                if len(cards) + len(external_cards) >= limit:
                    break
                if video.youtube_video_id in have:
                    continue
                have.add(video.youtube_video_id)
                external_cards.append(VideoCard.from_external(video))

        videos = (cards + external_cards)[:limit]
        if user_id is not None:
            self.queue.submit(
                lambda: self.log_search(user_id, q, len(videos)),
                name=f"search-log:{user_id}",
            )
        return SearchPage(
            videos=videos,
            source_counts={"local": len(cards), "external": len(external_cards)},
            total=len(videos),
            page=page,
            page_size=limit,
        )

    async def log_search(self, user_id: int, query: str, result_count: int) -> None:
        try:
            async with self.session_maker() as session:
                await session.execute(insert(SearchHistory).values(
                    user_id=user_id, query=query[:200], result_count=result_count,
                ))
                await session.commit()
        except Exception:  # noqa: BLE001
            logger.exception("Failed to record search history for user %s", user_id)

    # ------------------------------------------------------------------
    # Browse
    # ------------------------------------------------------------------
    async def recent(self, limit: int = 20, offset: int = 0, tag: Optional[str] = None,
                     sort: str = SORT_VIEWS) -> list[VideoCard]:
        """Popular videos, one card per YouTube id, optionally within a tag category."""
        category: Optional[TagCategory] = parse_category(tag)
        limit = max(1, min(int(limit or 20), MAX_PAGE_SIZE))
        offset = max(0, int(offset or 0))
        sort = normalize_sort(sort, allow_relevance=False)

        stmt = select(Video).order_by(*_order_by(sort))
        if category is not None:
            names = sorted(s.lower() for s in synonyms_for(category))
            stmt = stmt.where(Video.id.in_(
                select(VideoTag.video_id).where(func.lower(VideoTag.tag_name).in_(names))
            ))

        wanted = offset + limit
        batch = max(wanted * 2, 50)
        collected: list[Video] = []
        seen: set[str] = set()
        cursor = 0
        async with self.session_maker() as session:
            while len(collected) < wanted:
                rows = (await session.execute(stmt.offset(cursor).limit(batch))).scalars().all()
                for video in rows:
                    if video.youtube_video_id not in seen:
                        seen.add(video.youtube_video_id)
                        collected.append(video)
                if len(rows) < batch:
                    break
                cursor += batch
        return self._cards(collected[offset:offset + limit])

    # ------------------------------------------------------------------
    # Detail
    # ------------------------------------------------------------------
    async def get_by_id(self, ref) -> VideoCard:
        raw = str(ref).strip()
        if not raw.isdigit():
            yt_id = extract_video_id(raw)
            if not yt_id:
                raise ValidationError("Invalid video id")
            meta = await self.youtube.get_metadata(yt_id)
            if meta is None:
                raise NotFoundError("Video not found")
            return VideoCard(
                youtube_video_id=yt_id,
                title=meta.title,
                description=meta.description,
                thumbnail=meta.thumbnail,
                source="youtube",
            )

        async with self.session_maker() as session:
            video = await session.get(Video, int(raw))
        if video is None:
            raise NotFoundError("Video not found")
        return self._cards([video])[0]

    async def videos_by_user(self, user_id: int) -> list[VideoCard]:
        async with self.session_maker() as session:
            videos = (await session.execute(
                select(Video)
                .where(Video.user_id == user_id)
                .order_by(Video.created_at.desc(), Video.id.desc())
            )).scalars().all()
        return self._cards(videos)


__all__ = ["FeedService", "normalize_sort", "merge_local_results"]
