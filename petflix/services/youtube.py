"""YouTube metadata provider.

oEmbed lookups are free and unmetered; the Data API endpoints (statistics and
search) consume quota and raise :class:`QuotaExceededError` when it runs out.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"
OEMBED_URL = "https://www.youtube.com/oembed"

_VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
_URL_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)([^&\n?#/]+)"),
    re.compile(r"youtube\.com/watch\?.*v=([^&\n?#]+)"),
)


class YouTubeError(RuntimeError):
    pass


class YouTubeNotConfiguredError(YouTubeError):
    pass


class QuotaExceededError(YouTubeError):
    pass


class VideoNotFoundError(YouTubeError):
    pass


@dataclass(slots=True, frozen=True)
class VideoMetadata:
    title: str
    description: str
    thumbnail: Optional[str] = None


@dataclass(slots=True, frozen=True)
class ExternalVideo:
    youtube_video_id: str
    title: str
    description: str
    thumbnail: Optional[str] = None
    channel_title: Optional[str] = None
    published_at: Optional[str] = None
    view_count: int = 0


def thumbnail_url(video_id: str) -> str:
    return f"https://i.ytimg.com/vi/{video_id}/mqdefault.jpg"


def is_valid_video_id(value: str) -> bool:
    return bool(_VIDEO_ID_RE.match(value or ""))


def extract_video_id(value: str) -> Optional[str]:
    """Return the YouTube id from a bare id or any common URL form."""
    raw = (value or "").strip()
    if not raw:
        return None
    if raw.startswith("youtube_"):
        raw = raw[len("youtube_"):]
    if is_valid_video_id(raw):
        return raw
    for pattern in _URL_PATTERNS:
        m = pattern.search(raw)
        if m and is_valid_video_id(m.group(1)):
            return m.group(1)
    return None


def _as_int(value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _thumbnail(snippet: dict) -> Optional[str]:
    thumbs = snippet.get("thumbnails") or {}
    for size in ("medium", "default", "high"):
        url = (thumbs.get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeClient:
    def __init__(self, api_key: Optional[str], *, timeout: float = 5.0,
                 client: Optional[httpx.AsyncClient] = None) -> None:
        self.api_key = api_key
        self.timeout = timeout
        # injected client is owned by the caller (tests use httpx.MockTransport)
        self._client = client

    async def _get(self, url: str, params: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.get(url, params=params, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.get(url, params=params)

    async def _api_get(self, path: str, params: dict) -> dict:
        if not self.api_key:
            raise YouTubeNotConfiguredError("YouTube API key is not configured")
        try:
            r = await self._get(f"{YOUTUBE_API_URL}/{path}", {**params, "key": self.api_key})
        except httpx.HTTPError as e:
            raise YouTubeError(f"YouTube request failed: {e}") from e
        if r.status_code >= 400:
            raise self._api_error(r)
        try:
            return r.json() or {}
        except ValueError as e:
            raise YouTubeError("Malformed YouTube API response") from e

    @staticmethod
    def _api_error(r: httpx.Response) -> YouTubeError:
        try:
            err = (r.json() or {}).get("error") or {}
        except ValueError:
            err = {}
        reasons = [e.get("reason") for e in (err.get("errors") or []) if isinstance(e, dict)]
        if r.status_code == 403 and ("quotaExceeded" in reasons or "dailyLimitExceeded" in reasons):
            return QuotaExceededError("YouTube API quota exceeded")
        if r.status_code == 404 or "videoNotFound" in reasons:
            return VideoNotFoundError("Video not found on YouTube")
        return YouTubeError(err.get("message") or f"YouTube API error ({r.status_code})")

    async def get_metadata(self, video_id: str) -> Optional[VideoMetadata]:
        """Title/description/thumbnail via oEmbed; ``None`` when unavailable."""
        params = {"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"}
        try:
            r = await self._get(OEMBED_URL, params)
            r.raise_for_status()
            data = r.json() or {}
        except (httpx.HTTPError, ValueError):
            logger.info("oEmbed lookup failed for %s", video_id)
            return None
        author = (data.get("author_name") or "").strip()
        return VideoMetadata(
            title=(data.get("title") or f"YouTube Video {video_id}").strip(),
            description=f"By {author}" if author else "",
            thumbnail=data.get("thumbnail_url"),
        )

    async def get_stats(self, video_id: str) -> int:
        """Current view count. Costs quota."""
        data = await self._api_get("videos", {"part": "statistics", "id": video_id})
        items = data.get("items") or []
        if not items:
            raise VideoNotFoundError(f"Video {video_id} not found on YouTube")
        return _as_int((items[0].get("statistics") or {}).get("viewCount"))

    async def search(self, query: str, limit: int = 10) -> list[ExternalVideo]:
        """Search videos, then enrich them with view counts. Costs quota."""
        data = await self._api_get(
            "search",
            {"part": "snippet", "q": query, "type": "video", "maxResults": max(1, min(limit, 50))},
        )
        found: list[tuple[str, dict]] = []
        for item in data.get("items") or []:
            vid = (item.get("id") or {}).get("videoId")
            if vid:
                found.append((vid, item.get("snippet") or {}))
        if not found:
            return []

        views: dict[str, int] = {}
        try:
            stats = await self._api_get("videos", {"part": "statistics", "id": ",".join(v for v, _ in found)})
            for item in stats.get("items") or []:
                views[item.get("id")] = _as_int((item.get("statistics") or {}).get("viewCount"))
        except YouTubeError:
            # view counts are cosmetic here; keep the search hits
            logger.info("YouTube statistics lookup failed for search %r", query)

        return [
            ExternalVideo(
                youtube_video_id=vid,
                title=snippet.get("title") or "",
                description=snippet.get("description") or "",
                thumbnail=_thumbnail(snippet),
                channel_title=snippet.get("channelTitle"),
                published_at=snippet.get("publishedAt"),
                view_count=views.get(vid, 0),
            )
            for vid, snippet in found[:limit]
        ]


__all__ = [
    "YouTubeClient",
    "YouTubeError",
    "YouTubeNotConfiguredError",
    "QuotaExceededError",
    "VideoNotFoundError",
    "VideoMetadata",
    "ExternalVideo",
    "extract_video_id",
    "is_valid_video_id",
    "thumbnail_url",
]
