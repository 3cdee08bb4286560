from __future__ import annotations

import httpx
import pytest

from petflix.services.youtube import (
    QuotaExceededError,
    VideoNotFoundError,
    YouTubeClient,
    YouTubeNotConfiguredError,
    extract_video_id,
)

pytestmark = pytest.mark.anyio

VID = "dQw4w9WgXcQ"


def _client(handler, api_key="key") -> YouTubeClient:
    return YouTubeClient(api_key, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _quota_response() -> httpx.Response:
    return httpx.Response(403, json={"error": {"errors": [{"reason": "quotaExceeded"}], "message": "quota"}})


@pytest.mark.parametrize(
    "value",
    [
        VID,
        f"youtube_{VID}",
        f"https://www.youtube.com/watch?v={VID}&t=10",
        f"https://youtu.be/{VID}",
        f"https://www.youtube.com/embed/{VID}",
        f"https://www.youtube.com/shorts/{VID}",
        f"https://www.youtube.com/watch?feature=share&v={VID}",
    ],
)
def test_extract_video_id(value) -> None:
    assert extract_video_id(value) == VID


@pytest.mark.parametrize("value", ["", "short", "https://example.com/watch?v=123"])
def test_extract_video_id_rejects(value) -> None:
    assert extract_video_id(value) is None


async def test_get_stats_reads_view_count() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/videos")
        assert request.url.params["key"] == "key"
        return httpx.Response(200, json={"items": [{"id": VID, "statistics": {"viewCount": "1500"}}]})

    assert await _client(handler).get_stats(VID) == 1500


async def test_get_stats_errors() -> None:
    with pytest.raises(QuotaExceededError):
        await _client(lambda r: _quota_response()).get_stats(VID)
    with pytest.raises(VideoNotFoundError):
        await _client(lambda r: httpx.Response(200, json={"items": []})).get_stats(VID)
    with pytest.raises(YouTubeNotConfiguredError):
        await _client(lambda r: httpx.Response(200, json={}), api_key=None).get_stats(VID)


async def test_get_metadata_via_oembed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/oembed"
        return httpx.Response(200, json={"title": "Cat vs cucumber", "author_name": "Cats TV"})

    meta = await _client(handler, api_key=None).get_metadata(VID)
    assert meta.title == "Cat vs cucumber"
    assert meta.description == "By Cats TV"


async def test_get_metadata_failure_returns_none() -> None:
    assert await _client(lambda r: httpx.Response(404)).get_metadata(VID) is None


async def test_search_enriches_with_views() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"items": [
                {"id": {"videoId": "aaaaaaaaaaa"}, "snippet": {"title": "A", "channelTitle": "ch"}},
                {"id": {"videoId": "bbbbbbbbbbb"}, "snippet": {"title": "B"}},
                {"id": {"kind": "youtube#channel"}, "snippet": {"title": "skip me"}},
            ]})
        return httpx.Response(200, json={"items": [{"id": "aaaaaaaaaaa", "statistics": {"viewCount": "9"}}]})

    found = await _client(handler).search("otters", 5)
    assert [(v.youtube_video_id, v.view_count) for v in found] == [("aaaaaaaaaaa", 9), ("bbbbbbbbbbb", 0)]
    assert found[0].channel_title == "ch"


async def test_search_keeps_hits_when_stats_fail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json={"items": [{"id": {"videoId": "aaaaaaaaaaa"}, "snippet": {}}]})
        return _quota_response()

    found = await _client(handler).search("otters")
    assert [v.youtube_video_id for v in found] == ["aaaaaaaaaaa"]


async def test_search_quota_is_raised() -> None:
    with pytest.raises(QuotaExceededError):
        await _client(lambda r: _quota_response()).search("otters")
