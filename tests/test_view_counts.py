from __future__ import annotations

import pytest

pytestmark = pytest.mark.anyio


async def test_refresh_writes_provider_count(services, make_user, add_video, youtube,
                                             session_maker) -> None:
    alice = await make_user("alice")
    video = await add_video(alice.id, "aaaaaaaaaaa", views=0)
    youtube.views["aaaaaaaaaaa"] = 31

    await services.refresher.refresh(video.id, video.youtube_video_id)

    cards = await services.feed.videos_by_user(alice.id)
    assert cards[0].view_count == 31


async def test_schedule_skips_counted_and_in_flight_rows(services, make_user, add_video, youtube) -> None:
    alice = await make_user("alice")
    zero = await add_video(alice.id, "aaaaaaaaaaa", views=0)
    counted = await add_video(alice.id, "bbbbbbbbbbb", views=8)

    assert services.refresher.schedule([zero, counted]) == 1
    assert services.refresher.schedule([zero]) == 0
    await services.queue.join()

    assert youtube.calls["get_stats"] == 1
    # finished jobs leave the in-flight set
    assert services.refresher.schedule([zero]) == 1
    await services.queue.join()


async def test_refresh_failure_keeps_stored_count(services, make_user, add_video, youtube) -> None:
    alice = await make_user("alice")
    video = await add_video(alice.id, "aaaaaaaaaaa", views=0)
    youtube.quota_exceeded = True

    await services.refresher.refresh(video.id, video.youtube_video_id)

    cards = await services.feed.videos_by_user(alice.id)
    assert cards[0].view_count == 0
