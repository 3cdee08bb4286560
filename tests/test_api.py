from __future__ import annotations

import httpx
import pytest

from petflix.main import app
from petflix.users import current_active_user, optional_active_user

pytestmark = pytest.mark.anyio

YT = "dQw4w9WgXcQ"


@pytest.fixture
def current() -> dict:
    return {}


@pytest.fixture
def login(current):
    def _login(user) -> None:
        current["user"] = user

    return _login


@pytest.fixture
async def api(services, current):
    app.state.services = services
    app.dependency_overrides[current_active_user] = lambda: current["user"]
    app.dependency_overrides[optional_active_user] = lambda: current.get("user")
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def test_share_repost_and_feed_over_http(api, login, make_user) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")

    login(alice)
    r = await api.post("/api/v1/videos", json={"youtube_video_id": YT, "tags": ["Dog"]})
    assert r.status_code == 201
    video_id = r.json()["id"]

    r = await api.post("/api/v1/videos/repost", json={"video_ref": str(video_id)})
    assert r.status_code == 400
    assert r.json()["code"] == "self_repost"

    login(bob)
    r = await api.post(f"/api/v1/users/{alice.id}/follow")
    assert r.status_code == 201
    r = await api.post("/api/v1/videos/repost", json={"video_ref": str(video_id)})
    assert r.status_code == 201
    assert r.json()["attributed_user_id"] == alice.id

    r = await api.post("/api/v1/videos/repost", json={"video_ref": str(video_id)})
    assert r.status_code == 409
    assert r.json()["code"] == "already_reposted"

    r = await api.get("/api/v1/videos/feed")
    assert [v["user_id"] for v in r.json()] == [alice.id]


async def test_search_and_recent_over_http(api, make_user, add_video) -> None:
    alice = await make_user("alice")
    await add_video(alice.id, YT, title="Puppy zoomies", tags=["Puppy"], views=10)

    r = await api.get("/api/v1/videos/search", params={"q": "zoomies"})
    assert r.status_code == 200
    assert r.json()["source_counts"]["local"] == 1

    r = await api.get("/api/v1/videos/recent", params={"tag": "dogs"})
    assert [v["youtube_video_id"] for v in r.json()] == [YT]

    r = await api.get("/api/v1/videos/recent", params={"tag": "dragons"})
    assert r.status_code == 400
    assert r.json()["code"] == "validation_error"


async def test_notifications_over_http(api, login, make_user, services) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    login(bob)
    await api.post(f"/api/v1/users/{alice.id}/follow")
    await services.queue.join()

    login(alice)
    r = await api.get("/api/v1/notifications")
    body = r.json()
    assert body["unread_count"] == 1
    note_id = body["notifications"][0]["id"]

    r = await api.post(f"/api/v1/notifications/{note_id}/read")
    assert r.json()["read"] is True

    r = await api.post("/api/v1/notifications/push/subscribe", json={
        "endpoint": "https://push.example/alice", "keys": {"p256dh": "p", "auth": "a"},
    })
    assert r.json()["subscribed"] is True
    r = await api.get("/api/v1/notifications/push/status")
    assert r.json()["subscribed"] is True


async def test_category_table_over_http(api) -> None:
    r = await api.get("/api/v1/videos/categories")
    assert r.status_code == 200
    body = r.json()
    assert body["version"] >= 1
    assert "Kitten" in body["categories"]["cats"]
