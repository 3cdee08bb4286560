from __future__ import annotations

import pytest
from sqlalchemy import event, select

from petflix.errors import NotFoundError, ValidationError
from petflix.models import Notification, NotificationType, PushSubscription
from petflix.services.push import PushDispatcher, PushPayload, PushResult, build_transport
from petflix.settings.config import Settings

pytestmark = pytest.mark.anyio

YT = "dQw4w9WgXcQ"


async def _notes(session_maker, user_id: int) -> list[Notification]:
    async with session_maker() as session:
        return list((await session.execute(
            select(Notification).where(Notification.user_id == user_id).order_by(Notification.id)
        )).scalars().all())


async def test_share_fans_out_to_opted_in_followers(services, make_user, follow, subscribe,
                                                    session_maker, push_transport) -> None:
    owner = await make_user("owner")
    a, b, c = await make_user("a"), await make_user("b"), await make_user("c")
    for follower in (a, b, c):
        await follow(follower.id, owner.id)
    await services.notifications.set_follow_preference(b.id, owner.id, False)
    await subscribe(a.id, "https://push.example/a")
    await subscribe(b.id, "https://push.example/b")

    video = await services.attribution.share(owner.id, YT)
    await services.queue.join()

    for user in (a, c):
        notes = await _notes(session_maker, user.id)
        assert len(notes) == 1
        assert notes[0].type == NotificationType.video_shared
        assert notes[0].related_video_id == video.id
        assert notes[0].title == "owner shared a new video"
    assert await _notes(session_maker, b.id) == []
    assert push_transport.sent == [("https://push.example/a", "owner shared a new video")]


async def test_repost_fanout_uses_reposted_wording(services, make_user, follow, session_maker) -> None:
    alice, bob, fan = await make_user("alice"), await make_user("bob"), await make_user("fan")
    await follow(fan.id, bob.id)
    original = await services.attribution.share(alice.id, YT)
    await services.attribution.repost(bob.id, original.id)
    await services.queue.join()

    notes = await _notes(session_maker, fan.id)
    assert [n.title for n in notes] == ["bob reposted a video"]


async def test_fanout_batches_large_audiences(services, make_user, follow, add_video,
                                             session_maker, engine) -> None:
    # batch size is 2 in the test container
    owner = await make_user("owner")
    video = await add_video(owner.id, YT, views=1)
    fans = [await make_user(f"fan{i}") for i in range(5)]
    for fan in fans:
        await follow(fan.id, owner.id)

    inserts = []

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_inserts(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("INSERT INTO notification"):
            inserts.append(statement)

    recipients = await services.notifications.notify_followers_of_share(owner.id, video.id, "x" * 80)

    assert sorted(recipients) == sorted(f.id for f in fans)
    assert len(inserts) == 3
    note = (await _notes(session_maker, fans[0].id))[0]
    assert note.message == "x" * 60 + "..."
    assert note.related_video_id == video.id


async def test_direct_notification_to_self_is_skipped(services, make_user, session_maker) -> None:
    alice = await make_user("alice")
    result = await services.notifications.notify_direct(
        alice.id, NotificationType.like, "Someone liked your video", "nice", related_user_id=alice.id,
    )
    assert result is None
    assert await _notes(session_maker, alice.id) == []


async def test_new_follower_notice(services, make_user, session_maker) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    await services.follows.follow(bob.id, alice.id)
    await services.queue.join()
    notes = await _notes(session_maker, alice.id)
    assert [(n.type, n.related_user_id) for n in notes] == [(NotificationType.follow, bob.id)]


async def test_inbox_listing_and_read_state(services, make_user) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    ids = [
        await services.notifications.notify_direct(
            alice.id, NotificationType.comment, f"comment {i}", "hi", related_user_id=bob.id,
        )
        for i in range(3)
    ]

    items, unread = await services.notifications.list_notifications(alice.id)
    assert unread == 3
    assert [n.id for n in items] == list(reversed(ids))

    await services.notifications.mark_read(alice.id, ids[0])
    items, unread = await services.notifications.list_notifications(alice.id, unread_only=True)
    assert unread == 2
    assert ids[0] not in [n.id for n in items]

    with pytest.raises(NotFoundError):
        await services.notifications.mark_read(bob.id, ids[1])

    assert await services.notifications.mark_all_read(alice.id) == 2
    _, unread = await services.notifications.list_notifications(alice.id)
    assert unread == 0


async def test_follow_preference_rules(services, make_user, follow) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    with pytest.raises(ValidationError):
        await services.notifications.set_follow_preference(alice.id, alice.id, False)
    with pytest.raises(ValidationError):
        await services.notifications.set_follow_preference(alice.id, bob.id, False)

    await follow(alice.id, bob.id)
    assert await services.notifications.get_follow_preference(alice.id, bob.id) is True
    await services.notifications.set_follow_preference(alice.id, bob.id, False)
    assert await services.notifications.get_follow_preference(alice.id, bob.id) is False


# ----------------------------------------------------------------------
# Push delivery
# ----------------------------------------------------------------------
async def test_push_prunes_gone_subscriptions_only(services, make_user, subscribe, push_transport,
                                                   session_maker) -> None:
    alice = await make_user("alice")
    for endpoint in ("https://push/404", "https://push/410", "https://push/500", "https://push/ok"):
        await subscribe(alice.id, endpoint)
    push_transport.results = {
        "https://push/404": PushResult.permanent_failure,
        "https://push/410": PushResult.permanent_failure,
        "https://push/500": PushResult.transient_failure,
    }

    counts = await services.push.send_to_user(alice.id, PushPayload(title="t", body="b"))

    assert counts == {"sent": 1, "removed": 2, "failed": 1}
    async with session_maker() as session:
        left = (await session.execute(
            select(PushSubscription.endpoint).where(PushSubscription.user_id == alice.id)
        )).scalars().all()
    assert sorted(left) == ["https://push/500", "https://push/ok"]


async def test_push_respects_global_switch(services, make_user, subscribe, push_transport) -> None:
    alice = await make_user("alice")
    await subscribe(alice.id, "https://push/ok")
    await services.notifications.set_global_preference(alice.id, False)

    counts = await services.push.send_to_user(alice.id, PushPayload(title="t", body="b"))

    assert counts == {"sent": 0, "removed": 0, "failed": 0}
    assert push_transport.sent == []


async def test_subscription_registration_moves_endpoint(services, make_user) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    await services.push.register_subscription(alice.id, "https://push/x", "p", "a")
    await services.push.register_subscription(bob.id, "https://push/x", "p2", "a2")

    assert await services.push.has_subscription(alice.id) is False
    assert await services.push.has_subscription(bob.id) is True
    assert await services.push.unregister_subscription(bob.id) == 1


def test_payload_json_carries_url() -> None:
    payload = PushPayload(title="t", body="b", url="/videos/3", data={"videoId": 3})
    assert '"url": "/videos/3"' in payload.to_json()
    assert '"videoId": 3' in payload.to_json()


class _PoolWatchingTransport:
    def __init__(self, pool) -> None:
        self.pool = pool
        self.checked_out: list[int] = []

    async def send(self, subscription, payload) -> PushResult:
        self.checked_out.append(self.pool.checkedout())
        return PushResult.permanent_failure


async def test_push_send_holds_no_connection(make_user, subscribe, session_maker, engine) -> None:
    alice = await make_user("alice")
    await subscribe(alice.id, "https://push/gone")
    transport = _PoolWatchingTransport(engine.sync_engine.pool)

    counts = await PushDispatcher(session_maker, transport).send_to_user(
        alice.id, PushPayload(title="t", body="b"),
    )

    assert transport.checked_out == [0]
    assert counts["removed"] == 1


def test_push_disabled_without_vapid_keys() -> None:
    assert build_transport(Settings(SECRET="test", VAPID_PUBLIC_KEY="", VAPID_PRIVATE_KEY="")) is None
    transport = build_transport(Settings(SECRET="test", VAPID_PUBLIC_KEY="pub", VAPID_PRIVATE_KEY="priv"))
    assert transport.vapid_private_key == "priv"
