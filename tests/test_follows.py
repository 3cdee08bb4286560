from __future__ import annotations

import pytest

from petflix.errors import AlreadyFollowingError, NotFoundError, ValidationError

pytestmark = pytest.mark.anyio


async def test_follow_and_lists(services, make_user) -> None:
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    await services.follows.follow(bob.id, alice.id)
    await services.follows.follow(carol.id, alice.id)

    followers = await services.follows.followers(alice.id)
    assert sorted(u.username for u in followers) == ["bob", "carol"]
    assert [u.username for u in await services.follows.following(bob.id)] == ["alice"]
    assert await services.follows.status(bob.id, alice.id) == {"following": True, "followed_by": False}


async def test_follow_rejections(services, make_user) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    with pytest.raises(ValidationError):
        await services.follows.follow(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        await services.follows.follow(alice.id, 9999)
    await services.follows.follow(alice.id, bob.id)
    with pytest.raises(AlreadyFollowingError):
        await services.follows.follow(alice.id, bob.id)


async def test_unfollow_clears_preference(services, make_user) -> None:
    alice, bob = await make_user("alice"), await make_user("bob")
    await services.follows.follow(alice.id, bob.id)
    await services.notifications.set_follow_preference(alice.id, bob.id, False)

    assert await services.follows.unfollow(alice.id, bob.id) is True
    assert await services.notifications.get_follow_preference(alice.id, bob.id) is True
    with pytest.raises(NotFoundError):
        await services.follows.unfollow(alice.id, bob.id)
