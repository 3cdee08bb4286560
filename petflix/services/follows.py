# services/follows.py
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from petflix.errors import AlreadyFollowingError, NotFoundError, ValidationError
from petflix.models import Follow, FollowNotificationPreference, User
from petflix.services.notifications import NotificationService

logger = logging.getLogger(__name__)


class FollowService:
    def __init__(self, session_maker, notifications: NotificationService) -> None:
        self.session_maker = session_maker
        self.notifications = notifications

    async def follow(self, follower_id: int, following_id: int) -> Follow:
        if follower_id == following_id:
            raise ValidationError("You cannot follow yourself")
        async with self.session_maker() as session:
            if await session.get(User, following_id) is None:
                raise NotFoundError("User not found")
            if await session.get(Follow, (follower_id, following_id)) is not None:
                raise AlreadyFollowingError()
            edge = Follow(follower_id=follower_id, following_id=following_id)
            session.add(edge)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise AlreadyFollowingError() from None
        self.notifications.schedule_new_follower(following_id, follower_id)
        return edge

    async def unfollow(self, follower_id: int, following_id: int) -> bool:
        async with self.session_maker() as session:
            res = await session.execute(
                delete(Follow)
                .where(Follow.follower_id == follower_id)
                .where(Follow.following_id == following_id)
            )
            # the per-follow opt-out only means something while following
            await session.execute(
                delete(FollowNotificationPreference)
                .where(FollowNotificationPreference.user_id == follower_id)
                .where(FollowNotificationPreference.following_user_id == following_id)
            )
            await session.commit()
        if not res.rowcount:
            raise NotFoundError("You are not following this user")
        return True

    async def followers(self, user_id: int) -> list[User]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(User)
                .join(Follow, Follow.follower_id == User.id)
                .where(Follow.following_id == user_id)
                .order_by(Follow.created_at.desc())
            )
            return list(rows.scalars().all())

    async def following(self, user_id: int) -> list[User]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(User)
                .join(Follow, Follow.following_id == User.id)
                .where(Follow.follower_id == user_id)
                .order_by(Follow.created_at.desc())
            )
            return list(rows.scalars().all())

    async def status(self, viewer_id: int, other_id: int) -> dict:
        async with self.session_maker() as session:
            following = await session.get(Follow, (viewer_id, other_id)) is not None
            followed_by = await session.get(Follow, (other_id, viewer_id)) is not None
        return {"following": following, "followed_by": followed_by}
