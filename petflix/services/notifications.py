"""Notification fan-out for shares, reposts, follows and direct events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, insert, select, update

from petflix.background import TaskQueue
from petflix.errors import NotFoundError, ValidationError
from petflix.models import (
    Follow,
    FollowNotificationPreference,
    Notification,
    NotificationType,
    User,
    UserNotificationPreference,
)
from petflix.services.push import PushDispatcher, PushPayload

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100
MESSAGE_TITLE_LIMIT = 60


@dataclass(slots=True)
class _FanoutContext:
    owner_id: int
    owner_name: str
    video_id: int
    video_title: str
    reposted: bool

    @property
    def title(self) -> str:
        verb = "reposted a video" if self.reposted else "shared a new video"
        return f"{self.owner_name} {verb}"

    @property
    def message(self) -> str:
        return _trim(self.video_title, limit=MESSAGE_TITLE_LIMIT)


def _trim(value: str, *, limit: int) -> str:
    value = (value or "").strip()
    if len(value) <= limit:
        return value
    return value[:limit] + "..."


def _chunks(items: list, size: int):
    for i in range(0, len(items), size):
        yield items[i:i + size]


async def _username(session, user_id: int) -> str:
    name = (await session.execute(select(User.username).where(User.id == user_id))).scalar_one_or_none()
    return (name or "").strip() or "Someone"


class NotificationService:
    def __init__(self, session_maker, push: PushDispatcher, queue: TaskQueue,
                 batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        self.session_maker = session_maker
        self.push = push
        self.queue = queue
        self.batch_size = max(1, batch_size)

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------
    async def _audience(self, session, owner_id: int) -> list[int]:
        follower_ids = (await session.execute(
            select(Follow.follower_id)
            .where(Follow.following_id == owner_id)
            .order_by(Follow.created_at, Follow.follower_id)
        )).scalars().all()
        if not follower_ids:
            return []
        opted_out = set((await session.execute(
            select(FollowNotificationPreference.user_id)
            .where(FollowNotificationPreference.following_user_id == owner_id)
            .where(FollowNotificationPreference.notifications_enabled.is_(False))
        )).scalars().all())
        return [fid for fid in follower_ids if fid not in opted_out]

    async def notify_followers_of_share(self, owner_id: int, video_id: int, title: str,
                                        *, reposted: bool = False) -> list[int]:
        """Persist one notification per opted-in follower, then queue pushes.

        Returns the ids of the notified users. Failures are logged, never raised.
        """
        try:
            async with self.session_maker() as session:
                recipients = await self._audience(session, owner_id)
                if not recipients:
                    logger.debug("notify_followers_of_share: no audience for user %s", owner_id)
                    return []

                ctx = _FanoutContext(
                    owner_id=owner_id,
                    owner_name=await _username(session, owner_id),
                    video_id=video_id,
                    video_title=title,
                    reposted=reposted,
                )
                rows = [
                    {
                        "user_id": uid,
                        "type": NotificationType.video_shared,
                        "title": ctx.title,
                        "message": ctx.message,
                        "related_user_id": owner_id,
                        "related_video_id": video_id,
                        "read": False,
                    }
                    for uid in recipients
                ]
                for batch in _chunks(rows, self.batch_size):
                    await session.execute(insert(Notification), batch)
                await session.commit()
        except Exception:  # noqa: BLE001
            logger.exception("notify_followers_of_share: failed for owner %s video %s", owner_id, video_id)
            return []

        payload = PushPayload(
            title=ctx.title,
            body=ctx.message,
            url=f"/videos/{video_id}",
            tag=f"video-{video_id}",
            data={"type": NotificationType.video_shared.value, "videoId": video_id},
        )
        for uid in recipients:
            self._queue_push(uid, payload)
        logger.info("Notified %d follower(s) of user %s about video %s", len(recipients), owner_id, video_id)
        return recipients

    async def notify_direct(
        self,
        target_user_id: int,
        type: NotificationType,
        title: str,
        message: str,
        related_user_id: Optional[int] = None,
        related_video_id: Optional[int] = None,
    ) -> Optional[int]:
        """Single-recipient notification; returns the new row id or ``None`` if skipped."""
        if related_user_id is not None and related_user_id == target_user_id:
            logger.debug("notify_direct: skipping self-notification for user %s", target_user_id)
            return None
        try:
            async with self.session_maker() as session:
                note = Notification(
                    user_id=target_user_id,
                    type=NotificationType(type),
                    title=title,
                    message=message,
                    related_user_id=related_user_id,
                    related_video_id=related_video_id,
                    read=False,
                )
                session.add(note)
                await session.commit()
                note_id = note.id
        except Exception:  # noqa: BLE001
            logger.exception("notify_direct: failed to persist %s for user %s", type, target_user_id)
            return None

        url = f"/videos/{related_video_id}" if related_video_id else None
        self._queue_push(target_user_id, PushPayload(
            title=title,
            body=message,
            url=url,
            tag=f"{NotificationType(type).value}-{note_id}",
            data={"type": NotificationType(type).value, "notificationId": note_id},
        ))
        return note_id

    async def notify_new_follower(self, followed_user_id: int, follower_id: int) -> Optional[int]:
        async with self.session_maker() as session:
            name = await _username(session, follower_id)
        return await self.notify_direct(
            followed_user_id,
            NotificationType.follow,
            f"{name} started following you",
            f"{name} is now following you",
            related_user_id=follower_id,
        )

    async def notify_repost(self, original_user_id: int, reposter_id: int, video_id: int,
                            video_title: str) -> Optional[int]:
        async with self.session_maker() as session:
            name = await _username(session, reposter_id)
        return await self.notify_direct(
            original_user_id,
            NotificationType.repost,
            f"{name} reposted your video",
            _trim(video_title, limit=MESSAGE_TITLE_LIMIT),
            related_user_id=reposter_id,
            related_video_id=video_id,
        )

    def _queue_push(self, user_id: int, payload: PushPayload) -> None:
        self.queue.submit(lambda: self.push.send_to_user(user_id, payload), name=f"push:{user_id}")

    # Fire-and-forget triggers used by the request path.
    def schedule_share_fanout(self, owner_id: int, video_id: int, title: str, *, reposted: bool = False):
        return self.queue.submit(
            lambda: self.notify_followers_of_share(owner_id, video_id, title, reposted=reposted),
            name=f"fanout:{video_id}",
        )

    def schedule_repost_notice(self, original_user_id: int, reposter_id: int, video_id: int, video_title: str):
        return self.queue.submit(
            lambda: self.notify_repost(original_user_id, reposter_id, video_id, video_title),
            name=f"repost-notice:{video_id}",
        )

    def schedule_new_follower(self, followed_user_id: int, follower_id: int):
        return self.queue.submit(
            lambda: self.notify_new_follower(followed_user_id, follower_id),
            name=f"follow-notice:{followed_user_id}",
        )

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------
    async def list_notifications(self, user_id: int, limit: int = 20,
                                 unread_only: bool = False) -> tuple[list[Notification], int]:
        async with self.session_maker() as session:
            stmt = (
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc(), Notification.id.desc())
                .limit(max(1, min(limit, 100)))
            )
            if unread_only:
                stmt = stmt.where(Notification.read.is_(False))
            items = list((await session.execute(stmt)).scalars().all())
            unread = (await session.execute(
                select(func.count(Notification.id))
                .where(Notification.user_id == user_id)
                .where(Notification.read.is_(False))
            )).scalar_one()
            return items, int(unread or 0)

    async def mark_read(self, user_id: int, notification_id: int) -> Notification:
        async with self.session_maker() as session:
            note = await session.get(Notification, notification_id)
            if note is None or note.user_id != user_id:
                raise NotFoundError("Notification not found")
            note.read = True
            await session.commit()
            return note

    async def mark_all_read(self, user_id: int) -> int:
        async with self.session_maker() as session:
            res = await session.execute(
                update(Notification)
                .where(Notification.user_id == user_id)
                .where(Notification.read.is_(False))
                .values(read=True)
            )
            await session.commit()
            return res.rowcount or 0

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------
    async def set_follow_preference(self, user_id: int, following_user_id: int,
                                    enabled: bool) -> FollowNotificationPreference:
        if user_id == following_user_id:
            raise ValidationError("Cannot set notification preference for yourself")
        async with self.session_maker() as session:
            follows = await session.get(Follow, (user_id, following_user_id))
            if follows is None:
                raise ValidationError("You must follow this user to set notification preferences")
            pref = (await session.execute(
                select(FollowNotificationPreference)
                .where(FollowNotificationPreference.user_id == user_id)
                .where(FollowNotificationPreference.following_user_id == following_user_id)
            )).scalars().first()
            if pref is None:
                pref = FollowNotificationPreference(user_id=user_id, following_user_id=following_user_id)
                session.add(pref)
            pref.notifications_enabled = bool(enabled)
            pref.updated_at = datetime.now(timezone.utc)
            await session.commit()
            return pref

    async def get_follow_preference(self, user_id: int, following_user_id: int) -> bool:
        async with self.session_maker() as session:
            enabled = (await session.execute(
                select(FollowNotificationPreference.notifications_enabled)
                .where(FollowNotificationPreference.user_id == user_id)
                .where(FollowNotificationPreference.following_user_id == following_user_id)
            )).scalar_one_or_none()
            return True if enabled is None else bool(enabled)

    async def set_global_preference(self, user_id: int, enabled: bool) -> UserNotificationPreference:
        async with self.session_maker() as session:
            pref = await session.get(UserNotificationPreference, user_id)
            if pref is None:
                pref = UserNotificationPreference(user_id=user_id)
                session.add(pref)
            pref.notifications_enabled = bool(enabled)
            await session.commit()
            return pref


__all__ = ["NotificationService"]
