from datetime import datetime, timezone
import enum

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index,
    Integer, String, Text, UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import text

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


TAG_NAME_MAX_LEN = 50


class NotificationType(str, enum.Enum):
    video_shared = "video_shared"
    repost = "repost"
    comment = "comment"
    like = "like"
    follow = "follow"


# ---------------------------
# USER MODEL
# ---------------------------
class User(Base):
    __tablename__ = "user"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    videos = relationship(
        "Video",
        foreign_keys="Video.user_id",
        back_populates="sharer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<User {self.id} {self.username}>"


# ---------------------------
# VIDEOS
# ---------------------------
class Video(Base):
    """A shared YouTube video.

    ``original_user_id`` is NULL for an original share. For a repost it names
    the credited original sharer, which is always the root sharer and never
    another reposter.
    """
    __tablename__ = "video"

    id = Column(Integer, primary_key=True, index=True)
    youtube_video_id = Column(String(32), nullable=False, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    original_user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True, index=True)
    view_count = Column(BigInteger, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    sharer = relationship("User", foreign_keys=[user_id], back_populates="videos", lazy="selectin")
    original_sharer = relationship("User", foreign_keys=[original_user_id], lazy="selectin")
    tags = relationship(
        "VideoTag",
        back_populates="video",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="VideoTag.id",
    )

    __table_args__ = (
        CheckConstraint(
            "original_user_id IS NULL OR original_user_id <> user_id",
            name="ck_video_no_self_repost",
        ),
        # one original share per (video, sharer)
        Index(
            "uq_video_original_share",
            "youtube_video_id", "user_id",
            unique=True,
            postgresql_where=text("original_user_id IS NULL"),
            sqlite_where=text("original_user_id IS NULL"),
        ),
        # one repost per (video, reposter)
        Index(
            "uq_video_repost",
            "youtube_video_id", "user_id",
            unique=True,
            postgresql_where=text("original_user_id IS NOT NULL"),
            sqlite_where=text("original_user_id IS NOT NULL"),
        ),
        Index("ix_video_user_created", "user_id", "created_at"),
        Index("ix_video_views_created", "view_count", "created_at"),
    )

    @property
    def is_repost(self) -> bool:
        return self.original_user_id is not None

    @property
    def attributed_user_id(self) -> int:
        # reposts are rendered as the original sharer's video
        return self.original_user_id if self.original_user_id is not None else self.user_id

    @property
    def tag_names(self) -> list[str]:
        return [t.tag_name for t in (self.tags or [])]

    def __repr__(self):
        kind = "repost" if self.is_repost else "share"
        return f"<Video {self.id} {kind} {self.youtube_video_id} by {self.user_id}>"


class VideoTag(Base):
    __tablename__ = "video_tag"

    id = Column(Integer, primary_key=True)
    video_id = Column(Integer, ForeignKey("video.id", ondelete="CASCADE"), nullable=False, index=True)
    tag_name = Column(String(TAG_NAME_MAX_LEN), nullable=False, index=True)

    video = relationship("Video", back_populates="tags")

    __table_args__ = (UniqueConstraint("video_id", "tag_name", name="uq_video_tag"),)

    def __repr__(self):
        return f"<VideoTag {self.tag_name}>"


# ---------------------------
# FOLLOW GRAPH
# ---------------------------
class Follow(Base):
    __tablename__ = "follow"

    follower_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    following_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("follower_id <> following_id", name="ck_follow_not_self"),
    )


class FollowNotificationPreference(Base):
    """Per-relationship opt-out; a missing row means notifications are on."""
    __tablename__ = "follow_notification_preference"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    following_user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "following_user_id", name="uq_follow_pref_user_following"),
    )


class UserNotificationPreference(Base):
    """Global push switch; a missing row means push is on."""
    __tablename__ = "user_notification_preference"

    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    notifications_enabled = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


# ---------------------------
# NOTIFICATIONS
# ---------------------------
class Notification(Base):
    __tablename__ = "notification"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    type = Column(SAEnum(NotificationType, name="notification_type"), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    related_user_id = Column(Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    related_video_id = Column(Integer, ForeignKey("video.id", ondelete="SET NULL"), nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_notification_user_read_created", "user_id", "read", "created_at"),
    )


class PushSubscription(Base):
    __tablename__ = "push_subscription"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    endpoint = Column(Text, nullable=False, unique=True)
    p256dh_key = Column(Text, nullable=False)
    auth_key = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


# ---------------------------
# SEARCH HISTORY
# ---------------------------
class SearchHistory(Base):
    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=True, index=True)
    query = Column(String(200), nullable=False)
    result_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
