"""baseline schema: users, videos, follows, notifications, push

Revision ID: 3f6a1c0d9b21
Revises:
Create Date: 2026-10-16 10:02:41.118204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f6a1c0d9b21"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOTIFICATION_TYPES = ("video_shared", "repost", "comment", "like", "follow")


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_superuser", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_user_id", "user", ["id"])
    op.create_index("ix_user_email", "user", ["email"], unique=True)
    op.create_index("ix_user_username", "user", ["username"], unique=True)

    op.create_table(
        "video",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("youtube_video_id", sa.String(length=32), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("original_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE")),
        sa.Column("view_count", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "original_user_id IS NULL OR original_user_id <> user_id",
            name="ck_video_no_self_repost",
        ),
    )
    op.create_index("ix_video_id", "video", ["id"])
    op.create_index("ix_video_youtube_video_id", "video", ["youtube_video_id"])
    op.create_index("ix_video_user_id", "video", ["user_id"])
    op.create_index("ix_video_original_user_id", "video", ["original_user_id"])
    op.create_index("ix_video_user_created", "video", ["user_id", "created_at"])
    op.create_index("ix_video_views_created", "video", ["view_count", "created_at"])
    # one original share and at most one repost per (video, user)
    op.create_index(
        "uq_video_original_share", "video", ["youtube_video_id", "user_id"],
        unique=True, postgresql_where=sa.text("original_user_id IS NULL"),
    )
    op.create_index(
        "uq_video_repost", "video", ["youtube_video_id", "user_id"],
        unique=True, postgresql_where=sa.text("original_user_id IS NOT NULL"),
    )

    op.create_table(
        "video_tag",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("video_id", sa.Integer(), sa.ForeignKey("video.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_name", sa.String(length=50), nullable=False),
        sa.UniqueConstraint("video_id", "tag_name", name="uq_video_tag"),
    )
    op.create_index("ix_video_tag_video_id", "video_tag", ["video_id"])
    op.create_index("ix_video_tag_tag_name", "video_tag", ["tag_name"])

    op.create_table(
        "follow",
        sa.Column("follower_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("following_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("follower_id <> following_id", name="ck_follow_not_self"),
    )
    op.create_index("ix_follow_following_id", "follow", ["following_id"])

    op.create_table(
        "follow_notification_preference",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("following_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "following_user_id", name="uq_follow_pref_user_following"),
    )
    op.create_index("ix_follow_notification_preference_user_id", "follow_notification_preference", ["user_id"])
    op.create_index(
        "ix_follow_notification_preference_following_user_id",
        "follow_notification_preference", ["following_user_id"],
    )

    op.create_table(
        "user_notification_preference",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("type", sa.Enum(*NOTIFICATION_TYPES, name="notification_type"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("related_user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="SET NULL")),
        sa.Column("related_video_id", sa.Integer(), sa.ForeignKey("video.id", ondelete="SET NULL")),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_notification_id", "notification", ["id"])
    op.create_index("ix_notification_user_read_created", "notification", ["user_id", "read", "created_at"])

    op.create_table(
        "push_subscription",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE"), nullable=False),
        sa.Column("endpoint", sa.Text(), nullable=False, unique=True),
        sa.Column("p256dh_key", sa.Text(), nullable=False),
        sa.Column("auth_key", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_push_subscription_user_id", "push_subscription", ["user_id"])

    op.create_table(
        "search_history",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user.id", ondelete="CASCADE")),
        sa.Column("query", sa.String(length=200), nullable=False),
        sa.Column("result_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_search_history_user_id", "search_history", ["user_id"])


def downgrade() -> None:
    op.drop_table("search_history")
    op.drop_table("push_subscription")
    op.drop_table("notification")
    op.drop_table("user_notification_preference")
    op.drop_table("follow_notification_preference")
    op.drop_table("follow")
    op.drop_table("video_tag")
    op.drop_table("video")
    op.drop_table("user")
    sa.Enum(name="notification_type").drop(op.get_bind(), checkfirst=True)
