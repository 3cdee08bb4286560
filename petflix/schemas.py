from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi_users import schemas
from pydantic import BaseModel, ConfigDict, Field

from .models import NotificationType, Video
from .services.youtube import ExternalVideo, thumbnail_url


# =========================
# USER SCHEMAS
# =========================
class UserRead(schemas.BaseUser[int]):
    username: str


class UserCreate(schemas.BaseUserCreate):
    username: str


class UserUpdate(schemas.BaseUserUpdate):
    username: Optional[str] = None


class UserSummary(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


# =========================
# VIDEO SCHEMAS
# =========================
class VideoCard(BaseModel):
    """A video as rendered in feeds, search results and detail pages.

    ``attributed_user_id`` is who the card credits: the original sharer for a
    repost, otherwise the sharer.
    """
    id: Optional[int] = None
    youtube_video_id: str
    title: str
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    view_count: int = 0
    user_id: Optional[int] = None
    original_user_id: Optional[int] = None
    attributed_user_id: Optional[int] = None
    is_repost: bool = False
    user: Optional[UserSummary] = None
    original_user: Optional[UserSummary] = None
    tags: List[str] = []
    channel_title: Optional[str] = None
    source: Literal["petflix", "youtube"] = "petflix"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_video(cls, video: Video) -> "VideoCard":
        return cls(
            id=video.id,
            youtube_video_id=video.youtube_video_id,
            title=video.title,
            description=video.description,
            thumbnail=thumbnail_url(video.youtube_video_id),
            view_count=video.view_count or 0,
            user_id=video.user_id,
            original_user_id=video.original_user_id,
            attributed_user_id=video.attributed_user_id,
            is_repost=video.is_repost,
            user=UserSummary.model_validate(video.sharer) if video.sharer else None,
            original_user=UserSummary.model_validate(video.original_sharer) if video.original_sharer else None,
            tags=video.tag_names,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )

    @classmethod
    def from_external(cls, video: ExternalVideo) -> "VideoCard":
        return cls(
            youtube_video_id=video.youtube_video_id,
            title=video.title,
            description=video.description,
            thumbnail=video.thumbnail or thumbnail_url(video.youtube_video_id),
            view_count=video.view_count,
            channel_title=video.channel_title,
            source="youtube",
        )


class SearchPage(BaseModel):
    videos: List[VideoCard]
    source_counts: Dict[str, int]
    total: int
    page: int
    page_size: int


class CategoryTable(BaseModel):
    version: int
    categories: Dict[str, List[str]]


class ShareRequest(BaseModel):
    youtube_video_id: str = Field(min_length=1, description="YouTube id or URL")
    title: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = []


class RepostRequest(BaseModel):
    video_ref: str = Field(min_length=1, description="Local video id, YouTube id, URL or youtube_<id>")


class RepostCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    original_user_id: Optional[int] = None


# =========================
# FOLLOW SCHEMAS
# =========================
class FollowRead(BaseModel):
    follower_id: int
    following_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FollowStatus(BaseModel):
    following: bool
    followed_by: bool


# =========================
# NOTIFICATION SCHEMAS
# =========================
class NotificationRead(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    related_user_id: Optional[int] = None
    related_video_id: Optional[int] = None
    read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    notifications: List[NotificationRead]
    unread_count: int


class PreferenceUpdate(BaseModel):
    enabled: bool = True


class PreferenceRead(BaseModel):
    notifications_enabled: bool


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionRequest(BaseModel):
    endpoint: str
    keys: PushKeys


class PushUnsubscribeRequest(BaseModel):
    endpoint: Optional[str] = None


class PushStatus(BaseModel):
    subscribed: bool
    vapid_public_key: str
