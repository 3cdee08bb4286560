from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from petflix.container import Services
from petflix.models import User
from petflix.routes_shared import current_active_user, get_services, optional_active_user
from petflix.schemas import CategoryTable, RepostCheck, RepostRequest, SearchPage, ShareRequest, VideoCard
from petflix.services.tags import category_table

router = APIRouter(prefix="/api/v1/videos", tags=["videos"])


@router.get("/search", response_model=SearchPage)
async def search_videos(
    q: str = Query(..., description="Search text"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    sort: str = Query("relevance"),
    user: Optional[User] = Depends(optional_active_user),
    services: Services = Depends(get_services),
):
    return await services.feed.search(q, page=page, limit=limit, sort=sort, user_id=user.id if user else None)


@router.get("/recent", response_model=List[VideoCard])
async def recent_videos(
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    tag: Optional[str] = Query(None, description="Tag category, e.g. dogs"),
    sort: str = Query("views"),
    services: Services = Depends(get_services),
):
    return await services.feed.recent(limit=limit, offset=offset, tag=tag, sort=sort)


@router.get("/categories", response_model=CategoryTable)
async def tag_categories():
    return category_table()


@router.get("/feed", response_model=List[VideoCard])
async def home_feed(
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    return await services.feed.feed(user.id)


@router.get("/user/{user_id}", response_model=List[VideoCard])
async def videos_by_user(user_id: int, services: Services = Depends(get_services)):
    return await services.feed.videos_by_user(user_id)


@router.get("/{video_ref}", response_model=VideoCard)
async def video_detail(video_ref: str, services: Services = Depends(get_services)):
    return await services.feed.get_by_id(video_ref)


@router.post("", response_model=VideoCard, status_code=status.HTTP_201_CREATED)
async def share_video(
    body: ShareRequest,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    video = await services.attribution.share(
        user.id, body.youtube_video_id, body.tags, title=body.title, description=body.description,
    )
    return VideoCard.from_video(video)


@router.post("/repost", response_model=VideoCard, status_code=status.HTTP_201_CREATED)
async def repost_video(
    body: RepostRequest,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    video = await services.attribution.repost(user.id, body.video_ref)
    return VideoCard.from_video(video)


@router.get("/{video_ref}/can-repost", response_model=RepostCheck)
async def can_repost(
    video_ref: str,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    return await services.attribution.can_repost(user.id, video_ref)


@router.delete("/{video_id}")
async def delete_video(
    video_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    await services.attribution.delete_video(user.id, video_id)
    return {"message": "Video deleted successfully"}


__all__ = ["router"]
