from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from petflix.container import Services
from petflix.models import User
from petflix.routes_shared import current_active_user, get_services
from petflix.schemas import FollowRead, FollowStatus, PreferenceRead, PreferenceUpdate, UserSummary

router = APIRouter(prefix="/api/v1/users", tags=["follows"])


@router.post("/{user_id}/follow", response_model=FollowRead, status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    return await services.follows.follow(user.id, user_id)


@router.delete("/{user_id}/follow")
async def unfollow_user(
    user_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    await services.follows.unfollow(user.id, user_id)
    return {"message": "Unfollowed"}


@router.get("/{user_id}/followers", response_model=List[UserSummary])
async def list_followers(user_id: int, services: Services = Depends(get_services)):
    return await services.follows.followers(user_id)


@router.get("/{user_id}/following", response_model=List[UserSummary])
async def list_following(user_id: int, services: Services = Depends(get_services)):
    return await services.follows.following(user_id)


@router.get("/{user_id}/follow-status", response_model=FollowStatus)
async def follow_status(
    user_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    return await services.follows.status(user.id, user_id)


@router.get("/{user_id}/notification-preference", response_model=PreferenceRead)
async def get_follow_preference(
    user_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    enabled = await services.notifications.get_follow_preference(user.id, user_id)
    return PreferenceRead(notifications_enabled=enabled)


@router.put("/{user_id}/notification-preference", response_model=PreferenceRead)
async def set_follow_preference(
    user_id: int,
    body: PreferenceUpdate,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    pref = await services.notifications.set_follow_preference(user.id, user_id, body.enabled)
    return PreferenceRead(notifications_enabled=pref.notifications_enabled)


__all__ = ["router"]
