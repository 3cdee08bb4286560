from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from petflix.container import Services
from petflix.models import User
from petflix.routes_shared import current_active_user, get_services
from petflix.schemas import (
    NotificationList,
    NotificationRead,
    PreferenceRead,
    PreferenceUpdate,
    PushStatus,
    PushSubscriptionRequest,
    PushUnsubscribeRequest,
)
from petflix.settings.config import settings

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    items, unread = await services.notifications.list_notifications(
        user.id, limit=limit, unread_only=unread_only,
    )
    return NotificationList(
        notifications=[NotificationRead.model_validate(n) for n in items],
        unread_count=unread,
    )


# declared before /{notification_id}/read so "read-all" is never taken as an id
@router.post("/read-all")
async def mark_all_read(
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    updated = await services.notifications.mark_all_read(user.id)
    return {"updated": updated}


@router.post("/{notification_id}/read", response_model=NotificationRead)
async def mark_read(
    notification_id: int,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    return await services.notifications.mark_read(user.id, notification_id)


@router.put("/preferences", response_model=PreferenceRead)
async def set_preferences(
    body: PreferenceUpdate,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    pref = await services.notifications.set_global_preference(user.id, body.enabled)
    return PreferenceRead(notifications_enabled=pref.notifications_enabled)


# -------------------------
# Web push
# -------------------------
@router.post("/push/subscribe", response_model=PushStatus)
async def push_subscribe(
    body: PushSubscriptionRequest,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    await services.push.register_subscription(user.id, body.endpoint, body.keys.p256dh, body.keys.auth)
    return PushStatus(subscribed=True, vapid_public_key=settings.VAPID_PUBLIC_KEY)


@router.post("/push/unsubscribe")
async def push_unsubscribe(
    body: PushUnsubscribeRequest,
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    removed = await services.push.unregister_subscription(user.id, body.endpoint)
    return {"removed": removed}


@router.get("/push/status", response_model=PushStatus)
async def push_status(
    user: User = Depends(current_active_user),
    services: Services = Depends(get_services),
):
    subscribed = await services.push.has_subscription(user.id)
    return PushStatus(subscribed=subscribed, vapid_public_key=settings.VAPID_PUBLIC_KEY)


__all__ = ["router"]
