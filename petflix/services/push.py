"""Web push delivery.

Delivery is best-effort: every subscription of a user is attempted once,
subscriptions the push service reports as gone (404/410) are deleted, and any
other failure is only logged.
"""
from __future__ import annotations

import asyncio
import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pywebpush import WebPushException, webpush
from sqlalchemy import delete, select

from petflix.background import run_sync
from petflix.models import PushSubscription, UserNotificationPreference
from petflix.settings.config import Settings

logger = logging.getLogger(__name__)

PERMANENT_FAILURE_STATUSES = frozenset({404, 410})


class PushResult(str, enum.Enum):
    ok = "ok"
    permanent_failure = "permanent_failure"
    transient_failure = "transient_failure"


@dataclass(slots=True)
class PushPayload:
    title: str
    body: str
    url: Optional[str] = None
    tag: str = "default"
    icon: str = "/icon-192.png"
    data: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps({
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.icon,
            "tag": self.tag,
            "data": {**self.data, "url": self.url},
        })


class PushTransport(Protocol):
    async def send(self, subscription: PushSubscription, payload: PushPayload) -> PushResult: ...


class WebPushTransport:
    """pywebpush-backed transport signing requests with VAPID keys."""

    def __init__(self, vapid_private_key: str, vapid_subject: str) -> None:
        self.vapid_private_key = vapid_private_key
        self.vapid_subject = vapid_subject

    def _send_blocking(self, subscription_info: dict, data: str) -> None:
        webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=self.vapid_private_key,
            vapid_claims={"sub": self.vapid_subject},
        )

    async def send(self, subscription: PushSubscription, payload: PushPayload) -> PushResult:
        info = {
            "endpoint": subscription.endpoint,
            "keys": {"p256dh": subscription.p256dh_key, "auth": subscription.auth_key},
        }
        try:
            await run_sync(self._send_blocking, info, payload.to_json())
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status in PERMANENT_FAILURE_STATUSES:
                return PushResult.permanent_failure
            logger.warning("Push to %s failed (status=%s): %s", subscription.endpoint, status, exc)
            return PushResult.transient_failure
        return PushResult.ok


class PushDispatcher:
    def __init__(self, session_maker, transport: Optional[PushTransport]) -> None:
        self.session_maker = session_maker
        self.transport = transport

    async def _push_allowed(self, session, user_id: int) -> bool:
        pref = await session.get(UserNotificationPreference, user_id)
        return pref is None or bool(pref.notifications_enabled)

    async def send_to_user(self, user_id: int, payload: PushPayload) -> dict[str, int]:
        """Attempt delivery to every subscription of ``user_id``."""
        counts = {"sent": 0, "removed": 0, "failed": 0}
        if self.transport is None:
            logger.debug("Push disabled (no VAPID keys); skipping user %s", user_id)
            return counts

        async with self.session_maker() as session:
            if not await self._push_allowed(session, user_id):
                logger.debug("User %s disabled push notifications", user_id)
                return counts
            subs = (await session.execute(
                select(PushSubscription).where(PushSubscription.user_id == user_id)
            )).scalars().all()
        if not subs:
            return counts

        # no session is held while the push service is contacted
        results = await asyncio.gather(
            *(self.transport.send(sub, payload) for sub in subs),
            return_exceptions=True,
        )
        stale: list[str] = []
        for sub, result in zip(subs, results):
            if isinstance(result, BaseException):
                logger.error("Push to %s raised", sub.endpoint, exc_info=result)
                counts["failed"] += 1
            elif result is PushResult.ok:
                counts["sent"] += 1
            elif result is PushResult.permanent_failure:
                stale.append(sub.endpoint)
            else:
                counts["failed"] += 1

        if stale:
            logger.info("Removing %d stale push subscription(s) for user %s", len(stale), user_id)
            async with self.session_maker() as session:
                await session.execute(delete(PushSubscription).where(PushSubscription.endpoint.in_(stale)))
                await session.commit()
            counts["removed"] = len(stale)
        return counts

    async def register_subscription(self, user_id: int, endpoint: str, p256dh_key: str,
                                    auth_key: str) -> PushSubscription:
        async with self.session_maker() as session:
            sub = (await session.execute(
                select(PushSubscription).where(PushSubscription.endpoint == endpoint)
            )).scalars().first()
            if sub is None:
                sub = PushSubscription(endpoint=endpoint)
                session.add(sub)
            # an endpoint belongs to one browser; re-registration moves it
            sub.user_id = user_id
            sub.p256dh_key = p256dh_key
            sub.auth_key = auth_key
            await session.commit()
            return sub

    async def unregister_subscription(self, user_id: int, endpoint: Optional[str] = None) -> int:
        async with self.session_maker() as session:
            stmt = delete(PushSubscription).where(PushSubscription.user_id == user_id)
            if endpoint:
                stmt = stmt.where(PushSubscription.endpoint == endpoint)
            res = await session.execute(stmt)
            await session.commit()
            return res.rowcount or 0

    async def has_subscription(self, user_id: int) -> bool:
        async with self.session_maker() as session:
            row = (await session.execute(
                select(PushSubscription.id).where(PushSubscription.user_id == user_id).limit(1)
            )).scalar_one_or_none()
            return row is not None


def build_transport(settings: Settings) -> Optional[WebPushTransport]:
    if not settings.push_enabled:
        logger.warning("VAPID keys not configured; push notifications are disabled")
        return None
    return WebPushTransport(settings.VAPID_PRIVATE_KEY, settings.VAPID_SUBJECT)


__all__ = [
    "PushDispatcher",
    "PushPayload",
    "PushResult",
    "PushTransport",
    "WebPushTransport",
    "build_transport",
]
