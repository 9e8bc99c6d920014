"""Notification outbox REST API routes.

Routes:
    GET    /api/v1/notifications                 — The caller's feed, newest first
    POST   /api/v1/notifications/{id}/read       — Mark one as read (idempotent)
    POST   /api/v1/notifications/read-all        — Mark every unread one as read
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from arbitrated_escrow.api.deps import get_identity, get_outbox
from arbitrated_escrow.domain.models import Identity, NotificationFeed
from arbitrated_escrow.schemas.escrow import (
    MarkAllReadResponse,
    NotificationFeedResponse,
    NotificationResponse,
)
from arbitrated_escrow.services.notification_service import NotificationOutbox

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationFeedResponse,
    summary="List the caller's notifications",
)
async def list_notifications(
    identity: Identity = Depends(get_identity),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> NotificationFeedResponse:
    return _feed_response(await outbox.list_for(identity.uid))


@router.post(
    "/read-all",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications as read",
)
async def mark_all_read(
    identity: Identity = Depends(get_identity),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> MarkAllReadResponse:
    """Partial failures are reported; re-issuing the request is safe."""
    result = await outbox.mark_all_read(identity.uid)
    return MarkAllReadResponse(marked=result.marked, failed=result.failed)


@router.post(
    "/{notification_id}/read",
    status_code=204,
    response_class=Response,
    summary="Mark a notification as read",
)
async def mark_read(
    notification_id: str,
    identity: Identity = Depends(get_identity),
    outbox: NotificationOutbox = Depends(get_outbox),
) -> Response:
    await outbox.mark_read(identity.uid, notification_id)
    return Response(status_code=204)


def _feed_response(feed: NotificationFeed) -> NotificationFeedResponse:
    return NotificationFeedResponse(
        items=[NotificationResponse.model_validate(n) for n in feed.items],
        unread_count=feed.unread_count,
    )
