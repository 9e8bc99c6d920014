"""Notification Outbox — per-user messages with a mutable read flag.

Messages are appended to ``users/{uid}/notifications`` after a transition
commits. Only the recipient may flip ``read``, and flipping it is idempotent,
so concurrent "mark all read" requests can't conflict with each other.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from arbitrated_escrow.domain.collaborators import notifications_collection
from arbitrated_escrow.domain.exceptions import NotificationNotFoundError
from arbitrated_escrow.domain.models import Notification, NotificationFeed, parse_timestamp
from arbitrated_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from arbitrated_escrow.domain.collaborators import DocumentStore, StoredDocument

logger = get_logger(__name__)


@dataclass(frozen=True)
class MarkAllReadResult:
    """Outcome of mark_all_read: ids flipped and ids whose update failed."""

    marked: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class NotificationOutbox:
    """Per-recipient notification outbox over a DocumentStore."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def enqueue(
        self,
        recipient_uid: str,
        message: str,
        related_tx_id: str | None = None,
    ) -> Notification:
        stored = await self._store.append(
            notifications_collection(recipient_uid),
            {
                "message": message,
                "related_tx_id": related_tx_id,
                "read": False,
                "created_at": datetime.now(UTC).isoformat(),
            },
        )
        logger.info(
            "notification.enqueued",
            recipient_uid=recipient_uid,
            related_tx_id=related_tx_id,
        )
        return _to_notification(recipient_uid, stored)

    async def list_for(self, uid: str) -> NotificationFeed:
        """The recipient's notifications, newest first, with the unread count."""
        documents = await self._store.list_documents(notifications_collection(uid))
        return _to_feed(uid, documents)

    async def subscribe(self, uid: str) -> AsyncIterator[NotificationFeed]:
        """Live feed: the current notifications now and after every change."""
        async for documents in self._store.subscribe(notifications_collection(uid)):
            yield _to_feed(uid, documents)

    async def mark_read(self, uid: str, notification_id: str) -> None:
        """Set ``read`` on one of the caller's notifications.

        Marking an already-read notification is a no-op.

        Raises:
            NotificationNotFoundError: If the id is not in the caller's outbox.
        """
        collection = notifications_collection(uid)
        current = await self._store.get(collection, notification_id)
        if current is None:
            raise NotificationNotFoundError(notification_id)
        if current.data.get("read"):
            return
        updated = await self._store.update_fields(collection, notification_id, {"read": True})
        if not updated:
            raise NotificationNotFoundError(notification_id)

    async def mark_all_read(self, uid: str) -> MarkAllReadResult:
        """Mark every unread notification as read, concurrently.

        Each update is independent; a failure on one id does not stop the rest.
        """
        feed = await self.list_for(uid)
        unread = [n.id for n in feed.items if not n.read]
        outcomes = await asyncio.gather(
            *(self.mark_read(uid, notification_id) for notification_id in unread),
            return_exceptions=True,
        )

        result = MarkAllReadResult()
        for notification_id, outcome in zip(unread, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                result.failed.append(notification_id)
                logger.warning(
                    "notification.mark_read_failed",
                    recipient_uid=uid,
                    notification_id=notification_id,
                    error=str(outcome),
                )
            else:
                result.marked.append(notification_id)
        return result


def _to_notification(uid: str, document: StoredDocument) -> Notification:
    data = document.data
    return Notification(
        id=document.doc_id,
        recipient_uid=uid,
        message=data.get("message", ""),
        related_tx_id=data.get("related_tx_id"),
        read=bool(data.get("read", False)),
        created_at=parse_timestamp(data.get("created_at")) or document.created_at,
        sequence=document.sequence,
    )


def _to_feed(uid: str, documents: list[StoredDocument]) -> NotificationFeed:
    items = [_to_notification(uid, d) for d in documents]
    items.sort(key=lambda n: (n.created_at, n.sequence), reverse=True)
    return NotificationFeed(items=items)
