"""Audit Log — append-only record of committed transitions.

Entries live in the nested collection ``transactions/{id}/audit``. They are
never updated; the only removal is the purge that follows a transaction's
deletion.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from arbitrated_escrow.domain.collaborators import audit_collection
from arbitrated_escrow.domain.exceptions import PermissionDeniedError
from arbitrated_escrow.domain.models import AuditEntry, parse_timestamp
from arbitrated_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from arbitrated_escrow.domain.collaborators import DocumentStore, StoredDocument
    from arbitrated_escrow.domain.models import Actor

logger = get_logger(__name__)


class AuditLog:
    """Per-transaction audit trail over a DocumentStore."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def record(
        self,
        transaction_id: str,
        actor_uid: str | None,
        action: str,
        metadata: dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> AuditEntry:
        """Append one entry. ``actor_uid`` is None for system actions.

        ``created_at`` is the commit time of the transition being recorded.
        Retried appends pass the same value, so a late write still sorts in
        commit order. Defaults to now.
        """
        stamp = created_at or datetime.now(UTC)
        stored = await self._store.append(
            audit_collection(transaction_id),
            {
                "actor_uid": actor_uid,
                "action": action,
                "metadata": dict(metadata or {}),
                "created_at": stamp.isoformat(),
            },
        )
        logger.info(
            "audit.recorded",
            transaction_id=transaction_id,
            action=action,
            actor_uid=actor_uid,
        )
        return _to_entry(transaction_id, stored)

    async def entries(self, transaction_id: str, viewer: Actor) -> list[AuditEntry]:
        """Newest-first audit trail. Arbitrators only.

        Raises:
            PermissionDeniedError: If the viewer is not an arbitrator.
        """
        if not viewer.is_arbitrator:
            raise PermissionDeniedError(
                action="read the audit trail",
                actor_uid=viewer.uid,
                required="arbitrator",
                transaction_id=transaction_id,
            )
        documents = await self._store.list_documents(audit_collection(transaction_id))
        entries = [_to_entry(transaction_id, d) for d in documents]
        entries.sort(key=lambda e: (e.created_at, e.sequence), reverse=True)
        return entries

    async def purge(self, transaction_id: str) -> int:
        removed = await self._store.delete_collection(audit_collection(transaction_id))
        logger.info("audit.purged", transaction_id=transaction_id, removed=removed)
        return removed


def _to_entry(transaction_id: str, document: StoredDocument) -> AuditEntry:
    data = document.data
    return AuditEntry(
        id=document.doc_id,
        transaction_id=transaction_id,
        actor_uid=data.get("actor_uid"),
        action=data["action"],
        metadata=dict(data.get("metadata") or {}),
        created_at=parse_timestamp(data.get("created_at")) or document.created_at,
        sequence=document.sequence,
    )
