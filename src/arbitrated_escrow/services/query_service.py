"""Visibility / query layer.

Two read models over the transactions collection:
    - participant view: transactions where the caller is one of the two parties
    - arbitrator view:  every transaction

Both are available as one-shot lists and as live streams. Ordering is done
here, newest first, after normalising created_at, because stored records may
carry ISO strings, datetimes or epoch numbers depending on who wrote them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from arbitrated_escrow.domain.collaborators import TRANSACTIONS
from arbitrated_escrow.domain.models import TransactionRecord
from arbitrated_escrow.logging_config import get_logger
from arbitrated_escrow.services.identity import resolve_actor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from arbitrated_escrow.domain.collaborators import (
        DocumentPredicate,
        DocumentStore,
        StoredDocument,
        UserDirectory,
    )
    from arbitrated_escrow.domain.models import Actor, AuditEntry, Identity
    from arbitrated_escrow.services.audit_service import AuditLog

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


class QueryService:
    """Participant-scoped and arbitrator-wide transaction reads."""

    def __init__(self, store: DocumentStore, directory: UserDirectory, audit: AuditLog) -> None:
        self._store = store
        self._directory = directory
        self._audit = audit

    async def list_visible(self, identity: Identity | None) -> list[TransactionRecord]:
        """Every transaction the caller may see, newest first."""
        actor = await resolve_actor(self._directory, identity)
        documents = await self._store.list_documents(TRANSACTIONS, _visibility(actor))
        return sort_newest_first(documents)

    async def watch(self, identity: Identity | None) -> AsyncIterator[list[TransactionRecord]]:
        """Live variant of list_visible: a fresh sorted snapshot after every change."""
        actor = await resolve_actor(self._directory, identity)
        logger.debug("query.watch_started", uid=actor.uid, arbitrator=actor.is_arbitrator)
        async for documents in self._store.subscribe(TRANSACTIONS, _visibility(actor)):
            yield sort_newest_first(documents)

    async def audit_trail(self, transaction_id: str, identity: Identity | None) -> list[AuditEntry]:
        """Newest-first audit entries for one transaction. Arbitrators only."""
        actor = await resolve_actor(self._directory, identity)
        return await self._audit.entries(transaction_id, actor)


def _visibility(actor: Actor) -> DocumentPredicate | None:
    if actor.is_arbitrator:
        return None
    uid = actor.uid

    def is_party(document: StoredDocument) -> bool:
        return uid in (document.data.get("participants") or ())

    return is_party


def sort_newest_first(documents: list[StoredDocument]) -> list[TransactionRecord]:
    """Rebuild records and order them by normalised created_at, newest first.

    Ties (and records with no usable timestamp) fall back to store insertion
    order, later inserts first.
    """
    ranked = [
        (
            TransactionRecord.from_document(d.doc_id, d.data, d.version, d.created_at),
            d.sequence,
        )
        for d in documents
    ]
    ranked.sort(key=lambda pair: (pair[0].created_at or _EPOCH, pair[1]), reverse=True)
    return [record for record, _ in ranked]
