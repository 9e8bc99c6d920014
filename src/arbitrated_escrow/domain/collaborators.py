"""Collaborator protocols consumed by the transition engine.

The engine depends on three external services:
    - IdentityProvider: who is calling.
    - UserDirectory: email/uid -> user profile, and the arbitrator set.
    - DocumentStore: versioned documents with compare-and-swap, nested
      append-only collections and live subscriptions.

These are Protocols (structural subtyping) so backends don't need to inherit
from a base class. The domain layer has ZERO imports from SQLAlchemy or any
other storage library.

Collection paths are slash-separated, e.g. ``transactions``,
``transactions/TX123/audit`` or ``users/u-1/notifications``.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from arbitrated_escrow.domain.models import Identity, UserProfile

TRANSACTIONS = "transactions"


def audit_collection(transaction_id: str) -> str:
    return f"{TRANSACTIONS}/{transaction_id}/audit"


def notifications_collection(recipient_uid: str) -> str:
    return f"users/{recipient_uid}/notifications"


@dataclass(frozen=True)
class StoredDocument:
    """A document snapshot as returned by a DocumentStore.

    Attributes:
        doc_id: Identifier, unique within its collection.
        data: The JSON document body.
        version: Monotonic per-document version, the CAS token.
        sequence: Store-wide insertion order, the tie-break for equal timestamps.
        created_at: Store-assigned creation time.
    """

    doc_id: str
    data: dict[str, Any]
    version: int
    sequence: int
    created_at: datetime


DocumentPredicate = Callable[[StoredDocument], bool]


@runtime_checkable
class DocumentStore(Protocol):
    """Storage contract for transactions, audit trails and outboxes."""

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        """Read a document together with its current version."""
        ...

    async def insert(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> StoredDocument | None:
        """Create a document. Returns None if the id is already taken."""
        ...

    async def put_if_version(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> bool:
        """Replace a document only if its version still equals ``expected_version``.

        Returns True on commit, False if the document changed or vanished.
        """
        ...

    async def delete_if_version(
        self, collection: str, doc_id: str, expected_version: int
    ) -> bool:
        """Delete a document only if its version still equals ``expected_version``."""
        ...

    async def append(self, collection: str, data: dict[str, Any]) -> StoredDocument:
        """Append a new document with a store-generated id."""
        ...

    async def update_fields(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> bool:
        """Merge fields into a document unconditionally. False if missing."""
        ...

    async def list_documents(
        self, collection: str, predicate: DocumentPredicate | None = None
    ) -> list[StoredDocument]:
        """Point-in-time snapshot of a collection, in insertion order."""
        ...

    async def delete_collection(self, collection: str) -> int:
        """Delete every document in a collection. Returns the count removed."""
        ...

    def subscribe(
        self, collection: str, predicate: DocumentPredicate | None = None
    ) -> AsyncIterator[list[StoredDocument]]:
        """Yield the matching snapshot now and again after every change."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    """Email-keyed user directory owned by the identity provider."""

    async def get(self, uid: str) -> UserProfile | None: ...

    async def lookup_by_email(self, email: str) -> UserProfile | None: ...

    async def list_all(self) -> list[UserProfile]: ...

    async def list_arbitrators(self) -> list[UserProfile]: ...

    async def add(self, profile: UserProfile) -> UserProfile: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Source of the current caller's identity."""

    def current_identity(self) -> Identity | None: ...
