"""In-memory document store and user directory.

Used for demos, the simulation script and the test suite. Every operation
awaits once before touching state to model a store round-trip, so concurrent
callers interleave the way they would against a remote store. The
check-and-set inside each operation runs without awaiting, which makes it
atomic on the event loop.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from arbitrated_escrow.domain.collaborators import StoredDocument
from arbitrated_escrow.infrastructure.change_feed import ChangeFeed, SubscribableMixin

if TYPE_CHECKING:
    from arbitrated_escrow.domain.collaborators import DocumentPredicate
    from arbitrated_escrow.domain.models import UserProfile


@dataclass
class _Row:
    data: dict[str, Any]
    version: int
    sequence: int
    created_at: datetime

    def snapshot(self, doc_id: str) -> StoredDocument:
        return StoredDocument(
            doc_id=doc_id,
            data=copy.deepcopy(self.data),
            version=self.version,
            sequence=self.sequence,
            created_at=self.created_at,
        )


class InMemoryDocumentStore(SubscribableMixin):
    """Dict-backed DocumentStore with per-document versions."""

    def __init__(self, latency: float = 0.0) -> None:
        self._latency = latency
        self._collections: dict[str, dict[str, _Row]] = {}
        self._sequence = itertools.count(1)
        self._feed = ChangeFeed()

    async def _round_trip(self) -> None:
        await asyncio.sleep(self._latency)

    def _rows(self, collection: str) -> dict[str, _Row]:
        return self._collections.setdefault(collection, {})

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        await self._round_trip()
        row = self._rows(collection).get(doc_id)
        return row.snapshot(doc_id) if row else None

    async def insert(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> StoredDocument | None:
        await self._round_trip()
        rows = self._rows(collection)
        if doc_id in rows:
            return None
        rows[doc_id] = _Row(
            data=copy.deepcopy(data),
            version=1,
            sequence=next(self._sequence),
            created_at=datetime.now(UTC),
        )
        self._feed.publish(collection)
        return rows[doc_id].snapshot(doc_id)

    async def put_if_version(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> bool:
        await self._round_trip()
        rows = self._rows(collection)
        row = rows.get(doc_id)
        if row is None or row.version != expected_version:
            return False
        rows[doc_id] = replace(row, data=copy.deepcopy(data), version=row.version + 1)
        self._feed.publish(collection)
        return True

    async def delete_if_version(
        self, collection: str, doc_id: str, expected_version: int
    ) -> bool:
        await self._round_trip()
        rows = self._rows(collection)
        row = rows.get(doc_id)
        if row is None or row.version != expected_version:
            return False
        del rows[doc_id]
        self._feed.publish(collection)
        return True

    async def append(self, collection: str, data: dict[str, Any]) -> StoredDocument:
        await self._round_trip()
        doc_id = uuid.uuid4().hex
        row = _Row(
            data=copy.deepcopy(data),
            version=1,
            sequence=next(self._sequence),
            created_at=datetime.now(UTC),
        )
        self._rows(collection)[doc_id] = row
        self._feed.publish(collection)
        return row.snapshot(doc_id)

    async def update_fields(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> bool:
        await self._round_trip()
        rows = self._rows(collection)
        row = rows.get(doc_id)
        if row is None:
            return False
        rows[doc_id] = replace(
            row, data={**row.data, **copy.deepcopy(fields)}, version=row.version + 1
        )
        self._feed.publish(collection)
        return True

    async def list_documents(
        self, collection: str, predicate: DocumentPredicate | None = None
    ) -> list[StoredDocument]:
        await self._round_trip()
        snapshots = [row.snapshot(doc_id) for doc_id, row in self._rows(collection).items()]
        snapshots.sort(key=lambda d: d.sequence)
        if predicate is None:
            return snapshots
        return [d for d in snapshots if predicate(d)]

    async def delete_collection(self, collection: str) -> int:
        await self._round_trip()
        removed = len(self._collections.pop(collection, {}))
        if removed:
            self._feed.publish(collection)
        return removed


class InMemoryUserDirectory:
    """Dict-backed UserDirectory."""

    def __init__(self, profiles: list[UserProfile] | None = None) -> None:
        self._by_uid: dict[str, UserProfile] = {}
        for profile in profiles or []:
            self._by_uid[profile.uid] = profile

    async def get(self, uid: str) -> UserProfile | None:
        return self._by_uid.get(uid)

    async def lookup_by_email(self, email: str) -> UserProfile | None:
        wanted = email.strip().lower()
        for profile in self._by_uid.values():
            if profile.email.lower() == wanted:
                return profile
        return None

    async def list_all(self) -> list[UserProfile]:
        return list(self._by_uid.values())

    async def list_arbitrators(self) -> list[UserProfile]:
        return [p for p in self._by_uid.values() if p.is_arbitrator]

    async def add(self, profile: UserProfile) -> UserProfile:
        self._by_uid[profile.uid] = profile
        return profile
