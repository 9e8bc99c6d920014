"""SQL-backed DocumentStore and UserDirectory.

Unlike request-scoped repositories, each store operation owns one short
transaction: the conditional update for a transition must be committed
before the engine dispatches its side effects, and subscribers are signalled
only after the commit.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from arbitrated_escrow.domain.collaborators import StoredDocument
from arbitrated_escrow.domain.models import UserProfile
from arbitrated_escrow.infrastructure.change_feed import ChangeFeed, SubscribableMixin
from arbitrated_escrow.infrastructure.database.orm_models import DocumentRow, UserRow
from arbitrated_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from arbitrated_escrow.domain.collaborators import DocumentPredicate

logger = get_logger(__name__)


def _aware(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _to_document(row: DocumentRow) -> StoredDocument:
    return StoredDocument(
        doc_id=row.doc_id,
        data=dict(row.data),
        version=row.version,
        sequence=row.sequence,
        created_at=_aware(row.created_at),
    )


class SqlDocumentStore(SubscribableMixin):
    """DocumentStore over the ``documents`` table with version-based CAS."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._feed = ChangeFeed()

    async def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRow).where(
                    DocumentRow.collection == collection,
                    DocumentRow.doc_id == doc_id,
                )
            )
            row = result.scalar_one_or_none()
            return _to_document(row) if row else None

    async def insert(
        self, collection: str, doc_id: str, data: dict[str, Any]
    ) -> StoredDocument | None:
        row = DocumentRow(collection=collection, doc_id=doc_id, version=1, data=data)
        async with self._session_factory() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug("store.insert_duplicate", collection=collection, doc_id=doc_id)
                return None
            stored = _to_document(row)
        self._feed.publish(collection)
        return stored

    async def put_if_version(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        expected_version: int,
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.doc_id == doc_id,
                    DocumentRow.version == expected_version,
                )
                .values(
                    data=data,
                    version=DocumentRow.version + 1,
                    updated_at=datetime.now(UTC),
                )
            )
            await session.commit()
        if result.rowcount != 1:
            return False
        self._feed.publish(collection)
        return True

    async def delete_if_version(
        self, collection: str, doc_id: str, expected_version: int
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(DocumentRow).where(
                    DocumentRow.collection == collection,
                    DocumentRow.doc_id == doc_id,
                    DocumentRow.version == expected_version,
                )
            )
            await session.commit()
        if result.rowcount != 1:
            return False
        self._feed.publish(collection)
        return True

    async def append(self, collection: str, data: dict[str, Any]) -> StoredDocument:
        row = DocumentRow(
            collection=collection, doc_id=uuid.uuid4().hex, version=1, data=data
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
            stored = _to_document(row)
        self._feed.publish(collection)
        return stored

    async def update_fields(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRow)
                .where(
                    DocumentRow.collection == collection,
                    DocumentRow.doc_id == doc_id,
                )
                .with_for_update()
            )
            row = result.scalar_one_or_none()
            if row is None:
                return False
            # Reassign so the JSON column is flagged dirty.
            row.data = {**row.data, **fields}
            row.version = row.version + 1
            await session.commit()
        self._feed.publish(collection)
        return True

    async def list_documents(
        self, collection: str, predicate: DocumentPredicate | None = None
    ) -> list[StoredDocument]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRow)
                .where(DocumentRow.collection == collection)
                .order_by(DocumentRow.sequence)
            )
            documents = [_to_document(row) for row in result.scalars().all()]
        if predicate is None:
            return documents
        return [d for d in documents if predicate(d)]

    async def delete_collection(self, collection: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(DocumentRow).where(DocumentRow.collection == collection)
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            self._feed.publish(collection)
        return removed


class SqlUserDirectory:
    """UserDirectory over the ``users`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _to_profile(row: UserRow) -> UserProfile:
        return UserProfile(
            uid=row.uid,
            email=row.email,
            username=row.username,
            wallet_address=row.wallet_address,
            is_arbitrator=row.is_arbitrator,
            created_at=_aware(row.created_at),
        )

    async def get(self, uid: str) -> UserProfile | None:
        async with self._session_factory() as session:
            row = await session.get(UserRow, uid)
            return self._to_profile(row) if row else None

    async def lookup_by_email(self, email: str) -> UserProfile | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRow).where(UserRow.email == email.strip().lower())
            )
            row = result.scalar_one_or_none()
            return self._to_profile(row) if row else None

    async def list_all(self) -> list[UserProfile]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).order_by(UserRow.created_at))
            return [self._to_profile(row) for row in result.scalars().all()]

    async def list_arbitrators(self) -> list[UserProfile]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRow).where(UserRow.is_arbitrator.is_(True))
            )
            return [self._to_profile(row) for row in result.scalars().all()]

    async def add(self, profile: UserProfile) -> UserProfile:
        row = UserRow(
            uid=profile.uid,
            email=profile.email.strip().lower(),
            username=profile.username,
            wallet_address=profile.wallet_address,
            is_arbitrator=profile.is_arbitrator,
            created_at=profile.created_at,
        )
        async with self._session_factory() as session:
            await session.merge(row)
            await session.commit()
        return profile
