"""In-process change feed backing live subscriptions.

Stores call ``publish(collection)`` after every committed write. Each
subscriber owns an asyncio.Event for the collection it watches; publishing
sets the event and the subscriber re-reads its snapshot. Bursts of writes
coalesce into a single re-read, so a slow consumer never builds a backlog,
but it always ends up seeing the latest committed state.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from arbitrated_escrow.domain.collaborators import DocumentPredicate, StoredDocument


class _Subscription:
    def __init__(self, collection: str) -> None:
        self.collection = collection
        self.changed = asyncio.Event()

    async def wait(self) -> None:
        await self.changed.wait()
        self.changed.clear()


class ChangeFeed:
    """Fan-out of "collection changed" signals to live subscribers."""

    def __init__(self) -> None:
        self._subscriptions: set[_Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, collection: str) -> None:
        for sub in self._subscriptions:
            if sub.collection == collection:
                sub.changed.set()

    async def stream(
        self,
        collection: str,
        read_snapshot: Callable[[], Awaitable[list[StoredDocument]]],
    ) -> AsyncIterator[list[StoredDocument]]:
        """Yield ``read_snapshot()`` now and after each published change."""
        sub = _Subscription(collection)
        self._subscriptions.add(sub)
        try:
            while True:
                yield await read_snapshot()
                await sub.wait()
        finally:
            self._subscriptions.discard(sub)


class SubscribableMixin:
    """Gives a document store ``subscribe`` on top of ``list_documents``."""

    _feed: ChangeFeed

    def subscribe(
        self, collection: str, predicate: DocumentPredicate | None = None
    ) -> AsyncIterator[list[StoredDocument]]:
        async def read_snapshot() -> list[StoredDocument]:
            return await self.list_documents(collection, predicate)  # type: ignore[attr-defined]

        return self._feed.stream(collection, read_snapshot)
