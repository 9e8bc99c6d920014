"""Wiring of stores, directory and services into one runtime.

The API, the simulation script and the tests all build an EscrowRuntime,
either over in-memory collaborators or over the SQL store.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from arbitrated_escrow.config import Settings, get_settings
from arbitrated_escrow.logging_config import get_logger
from arbitrated_escrow.services.audit_service import AuditLog
from arbitrated_escrow.services.notification_service import NotificationOutbox
from arbitrated_escrow.services.query_service import QueryService
from arbitrated_escrow.services.side_effects import SideEffectDispatcher
from arbitrated_escrow.services.transaction_service import TransactionService
from arbitrated_escrow.services.user_service import UserService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from arbitrated_escrow.domain.collaborators import DocumentStore, UserDirectory
    from arbitrated_escrow.domain.models import UserProfile

logger = get_logger(__name__)


@dataclass
class EscrowRuntime:
    """Everything a caller needs to drive the engine."""

    settings: Settings
    store: DocumentStore
    directory: UserDirectory
    dispatcher: SideEffectDispatcher
    audit: AuditLog
    outbox: NotificationOutbox
    transactions: TransactionService
    queries: QueryService
    users: UserService

    async def drain(self) -> None:
        """Wait for outstanding audit and notification writes."""
        await self.dispatcher.drain()


def build_runtime(
    store: DocumentStore,
    directory: UserDirectory,
    settings: Settings | None = None,
) -> EscrowRuntime:
    settings = settings or get_settings()
    dispatcher = SideEffectDispatcher(
        max_attempts=settings.side_effect_max_attempts,
        backoff_seconds=settings.side_effect_backoff_seconds,
        backoff_max_seconds=settings.side_effect_backoff_max_seconds,
    )
    audit = AuditLog(store)
    outbox = NotificationOutbox(store)
    return EscrowRuntime(
        settings=settings,
        store=store,
        directory=directory,
        dispatcher=dispatcher,
        audit=audit,
        outbox=outbox,
        transactions=TransactionService(store, directory, audit, outbox, dispatcher, settings),
        queries=QueryService(store, directory, audit),
        users=UserService(directory, settings),
    )


def build_memory_runtime(
    settings: Settings | None = None,
    profiles: list[UserProfile] | None = None,
    latency: float = 0.0,
) -> EscrowRuntime:
    """Runtime over in-process collaborators."""
    from arbitrated_escrow.infrastructure.memory_store import (
        InMemoryDocumentStore,
        InMemoryUserDirectory,
    )

    logger.info("runtime.memory", latency=latency)
    return build_runtime(
        InMemoryDocumentStore(latency=latency),
        InMemoryUserDirectory(profiles),
        settings,
    )


def build_sql_runtime(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
) -> EscrowRuntime:
    """Runtime over the SQL document store and user directory."""
    from arbitrated_escrow.infrastructure.database.repositories import (
        SqlDocumentStore,
        SqlUserDirectory,
    )

    logger.info("runtime.sql")
    return build_runtime(
        SqlDocumentStore(session_factory),
        SqlUserDirectory(session_factory),
        settings,
    )
