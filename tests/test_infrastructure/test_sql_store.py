"""Tests for the SQL document store on a throwaway SQLite file.

Verifies:
    - Version-checked updates and deletes (stale versions are refused)
    - Duplicate inserts return None instead of raising
    - Append ordering, field merges and collection purges
    - The full engine lifecycle over SQL-backed collaborators
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from arbitrated_escrow.domain.enums import AuditAction, TxStatus
from arbitrated_escrow.domain.models import Identity, UserProfile
from arbitrated_escrow.infrastructure.database.engine import (
    create_engine_for_url,
    create_tables,
    make_session_factory,
)
from arbitrated_escrow.infrastructure.database.repositories import (
    SqlDocumentStore,
    SqlUserDirectory,
)
from arbitrated_escrow.services.runtime import build_sql_runtime


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    await create_tables(engine)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


class TestSqlDocumentStore:
    @pytest.mark.asyncio
    async def test_insert_get_and_duplicate(self, store) -> None:
        stored = await store.insert("transactions", "TX1", {"status": "pending_acceptance"})
        assert stored.version == 1
        assert stored.created_at.tzinfo is not None

        fetched = await store.get("transactions", "TX1")
        assert fetched.data == {"status": "pending_acceptance"}
        assert await store.insert("transactions", "TX1", {"status": "rejected"}) is None
        assert await store.get("transactions", "TX2") is None

    @pytest.mark.asyncio
    async def test_same_id_in_different_collections(self, store) -> None:
        assert await store.insert("a", "doc", {"n": 1}) is not None
        assert await store.insert("b", "doc", {"n": 2}) is not None

    @pytest.mark.asyncio
    async def test_stale_version_is_refused(self, store) -> None:
        await store.insert("transactions", "TX1", {"n": 1})
        assert await store.put_if_version("transactions", "TX1", {"n": 2}, expected_version=1)
        assert not await store.put_if_version("transactions", "TX1", {"n": 3}, expected_version=1)

        current = await store.get("transactions", "TX1")
        assert current.version == 2
        assert current.data == {"n": 2}

    @pytest.mark.asyncio
    async def test_delete_if_version(self, store) -> None:
        await store.insert("transactions", "TX1", {})
        assert not await store.delete_if_version("transactions", "TX1", expected_version=5)
        assert await store.delete_if_version("transactions", "TX1", expected_version=1)
        assert await store.get("transactions", "TX1") is None

    @pytest.mark.asyncio
    async def test_append_update_list_purge(self, store) -> None:
        first = await store.append("users/u-bob/notifications", {"message": "a", "read": False})
        second = await store.append("users/u-bob/notifications", {"message": "b", "read": False})
        assert first.sequence < second.sequence

        assert await store.update_fields("users/u-bob/notifications", first.doc_id, {"read": True})
        assert not await store.update_fields("users/u-bob/notifications", "missing", {"read": True})

        docs = await store.list_documents("users/u-bob/notifications")
        assert [(d.data["message"], d.data["read"]) for d in docs] == [("a", True), ("b", False)]

        unread = await store.list_documents(
            "users/u-bob/notifications", lambda d: not d.data["read"]
        )
        assert [d.doc_id for d in unread] == [second.doc_id]

        assert await store.delete_collection("users/u-bob/notifications") == 2
        assert await store.delete_collection("users/u-bob/notifications") == 0


class TestSqlUserDirectory:
    @pytest.mark.asyncio
    async def test_add_and_lookup(self, session_factory) -> None:
        directory = SqlUserDirectory(session_factory)
        await directory.add(UserProfile(uid="u-1", email="One@Example.com", username="one"))
        await directory.add(
            UserProfile(uid="u-2", email="admin@escrow.com", username="admin", is_arbitrator=True)
        )

        found = await directory.lookup_by_email("ONE@example.com")
        assert found.uid == "u-1"
        assert found.email == "one@example.com"
        assert [p.uid for p in await directory.list_arbitrators()] == ["u-2"]
        assert await directory.get("u-3") is None

        await directory.add(UserProfile(uid="u-1", email="one@example.com", username="renamed"))
        assert (await directory.get("u-1")).username == "renamed"
        assert len(await directory.list_all()) == 2


class TestSqlRuntime:
    @pytest.mark.asyncio
    async def test_lifecycle_over_sql(self, session_factory, settings) -> None:
        runtime = build_sql_runtime(session_factory, settings)
        await runtime.users.register("u-alice", "alice@example.com", "alice", "bc1qalice")
        await runtime.users.register("u-bob", "bob@example.com", "bob", "bc1qbob")
        await runtime.users.register("u-admin", "admin@escrow.com", "admin")
        alice, bob, admin = Identity("u-alice"), Identity("u-bob"), Identity("u-admin")

        tx = await runtime.transactions.create(
            alice, invite_email="bob@example.com", role="seller", amount="0.5", currency="BTC"
        )
        await runtime.transactions.accept(tx.id, bob)
        await runtime.transactions.mark_payment_sent(tx.id, alice)
        await runtime.transactions.confirm_payment(tx.id, admin)
        await runtime.transactions.release_goods(tx.id, alice)
        record = await runtime.transactions.approve_release(tx.id, bob)
        await runtime.drain()

        assert record.status is TxStatus.COMPLETED
        stored = await runtime.transactions.get(tx.id, admin)
        assert stored.version == 6
        assert stored.completed is True

        entries = await runtime.queries.audit_trail(tx.id, admin)
        assert len(entries) == 5
        assert entries[0].action == AuditAction.BUYER_APPROVED_RELEASE
        assert (await runtime.outbox.list_for("u-admin")).unread_count == 1
        assert runtime.dispatcher.failed_count == 0
