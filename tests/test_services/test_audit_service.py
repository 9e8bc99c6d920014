"""Tests for the append-only audit log."""

from __future__ import annotations

import pytest

from arbitrated_escrow.domain.collaborators import audit_collection
from arbitrated_escrow.domain.exceptions import PermissionDeniedError


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_record_and_read(self, runtime, arbitrator_actor) -> None:
        entry = await runtime.audit.record(
            "TX1", "u-alice", "marked_payment_sent", {"from_status": "waiting_payment"}
        )
        assert entry.transaction_id == "TX1"

        [read] = await runtime.audit.entries("TX1", arbitrator_actor)
        assert read.id == entry.id
        assert read.actor_uid == "u-alice"
        assert read.metadata == {"from_status": "waiting_payment"}

    @pytest.mark.asyncio
    async def test_only_arbitrators_read(self, runtime, seller_actor) -> None:
        await runtime.audit.record("TX1", "u-alice", "accepted_transaction")
        with pytest.raises(PermissionDeniedError) as exc_info:
            await runtime.audit.entries("TX1", seller_actor)
        assert exc_info.value.required == "arbitrator"

    @pytest.mark.asyncio
    async def test_equal_timestamps_break_ties_by_insertion(
        self, runtime, arbitrator_actor
    ) -> None:
        stamp = "2024-05-01T12:00:00+00:00"
        collection = audit_collection("TX1")
        for action in ("first", "second", "third"):
            await runtime.store.append(
                collection, {"actor_uid": None, "action": action, "metadata": {}, "created_at": stamp}
            )

        entries = await runtime.audit.entries("TX1", arbitrator_actor)
        assert [e.action for e in entries] == ["third", "second", "first"]

    @pytest.mark.asyncio
    async def test_mixed_timestamp_shapes(self, runtime, arbitrator_actor) -> None:
        collection = audit_collection("TX1")
        await runtime.store.append(
            collection, {"action": "newest", "created_at": "2024-05-03T00:00:00+00:00"}
        )
        await runtime.store.append(collection, {"action": "oldest", "created_at": 1714521600})
        await runtime.store.append(collection, {"action": "middle", "created_at": 1714608000000})

        entries = await runtime.audit.entries("TX1", arbitrator_actor)
        assert [e.action for e in entries] == ["newest", "middle", "oldest"]

    @pytest.mark.asyncio
    async def test_purge(self, runtime, arbitrator_actor) -> None:
        await runtime.audit.record("TX1", "u-alice", "accepted_transaction")
        await runtime.audit.record("TX1", "u-bob", "rejected_transaction")
        await runtime.audit.record("TX2", "u-bob", "accepted_transaction")

        assert await runtime.audit.purge("TX1") == 2
        assert await runtime.audit.entries("TX1", arbitrator_actor) == []
        assert len(await runtime.audit.entries("TX2", arbitrator_actor)) == 1
