"""Tests for concurrent transitions against one record.

Two callers read the same version before either commits. The conditional
update lets exactly one of them through; the other gets ConflictError and
produces no audit entry or notification.
"""

from __future__ import annotations

import asyncio

import pytest

from arbitrated_escrow.domain.collaborators import TRANSACTIONS
from arbitrated_escrow.domain.enums import Action, AuditAction, TxStatus
from arbitrated_escrow.domain.exceptions import ConflictError, InvalidStateError
from arbitrated_escrow.domain.models import Identity, UserProfile
from arbitrated_escrow.infrastructure.memory_store import (
    InMemoryDocumentStore,
    InMemoryUserDirectory,
)
from arbitrated_escrow.services.runtime import build_runtime


class RacingStore(InMemoryDocumentStore):
    """Holds transaction reads at a barrier so two callers see the same version."""

    def __init__(self) -> None:
        super().__init__()
        self.barrier: asyncio.Barrier | None = None

    async def get(self, collection, doc_id):
        document = await super().get(collection, doc_id)
        if self.barrier is not None and collection == TRANSACTIONS:
            await self.barrier.wait()
        return document


@pytest.fixture
def second_admin() -> Identity:
    return Identity(uid="u-admin-2", email="admin2@escrow.com")


@pytest.fixture
def racing(settings, profiles):
    store = RacingStore()
    directory = InMemoryUserDirectory(
        [
            *profiles,
            UserProfile(uid="u-admin-2", email="admin2@escrow.com", username="admin2",
                        is_arbitrator=True),
        ]
    )
    return build_runtime(store, directory, settings)


async def _race(runtime, *calls):
    runtime.store.barrier = asyncio.Barrier(len(calls))
    try:
        return await asyncio.gather(*calls, return_exceptions=True)
    finally:
        runtime.store.barrier = None


async def _awaiting_confirmation(runtime, alice, bob):
    tx = await runtime.transactions.create(
        alice, invite_email="bob@example.com", role="seller", amount="1", currency="BTC"
    )
    await runtime.transactions.accept(tx.id, bob)
    await runtime.transactions.mark_payment_sent(tx.id, alice)
    return tx


class TestConfirmRace:
    @pytest.mark.asyncio
    async def test_exactly_one_confirmation_commits(
        self, racing, alice, bob, admin, second_admin
    ) -> None:
        tx = await _awaiting_confirmation(racing, alice, bob)
        await racing.drain()

        results = await _race(
            racing,
            racing.transactions.confirm_payment(tx.id, admin),
            racing.transactions.confirm_payment(tx.id, second_admin),
        )
        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], ConflictError)
        assert winners[0].status is TxStatus.PAYMENT_RECEIVED
        assert winners[0].version == 4

        await racing.drain()
        entries = await racing.queries.audit_trail(tx.id, admin)
        confirmations = [e for e in entries if e.action == AuditAction.ADMIN_CONFIRMED_PAYMENT]
        assert len(confirmations) == 1

        for uid in ("u-alice", "u-bob"):
            feed = await racing.outbox.list_for(uid)
            confirmed = [n for n in feed.items if "confirmed payment" in n.message]
            assert len(confirmed) == 1

    @pytest.mark.asyncio
    async def test_loser_retry_sees_new_state(self, racing, alice, bob, admin, second_admin) -> None:
        tx = await _awaiting_confirmation(racing, alice, bob)
        results = await _race(
            racing,
            racing.transactions.confirm_payment(tx.id, admin),
            racing.transactions.confirm_payment(tx.id, second_admin),
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1

        # After a re-fetch the retry is refused on state, not on version.
        with pytest.raises(InvalidStateError):
            await racing.transactions.confirm_payment(tx.id, second_admin)


class TestCrossActorRace:
    @pytest.mark.asyncio
    async def test_review_races_release(self, racing, alice, bob, admin) -> None:
        tx = await _awaiting_confirmation(racing, alice, bob)
        await racing.transactions.confirm_payment(tx.id, admin)

        results = await _race(
            racing,
            racing.transactions.perform(tx.id, admin, Action.MARK_UNDER_REVIEW),
            racing.transactions.perform(tx.id, alice, Action.RELEASE_GOODS),
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1

        final = await racing.transactions.get(tx.id, admin)
        committed = next(r for r in results if not isinstance(r, BaseException))
        assert final.status is committed.status
        assert final.version == 5

    @pytest.mark.asyncio
    async def test_accept_races_reject(self, racing, alice, bob) -> None:
        tx = await racing.transactions.create(
            alice, invite_email="bob@example.com", role="seller", amount="1", currency="BTC"
        )
        results = await _race(
            racing,
            racing.transactions.accept(tx.id, bob),
            racing.transactions.reject(tx.id, bob),
        )
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        final = await racing.transactions.get(tx.id, bob)
        assert final.status in (TxStatus.WAITING_PAYMENT, TxStatus.REJECTED)
        assert final.version == 2
