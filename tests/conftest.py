"""Shared test fixtures for the arbitrated escrow test suite.

Provides:
    - Settings with instant side-effect retries
    - A seeded in-memory runtime (seller alice, buyer bob, arbitrator admin,
      outsider carol)
    - Caller identities and a factory for opening deals
    - Async test support via pytest-asyncio
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from arbitrated_escrow.config import Settings
from arbitrated_escrow.domain.enums import PartyRole, TxStatus
from arbitrated_escrow.domain.models import Actor, Identity, TransactionRecord, UserProfile
from arbitrated_escrow.services.runtime import build_memory_runtime

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with no backoff so failing side effects give up immediately."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        arbitrator_emails="admin@escrow.com",
        side_effect_max_attempts=2,
        side_effect_backoff_seconds=0,
        side_effect_backoff_max_seconds=0,
    )


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture
def profiles() -> list[UserProfile]:
    return [
        UserProfile(uid="u-alice", email="alice@example.com", username="alice",
                    wallet_address="bc1qalice"),
        UserProfile(uid="u-bob", email="bob@example.com", username="bob",
                    wallet_address="bc1qbob"),
        UserProfile(uid="u-admin", email="admin@escrow.com", username="admin",
                    is_arbitrator=True),
        UserProfile(uid="u-carol", email="carol@example.com", username="carol"),
    ]


@pytest.fixture
def alice() -> Identity:
    return Identity(uid="u-alice", email="alice@example.com")


@pytest.fixture
def bob() -> Identity:
    return Identity(uid="u-bob", email="bob@example.com")


@pytest.fixture
def admin() -> Identity:
    return Identity(uid="u-admin", email="admin@escrow.com")


@pytest.fixture
def carol() -> Identity:
    return Identity(uid="u-carol", email="carol@example.com")


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@pytest.fixture
def runtime(settings: Settings, profiles: list[UserProfile]):
    """In-memory runtime seeded with the test users."""
    return build_memory_runtime(settings, profiles)


@pytest.fixture
def open_deal(runtime, alice: Identity):
    """Factory: alice (seller by default) opens a 0.5 BTC deal with bob."""

    async def _open(creator: Identity | None = None, **overrides) -> TransactionRecord:
        params = {
            "invite_email": "bob@example.com",
            "role": "seller",
            "amount": "0.5",
            "currency": "BTC",
            "terms": "One vintage guitar",
        }
        params.update(overrides)
        return await runtime.transactions.create(creator or alice, **params)

    return _open


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seller_actor() -> Actor:
    return Actor(uid="u-alice", display_name="alice", wallet_address="bc1qalice")


@pytest.fixture
def buyer_actor() -> Actor:
    return Actor(uid="u-bob", display_name="bob", wallet_address="bc1qbob")


@pytest.fixture
def arbitrator_actor() -> Actor:
    return Actor(uid="u-admin", display_name="admin", is_arbitrator=True)


@pytest.fixture
def outsider_actor() -> Actor:
    return Actor(uid="u-carol", display_name="carol")


@pytest.fixture
def make_record():
    """Factory for an in-memory TransactionRecord: alice sells to bob."""

    def _make(status: TxStatus = TxStatus.PENDING_ACCEPTANCE, **overrides) -> TransactionRecord:
        fields = {
            "id": "TX0001",
            "creator_uid": "u-alice",
            "creator_role": PartyRole.SELLER,
            "invited_uid": "u-bob",
            "invited_role": PartyRole.BUYER,
            "amount": Decimal("0.5"),
            "currency": "BTC",
            "terms": "One vintage guitar",
            "status": status,
            "escrow_wallet_address": "bc1qescrow",
            "seller_wallet_address": "bc1qalice",
            "version": 1,
        }
        fields.update(overrides)
        return TransactionRecord(**fields)

    return _make
