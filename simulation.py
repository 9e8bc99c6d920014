#!/usr/bin/env python3
"""Arbitrated Escrow — End-to-End Simulation.

Simulates four scenarios with SellerBot, BuyerBot and ArbitratorBot:

    Scenario 1: Happy Path
        - Seller opens an escrow and invites the buyer
        - Buyer accepts, seller marks payment sent
        - Arbitrator confirms, seller releases goods, buyer approves -> COMPLETED

    Scenario 2: Rejected Invitation
        - Seller opens an escrow, buyer rejects it -> REJECTED
        - Seller deletes the rejected transaction (audit trail purged)

    Scenario 3: Dispute and Refund
        - Payment marked sent, arbitrator puts the deal UNDER REVIEW
        - Arbitrator resolves the review, then refunds -> REFUNDED

    Scenario 4: Confirm Race
        - Two arbitrators confirm the same payment at the same time
        - Exactly one commit wins, the other gets a ConflictError

Usage:
    # Option A: In-memory store (no database at all):
    uv run python simulation.py

    # Option B: SQLite file via the SQL document store:
    uv run python simulation.py --sqlite

    # Run a specific scenario:
    uv run python simulation.py --scenario 3
"""

from __future__ import annotations

import argparse
import asyncio
import tempfile
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from arbitrated_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from arbitrated_escrow.config import Settings  # noqa: E402
from arbitrated_escrow.domain.enums import PartyRole  # noqa: E402
from arbitrated_escrow.domain.exceptions import ConflictError, InvalidStateError  # noqa: E402
from arbitrated_escrow.services.identity import FixedIdentityProvider, current_identity  # noqa: E402

if TYPE_CHECKING:
    from arbitrated_escrow.domain.models import TransactionRecord
    from arbitrated_escrow.services.runtime import EscrowRuntime

# Module-level state
_sqlite_engine = None


async def init_runtime(use_sqlite: bool = False) -> EscrowRuntime:
    """Build a runtime over the in-memory store or a throwaway SQLite file."""
    global _sqlite_engine

    settings = Settings(
        store_backend="memory",
        arbitrator_emails="admin@escrow.com,admin2@escrow.com",
        side_effect_backoff_seconds=0.05,
    )
    if not use_sqlite:
        from arbitrated_escrow.services.runtime import build_memory_runtime

        runtime = build_memory_runtime(settings, latency=0.001)
    else:
        from arbitrated_escrow.infrastructure.database.engine import (
            create_engine_for_url,
            create_tables,
            make_session_factory,
        )
        from arbitrated_escrow.services.runtime import build_sql_runtime

        db_path = Path(tempfile.mkdtemp()) / "escrow-simulation.db"
        _sqlite_engine = create_engine_for_url(f"sqlite+aiosqlite:///{db_path}")
        await create_tables(_sqlite_engine)
        runtime = build_sql_runtime(make_session_factory(_sqlite_engine), settings)
        logger.info("database.sqlite_initialized", path=str(db_path))

    await runtime.users.register("u-seller", "seller@example.com", "Sally Seller", "bc1qseller")
    await runtime.users.register("u-buyer", "buyer@example.com", "Bob Buyer", "bc1qbuyer")
    await runtime.users.register("u-admin", "admin@escrow.com", "Escrow Admin")
    await runtime.users.register("u-admin-2", "admin2@escrow.com", "Second Admin")
    return runtime


async def shutdown_runtime(runtime: EscrowRuntime) -> None:
    """Drain side effects and close database connections."""
    global _sqlite_engine

    await runtime.drain()
    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
@dataclass
class PartyBot:
    """A simulated participant acting through the transaction service."""

    runtime: EscrowRuntime
    uid: str
    label: str

    @property
    def identity(self):
        return current_identity(FixedIdentityProvider(self.uid))

    async def act(self, tx_id: str, action: str, reason: str | None = None) -> TransactionRecord:
        record = await self.runtime.transactions.perform(
            tx_id, self.identity, action, reason=reason
        )
        logger.info(
            f"{self.label}: {action}",
            transaction_id=tx_id,
            status=record.status.value,
            version=record.version,
        )
        return record


@dataclass
class SellerBot(PartyBot):
    """Simulated seller who opens deals and ships goods."""

    async def open_escrow(self, buyer_email: str, amount: Decimal, terms: str) -> str:
        record = await self.runtime.transactions.create(
            self.identity,
            invite_email=buyer_email,
            role=PartyRole.SELLER,
            amount=amount,
            currency="BTC",
            terms=terms,
        )
        logger.info(f"{self.label}: escrow opened", transaction_id=record.id, amount=str(amount))
        return record.id

    async def delete(self, tx_id: str) -> None:
        await self.runtime.transactions.delete(tx_id, self.identity)
        logger.info(f"{self.label}: deleted", transaction_id=tx_id)


@dataclass
class BuyerBot(PartyBot):
    """Simulated buyer who accepts invitations and approves releases."""


@dataclass
class ArbitratorBot(PartyBot):
    """Simulated arbitrator who confirms payments and settles disputes."""


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


async def print_audit_trail(arbitrator: ArbitratorBot, tx_id: str) -> None:
    """Print the audit trail for a transaction, oldest first."""
    await arbitrator.runtime.drain()
    entries = await arbitrator.runtime.queries.audit_trail(tx_id, arbitrator.identity)
    print("\n  Audit Trail:")
    for i, entry in enumerate(reversed(entries), 1):
        meta = entry.metadata
        print(
            f"    {i}. [{entry.action}] {meta.get('from_status')} -> "
            f"{meta.get('to_status')} (by {entry.actor_uid})"
        )
    print()


async def print_notifications(bot: PartyBot) -> None:
    await bot.runtime.drain()
    feed = await bot.runtime.outbox.list_for(bot.uid)
    print(f"  {bot.label} inbox ({feed.unread_count} unread):")
    for note in feed.items:
        print(f"    - {note.message}")


def _bots(runtime: EscrowRuntime) -> tuple[SellerBot, BuyerBot, ArbitratorBot]:
    return (
        SellerBot(runtime, "u-seller", "SELLER"),
        BuyerBot(runtime, "u-buyer", "BUYER"),
        ArbitratorBot(runtime, "u-admin", "ARBITRATOR"),
    )


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_1_happy_path(runtime: EscrowRuntime) -> None:
    banner("SCENARIO 1: Happy Path")
    seller, buyer, admin = _bots(runtime)

    tx_id = await seller.open_escrow("buyer@example.com", Decimal("0.5"), "One vintage guitar")
    await buyer.act(tx_id, "accept")
    await seller.act(tx_id, "mark_payment_sent")
    await admin.act(tx_id, "confirm_payment")
    await seller.act(tx_id, "release_goods")
    record = await buyer.act(tx_id, "approve_release")

    print(f"  Final status: {record.status.value} (completed={record.completed})")
    await print_audit_trail(admin, tx_id)
    await print_notifications(seller)
    await print_notifications(buyer)


async def scenario_2_rejected_invitation(runtime: EscrowRuntime) -> None:
    banner("SCENARIO 2: Rejected Invitation")
    seller, buyer, admin = _bots(runtime)

    tx_id = await seller.open_escrow("buyer@example.com", Decimal("1.25"), "Domain name transfer")
    await buyer.act(tx_id, "reject")
    await print_audit_trail(admin, tx_id)

    await seller.delete(tx_id)
    await runtime.drain()
    remaining = await runtime.queries.audit_trail(tx_id, admin.identity)
    print(f"  Audit entries after delete: {len(remaining)}")
    await print_notifications(seller)


async def scenario_3_dispute_and_refund(runtime: EscrowRuntime) -> None:
    banner("SCENARIO 3: Dispute and Refund")
    seller, buyer, admin = _bots(runtime)

    tx_id = await seller.open_escrow("buyer@example.com", Decimal("2"), "Laptop, sealed box")
    await buyer.act(tx_id, "accept")
    await seller.act(tx_id, "mark_payment_sent")
    await admin.act(tx_id, "mark_under_review", reason="Buyer reports a wrong amount")

    try:
        await seller.act(tx_id, "release_goods")
    except InvalidStateError as exc:
        print(f"  Seller blocked while under review: {exc.message}")

    await admin.act(tx_id, "resolve_review", reason="Amount verified")
    record = await admin.act(tx_id, "mark_refunded", reason="Goods never shipped")
    print(f"  Final status: {record.status.value} (completed={record.completed})")
    await print_audit_trail(admin, tx_id)


async def scenario_4_confirm_race(runtime: EscrowRuntime) -> None:
    banner("SCENARIO 4: Concurrent Confirmations")
    seller, buyer, admin = _bots(runtime)
    second = ArbitratorBot(runtime, "u-admin-2", "ARBITRATOR-2")

    tx_id = await seller.open_escrow("buyer@example.com", Decimal("0.75"), "Concert tickets")
    await buyer.act(tx_id, "accept")
    await seller.act(tx_id, "mark_payment_sent")

    results = await asyncio.gather(
        admin.act(tx_id, "confirm_payment"),
        second.act(tx_id, "confirm_payment"),
        return_exceptions=True,
    )
    for bot, outcome in zip((admin, second), results, strict=True):
        if isinstance(outcome, ConflictError):
            print(f"  {bot.label}: lost the race ({outcome.message})")
        elif isinstance(outcome, InvalidStateError):
            print(f"  {bot.label}: too late, already confirmed ({outcome.message})")
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            print(f"  {bot.label}: committed -> {outcome.status.value}")
    await print_audit_trail(admin, tx_id)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_rejected_invitation,
    3: scenario_3_dispute_and_refund,
    4: scenario_4_confirm_race,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    """Run one scenario, or all of them when ``scenario`` is 0."""
    if scenario and scenario not in SCENARIOS:
        print(f"Unknown scenario {scenario}. Available: {', '.join(map(str, SCENARIOS))}")
        return

    runtime = await init_runtime(use_sqlite=use_sqlite)
    try:
        print("\n" + "#" * 70)
        print("  ARBITRATED ESCROW — SIMULATION")
        print(f"  Store: {'SQLite (SQL document store)' if use_sqlite else 'in-memory'}")
        print("#" * 70 + "\n")

        selected = [SCENARIOS[scenario]] if scenario else list(SCENARIOS.values())
        for run_scenario in selected:
            await run_scenario(runtime)

        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        await shutdown_runtime(runtime)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Arbitrated Escrow Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use the SQL document store on a temporary SQLite file.",
    )
    args = parser.parse_args()

    asyncio.run(run(scenario=args.scenario, use_sqlite=args.sqlite))
