"""Tests for domain enums."""

from __future__ import annotations

from arbitrated_escrow.domain.enums import (
    DELETABLE_STATUSES,
    STATUS_PROGRESS,
    TERMINAL_STATUSES,
    TRANSITION_ACTIONS,
    Action,
    AuditAction,
    PartyRole,
    TxStatus,
)


class TestTxStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "pending_acceptance",
            "waiting_payment",
            "awaiting_confirmation",
            "payment_received",
            "goods_released",
            "completed",
            "rejected",
            "under_review",
            "refunded",
        }
        assert {s.value for s in TxStatus} == expected

    def test_string_values(self) -> None:
        assert TxStatus.WAITING_PAYMENT == "waiting_payment"
        assert TxStatus("under_review") is TxStatus.UNDER_REVIEW

    def test_terminal_statuses(self) -> None:
        assert TERMINAL_STATUSES == {TxStatus.COMPLETED, TxStatus.REJECTED, TxStatus.REFUNDED}
        assert TxStatus.COMPLETED.is_terminal
        assert not TxStatus.UNDER_REVIEW.is_terminal

    def test_deletable_statuses(self) -> None:
        assert DELETABLE_STATUSES == {
            TxStatus.REJECTED,
            TxStatus.PENDING_ACCEPTANCE,
            TxStatus.WAITING_PAYMENT,
            TxStatus.AWAITING_CONFIRMATION,
        }
        assert not TxStatus.COMPLETED.is_deletable
        assert not TxStatus.PAYMENT_RECEIVED.is_deletable

    def test_every_status_has_progress(self) -> None:
        assert set(STATUS_PROGRESS) == set(TxStatus)
        assert STATUS_PROGRESS[TxStatus.COMPLETED] == 100


class TestPartyRole:
    def test_complement(self) -> None:
        assert PartyRole.SELLER.complement is PartyRole.BUYER
        assert PartyRole.BUYER.complement is PartyRole.SELLER


class TestActions:
    def test_create_and_delete_are_not_transitions(self) -> None:
        assert Action.CREATE not in TRANSITION_ACTIONS
        assert Action.DELETE not in TRANSITION_ACTIONS
        assert len(TRANSITION_ACTIONS) == len(Action) - 2

    def test_audit_vocabulary(self) -> None:
        assert AuditAction.ADMIN_CONFIRMED_PAYMENT == "admin_confirmed_payment"
        assert AuditAction.BUYER_APPROVED_RELEASE == "buyer_approved_release"
        assert len(AuditAction) == len(TRANSITION_ACTIONS)
