"""Tests for the escrow transaction state machine guard.

Verifies:
    - Happy path: pending_acceptance -> ... -> completed
    - Invitation: accept / reject
    - Flag guards: no second payment mark, confirm only once payment is sent
    - Arbitration: under_review from any open status, resolve_review targets
    - Refund override from completed, but never from rejected or refunded
    - available_actions() introspection
"""

from __future__ import annotations

import pytest
from statemachine.exceptions import TransitionNotAllowed

from arbitrated_escrow.domain.enums import TERMINAL_STATUSES, Action, TxStatus
from arbitrated_escrow.domain.state_machine import (
    TransactionStateMachine,
    available_actions,
    next_status,
)


class TestHappyPath:
    """The full lifecycle a cooperative seller and buyer walk through."""

    def test_initial_state_is_pending_acceptance(self) -> None:
        sm = TransactionStateMachine()
        assert sm.status == "pending_acceptance"

    def test_full_lifecycle(self) -> None:
        sm = TransactionStateMachine("pending_acceptance")
        sm.accept()
        assert sm.status == "waiting_payment"

        sm = TransactionStateMachine("waiting_payment")
        sm.mark_payment_sent()
        assert sm.status == "awaiting_confirmation"

        sm = TransactionStateMachine("awaiting_confirmation", payment_sent=True)
        sm.confirm_payment()
        assert sm.status == "payment_received"

        sm = TransactionStateMachine("payment_received", payment_sent=True, payment_received=True)
        sm.release_goods()
        assert sm.status == "goods_released"

        sm = TransactionStateMachine(
            "goods_released", payment_sent=True, payment_received=True, goods_released=True
        )
        sm.approve_release()
        assert sm.status == "completed"

    def test_next_status_on_record(self, make_record) -> None:
        record = make_record(TxStatus.WAITING_PAYMENT)
        assert next_status(record, Action.MARK_PAYMENT_SENT) is TxStatus.AWAITING_CONFIRMATION


class TestInvitation:
    def test_reject(self) -> None:
        sm = TransactionStateMachine("pending_acceptance")
        sm.reject()
        assert sm.status == "rejected"

    def test_cannot_accept_twice(self) -> None:
        sm = TransactionStateMachine("waiting_payment")
        with pytest.raises(TransitionNotAllowed):
            sm.accept()

    def test_cannot_skip_to_completed(self) -> None:
        sm = TransactionStateMachine("pending_acceptance")
        with pytest.raises(TransitionNotAllowed):
            sm.approve_release()


class TestFlagGuards:
    """Progress flags gate transitions together with the status."""

    def test_payment_cannot_be_marked_twice(self) -> None:
        sm = TransactionStateMachine("waiting_payment", payment_sent=True)
        with pytest.raises(TransitionNotAllowed):
            sm.mark_payment_sent()

    def test_confirm_requires_payment_sent(self) -> None:
        sm = TransactionStateMachine("awaiting_confirmation", payment_sent=False)
        with pytest.raises(TransitionNotAllowed):
            sm.confirm_payment()

    def test_confirm_not_repeated(self) -> None:
        sm = TransactionStateMachine("under_review", payment_sent=True, payment_received=True)
        with pytest.raises(TransitionNotAllowed):
            sm.confirm_payment()

    def test_confirm_from_under_review(self) -> None:
        sm = TransactionStateMachine("under_review", payment_sent=True)
        sm.confirm_payment()
        assert sm.status == "payment_received"

    def test_release_goods_requires_payment_received(self) -> None:
        sm = TransactionStateMachine("awaiting_confirmation", payment_sent=True)
        with pytest.raises(TransitionNotAllowed):
            sm.release_goods()

    def test_approve_not_repeated(self) -> None:
        sm = TransactionStateMachine("goods_released", goods_released=True, buyer_approved=True)
        with pytest.raises(TransitionNotAllowed):
            sm.approve_release()


class TestArbitration:
    @pytest.mark.parametrize(
        "status",
        [
            "pending_acceptance",
            "waiting_payment",
            "awaiting_confirmation",
            "payment_received",
            "goods_released",
            "under_review",
        ],
    )
    def test_under_review_from_open_statuses(self, status: str) -> None:
        sm = TransactionStateMachine(status)
        sm.mark_under_review()
        assert sm.status == "under_review"

    @pytest.mark.parametrize("status", ["completed", "rejected", "refunded"])
    def test_under_review_not_from_terminal(self, status: str) -> None:
        sm = TransactionStateMachine(status)
        with pytest.raises(TransitionNotAllowed):
            sm.mark_under_review()

    @pytest.mark.parametrize(
        ("flags", "expected"),
        [
            ({}, "waiting_payment"),
            ({"payment_sent": True}, "awaiting_confirmation"),
            ({"payment_sent": True, "payment_received": True}, "payment_received"),
            (
                {"payment_sent": True, "payment_received": True, "goods_released": True},
                "goods_released",
            ),
        ],
    )
    def test_resolve_review_follows_flags(self, flags: dict[str, bool], expected: str) -> None:
        sm = TransactionStateMachine("under_review", **flags)
        sm.resolve_review()
        assert sm.status == expected

    def test_resolve_review_only_from_under_review(self) -> None:
        sm = TransactionStateMachine("waiting_payment")
        with pytest.raises(TransitionNotAllowed):
            sm.resolve_review()


class TestRefund:
    def test_refund_overrides_completed(self) -> None:
        sm = TransactionStateMachine("completed", buyer_approved=True)
        sm.mark_refunded()
        assert sm.status == "refunded"

    @pytest.mark.parametrize("status", ["rejected", "refunded"])
    def test_refund_not_from_final(self, status: str) -> None:
        sm = TransactionStateMachine(status)
        with pytest.raises(TransitionNotAllowed):
            sm.mark_refunded()


class TestIntrospection:
    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown status"):
            TransactionStateMachine("lost_in_the_mail")

    def test_create_is_not_an_event(self, make_record) -> None:
        with pytest.raises(ValueError):
            next_status(make_record(), Action.CREATE)

    def test_available_actions_pending(self, make_record) -> None:
        actions = available_actions(make_record(TxStatus.PENDING_ACCEPTANCE))
        assert set(actions) == {
            Action.ACCEPT,
            Action.REJECT,
            Action.MARK_UNDER_REVIEW,
            Action.MARK_REFUNDED,
        }

    def test_available_actions_terminal(self, make_record) -> None:
        assert available_actions(make_record(TxStatus.COMPLETED, completed=True)) == [
            Action.MARK_REFUNDED
        ]
        for status in TERMINAL_STATUSES - {TxStatus.COMPLETED}:
            assert available_actions(make_record(status)) == []
