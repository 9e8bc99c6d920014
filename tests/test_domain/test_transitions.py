"""Tests for pure transition planning.

Verifies:
    - Permission is checked before the state precondition
    - Flag effects of each action, including the refund reset of completed
    - Audit metadata and notification fan-out
"""

from __future__ import annotations

import pytest

from arbitrated_escrow.domain.enums import Action, AuditAction, PartyRole, TxStatus
from arbitrated_escrow.domain.exceptions import InvalidStateError, PermissionDeniedError
from arbitrated_escrow.domain.transitions import plan_transition


class TestCheckOrder:
    def test_wrong_actor_beats_wrong_state(self, make_record, buyer_actor) -> None:
        record = make_record(TxStatus.WAITING_PAYMENT)
        with pytest.raises(PermissionDeniedError):
            plan_transition(record, buyer_actor, Action.RELEASE_GOODS)

    def test_invalid_state_carries_context(self, make_record, seller_actor) -> None:
        record = make_record(TxStatus.AWAITING_CONFIRMATION, payment_sent=True)
        with pytest.raises(InvalidStateError) as exc_info:
            plan_transition(record, seller_actor, Action.RELEASE_GOODS)
        err = exc_info.value
        assert err.current_status == "awaiting_confirmation"
        assert err.awaiting == "arbitrator"
        assert "payment_received" in err.details["reason"]

    def test_delete_is_not_planned(self, make_record, seller_actor) -> None:
        with pytest.raises(ValueError):
            plan_transition(make_record(), seller_actor, Action.DELETE)


class TestEffects:
    def test_accept_fills_invited_wallet(self, make_record, buyer_actor) -> None:
        plan = plan_transition(make_record(), buyer_actor, Action.ACCEPT)
        assert plan.record.status is TxStatus.WAITING_PAYMENT
        assert plan.record.buyer_wallet_address == "bc1qbob"
        assert plan.audit_action is AuditAction.ACCEPTED_TRANSACTION

    def test_accept_by_invited_seller(self, make_record, seller_actor) -> None:
        record = make_record(
            creator_uid="u-bob",
            creator_role=PartyRole.BUYER,
            invited_uid="u-alice",
            invited_role=PartyRole.SELLER,
            seller_wallet_address="",
        )
        plan = plan_transition(record, seller_actor, Action.ACCEPT)
        assert plan.record.seller_wallet_address == "bc1qalice"

    def test_approve_release_completes(self, make_record, buyer_actor) -> None:
        record = make_record(
            TxStatus.GOODS_RELEASED, payment_sent=True, payment_received=True, goods_released=True
        )
        plan = plan_transition(record, buyer_actor, Action.APPROVE_RELEASE)
        assert plan.record.status is TxStatus.COMPLETED
        assert plan.record.buyer_approved
        assert plan.record.completed

    def test_refund_after_completion_clears_completed(self, make_record, arbitrator_actor) -> None:
        record = make_record(TxStatus.COMPLETED, buyer_approved=True, completed=True)
        plan = plan_transition(record, arbitrator_actor, Action.MARK_REFUNDED, reason="Chargeback")
        assert plan.record.status is TxStatus.REFUNDED
        assert plan.record.completed is False
        assert plan.record.buyer_approved is True
        assert plan.audit_metadata == {
            "from_status": "completed",
            "to_status": "refunded",
            "reason": "Chargeback",
        }

    def test_plan_does_not_touch_input(self, make_record, seller_actor) -> None:
        record = make_record(TxStatus.WAITING_PAYMENT)
        plan = plan_transition(record, seller_actor, Action.MARK_PAYMENT_SENT)
        assert plan.previous is record
        assert record.payment_sent is False
        assert plan.record.payment_sent is True


class TestNotifications:
    def test_payment_sent_reaches_counterparty_and_arbitrators(
        self, make_record, seller_actor
    ) -> None:
        plan = plan_transition(
            make_record(TxStatus.WAITING_PAYMENT),
            seller_actor,
            Action.MARK_PAYMENT_SENT,
            arbitrator_uids=["u-admin", "u-admin", "u-alice"],
        )
        recipients = [n.recipient_uid for n in plan.notifications]
        assert recipients == ["u-bob", "u-admin"]
        assert "Please verify" in plan.notifications[1].message

    def test_under_review_notifies_both_parties(self, make_record, arbitrator_actor) -> None:
        plan = plan_transition(
            make_record(TxStatus.PAYMENT_RECEIVED), arbitrator_actor, Action.MARK_UNDER_REVIEW
        )
        assert {n.recipient_uid for n in plan.notifications} == {"u-alice", "u-bob"}
        assert "Under Review" in plan.notifications[0].message

    def test_resolve_review_names_new_status(self, make_record, arbitrator_actor) -> None:
        record = make_record(TxStatus.UNDER_REVIEW, payment_sent=True)
        plan = plan_transition(record, arbitrator_actor, Action.RESOLVE_REVIEW)
        assert plan.record.status is TxStatus.AWAITING_CONFIRMATION
        assert "AWAITING CONFIRMATION" in plan.notifications[0].message

    def test_reject_notifies_creator(self, make_record, buyer_actor) -> None:
        plan = plan_transition(make_record(), buyer_actor, Action.REJECT)
        assert [n.recipient_uid for n in plan.notifications] == ["u-alice"]
        assert plan.notifications[0].message == "bob rejected transaction TX0001"
