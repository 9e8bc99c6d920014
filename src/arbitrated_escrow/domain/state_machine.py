"""Escrow Transaction State Machine Guard.

Uses python-statemachine to enforce legal status transitions at the domain
level. No matter what the API or a client believes the status to be, an
illegal transition (e.g. pending_acceptance -> completed) raises
TransitionNotAllowed.

The machine is instantiated per record with the record's progress flags, so
flag preconditions (payment_sent, goods_released, ...) are checked by the
same guard as the status graph.

Transition table:
    pending_acceptance    -> waiting_payment        (accept)
    pending_acceptance    -> rejected               (reject)
    waiting_payment       -> awaiting_confirmation  (mark_payment_sent, unless payment sent)
    awaiting_confirmation -> payment_received       (confirm_payment, if sent and not received)
    under_review          -> payment_received       (confirm_payment, if sent and not received)
    payment_received      -> goods_released         (release_goods, unless goods released)
    goods_released        -> completed              (approve_release, unless buyer approved)
    <any non-terminal>    -> under_review           (mark_under_review)
    under_review          -> <progress status>      (resolve_review, chosen by flags)
    <any but rejected>    -> refunded               (mark_refunded)

rejected and refunded are final. completed is terminal for the participants
but stays open to the arbitrator's refund override.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from arbitrated_escrow.domain.enums import TRANSITION_ACTIONS, Action, TxStatus

if TYPE_CHECKING:
    from arbitrated_escrow.domain.models import TransactionRecord


class TransactionStateMachine(StateMachine):
    """State machine that guards escrow transaction lifecycle transitions.

    Usage:
        sm = TransactionStateMachine("waiting_payment")
        sm.mark_payment_sent()   # transitions to awaiting_confirmation
        sm.status                # "awaiting_confirmation"
    """

    # --- States ---
    pending_acceptance = State("Pending acceptance", value="pending_acceptance", initial=True)
    waiting_payment = State("Waiting payment", value="waiting_payment")
    awaiting_confirmation = State("Awaiting confirmation", value="awaiting_confirmation")
    payment_received = State("Payment received", value="payment_received")
    goods_released = State("Goods released", value="goods_released")
    completed = State("Completed", value="completed")
    rejected = State("Rejected", value="rejected", final=True)
    under_review = State("Under review", value="under_review")
    refunded = State("Refunded", value="refunded", final=True)

    # --- Events / Transitions ---

    # Invitation
    accept = pending_acceptance.to(waiting_payment)
    reject = pending_acceptance.to(rejected)

    # Happy path
    mark_payment_sent = waiting_payment.to(awaiting_confirmation, unless="payment_was_sent")
    confirm_payment = awaiting_confirmation.to(
        payment_received, cond="payment_awaits_confirmation"
    ) | under_review.to(payment_received, cond="payment_awaits_confirmation")
    release_goods = payment_received.to(goods_released, unless="goods_were_released")
    approve_release = goods_released.to(completed, unless="buyer_has_approved")

    # Arbitration
    mark_under_review = (
        pending_acceptance.to(under_review)
        | waiting_payment.to(under_review)
        | awaiting_confirmation.to(under_review)
        | payment_received.to(under_review)
        | goods_released.to(under_review)
        | under_review.to.itself()
    )
    # First matching transition wins: the furthest status the flags justify.
    resolve_review = (
        under_review.to(goods_released, cond="goods_were_released")
        | under_review.to(payment_received, cond="payment_was_received")
        | under_review.to(awaiting_confirmation, cond="payment_was_sent")
        | under_review.to(waiting_payment)
    )
    mark_refunded = (
        pending_acceptance.to(refunded)
        | waiting_payment.to(refunded)
        | awaiting_confirmation.to(refunded)
        | payment_received.to(refunded)
        | goods_released.to(refunded)
        | completed.to(refunded)
        | under_review.to(refunded)
    )

    def __init__(
        self,
        current_status: str = "pending_acceptance",
        *,
        payment_sent: bool = False,
        payment_received: bool = False,
        goods_released: bool = False,
        buyer_approved: bool = False,
    ) -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current TxStatus value (e.g. "waiting_payment").
            payment_sent, payment_received, goods_released, buyer_approved:
                The record's progress flags, consulted by transition guards.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        self._payment_sent = payment_sent
        self._payment_received = payment_received
        self._goods_released = goods_released
        self._buyer_approved = buyer_approved
        super().__init__(start_value=current_status)

    @classmethod
    def for_record(cls, record: TransactionRecord) -> TransactionStateMachine:
        return cls(
            record.status.value,
            payment_sent=record.payment_sent,
            payment_received=record.payment_received,
            goods_released=record.goods_released,
            buyer_approved=record.buyer_approved,
        )

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches TxStatus)."""
        return str(self.current_state.value)

    # --- Guards ---

    def payment_was_sent(self) -> bool:
        return self._payment_sent

    def payment_was_received(self) -> bool:
        return self._payment_received

    def payment_awaits_confirmation(self) -> bool:
        return self._payment_sent and not self._payment_received

    def goods_were_released(self) -> bool:
        return self._goods_released

    def buyer_has_approved(self) -> bool:
        return self._buyer_approved


def next_status(record: TransactionRecord, action: Action) -> TxStatus:
    """Fire ``action`` against a throwaway machine and return the new status.

    Raises:
        TransitionNotAllowed: If the action is illegal for the record.
        ValueError: If the action is not a state machine event.
    """
    if action not in TRANSITION_ACTIONS:
        raise ValueError(f"'{action}' is not a transition event")
    sm = TransactionStateMachine.for_record(record)
    sm.send(action.value)
    return TxStatus(sm.status)


def available_actions(record: TransactionRecord) -> list[Action]:
    """Return the transition events whose guards pass for the record.

    Ignores who is asking; combine with domain.permissions for that.
    """
    allowed = []
    for action in TRANSITION_ACTIONS:
        try:
            next_status(record, action)
        except TransitionNotAllowed:
            continue
        allowed.append(action)
    return allowed
