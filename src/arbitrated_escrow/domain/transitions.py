"""Pure transition planning.

plan_transition() takes a record, a resolved actor and an action and returns
the record that should be committed together with the side effects to run
after the commit. It performs no I/O, so the same rules back the engine,
the "what can I do now" introspection and the tests.

Order of checks:
    1. Permission (who may act)   -> PermissionDeniedError
    2. Precondition (state guard) -> InvalidStateError
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from statemachine.exceptions import TransitionNotAllowed

from arbitrated_escrow.domain.enums import Action, AuditAction, PartyRole, TxStatus
from arbitrated_escrow.domain.exceptions import InvalidStateError
from arbitrated_escrow.domain.models import Actor, TransactionRecord
from arbitrated_escrow.domain.permissions import authorize, awaiting_party
from arbitrated_escrow.domain.state_machine import next_status

AUDIT_ACTIONS: dict[Action, AuditAction] = {
    Action.ACCEPT: AuditAction.ACCEPTED_TRANSACTION,
    Action.REJECT: AuditAction.REJECTED_TRANSACTION,
    Action.MARK_PAYMENT_SENT: AuditAction.MARKED_PAYMENT_SENT,
    Action.CONFIRM_PAYMENT: AuditAction.ADMIN_CONFIRMED_PAYMENT,
    Action.RELEASE_GOODS: AuditAction.MARKED_GOODS_RELEASED,
    Action.APPROVE_RELEASE: AuditAction.BUYER_APPROVED_RELEASE,
    Action.MARK_UNDER_REVIEW: AuditAction.MARKED_UNDER_REVIEW,
    Action.RESOLVE_REVIEW: AuditAction.RESOLVED_REVIEW,
    Action.MARK_REFUNDED: AuditAction.MARKED_REFUNDED,
}

# Human-readable reasons for InvalidStateError, keyed by action.
_PRECONDITIONS: dict[Action, str] = {
    Action.ACCEPT: "requires pending_acceptance",
    Action.REJECT: "requires pending_acceptance",
    Action.MARK_PAYMENT_SENT: "requires waiting_payment with payment not yet sent",
    Action.CONFIRM_PAYMENT: "requires payment sent and not yet confirmed",
    Action.RELEASE_GOODS: "requires payment_received with goods not yet released",
    Action.APPROVE_RELEASE: "requires goods_released with release not yet approved",
    Action.MARK_UNDER_REVIEW: "not allowed once completed, rejected or refunded",
    Action.RESOLVE_REVIEW: "requires under_review",
    Action.MARK_REFUNDED: "not allowed once rejected or refunded",
}


@dataclass(frozen=True)
class NotificationIntent:
    """A notification to enqueue once the transition has committed."""

    recipient_uid: str
    message: str


@dataclass(frozen=True)
class TransitionPlan:
    """The outcome of a successful plan: new record plus deferred side effects."""

    action: Action
    previous: TransactionRecord
    record: TransactionRecord
    audit_action: AuditAction
    audit_metadata: dict[str, Any] = field(default_factory=dict)
    notifications: tuple[NotificationIntent, ...] = ()


def plan_transition(
    record: TransactionRecord,
    actor: Actor,
    action: Action,
    *,
    arbitrator_uids: Iterable[str] = (),
    reason: str | None = None,
) -> TransitionPlan:
    """Decide the effect of ``action`` on ``record`` for ``actor``.

    Args:
        record: The record as read, including its version.
        actor: The caller, resolved against the user directory.
        action: Any transition action (not CREATE or DELETE).
        arbitrator_uids: Recipients of arbitrator fan-out notifications.
        reason: Optional free-text justification, stored in the audit entry.

    Raises:
        PermissionDeniedError: The actor may not perform this action.
        InvalidStateError: The record's status or flags forbid it.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"'{action}' is not a planned transition")

    authorize(action, actor, record)

    try:
        status = next_status(record, action)
    except TransitionNotAllowed as err:
        raise InvalidStateError(
            transaction_id=record.id,
            action=action.value,
            current_status=record.status.value,
            reason=_PRECONDITIONS[action],
            awaiting=awaiting_party(record),
        ) from err

    updated = dataclasses.replace(record, status=status, **_effects(record, actor, action))

    metadata: dict[str, Any] = {
        "from_status": record.status.value,
        "to_status": status.value,
    }
    if reason:
        metadata["reason"] = reason

    return TransitionPlan(
        action=action,
        previous=record,
        record=updated,
        audit_action=AUDIT_ACTIONS[action],
        audit_metadata=metadata,
        notifications=tuple(_notifications(updated, actor, action, arbitrator_uids)),
    )


def _effects(record: TransactionRecord, actor: Actor, action: Action) -> dict[str, Any]:
    """Field changes beyond the status itself."""
    if action is Action.ACCEPT:
        if record.invited_role is PartyRole.SELLER:
            return {"seller_wallet_address": actor.wallet_address}
        return {"buyer_wallet_address": actor.wallet_address}
    if action is Action.MARK_PAYMENT_SENT:
        return {"payment_sent": True}
    if action is Action.CONFIRM_PAYMENT:
        return {"payment_received": True}
    if action is Action.RELEASE_GOODS:
        return {"goods_released": True}
    if action is Action.APPROVE_RELEASE:
        return {"buyer_approved": True, "completed": True}
    if action is Action.MARK_REFUNDED:
        # The one sanctioned reset of a progress flag.
        return {"completed": False}
    return {}


def _notifications(
    record: TransactionRecord,
    actor: Actor,
    action: Action,
    arbitrator_uids: Iterable[str],
) -> list[NotificationIntent]:
    tx_id = record.id
    name = actor.display_name

    if action is Action.ACCEPT:
        return [NotificationIntent(record.creator_uid, f"{name} accepted the escrow ({tx_id}).")]
    if action is Action.REJECT:
        return [NotificationIntent(record.creator_uid, f"{name} rejected transaction {tx_id}")]
    if action is Action.MARK_PAYMENT_SENT:
        intents = [
            NotificationIntent(
                record.counterparty_of(actor.uid),
                f"{name} marked payment as sent for {tx_id}",
            )
        ]
        intents.extend(
            NotificationIntent(uid, f"Payment marked as sent for {tx_id}. Please verify.")
            for uid in dict.fromkeys(arbitrator_uids)
            if not record.is_participant(uid)
        )
        return intents
    if action is Action.CONFIRM_PAYMENT:
        return _to_participants(record, f"Arbitrator confirmed payment received for {tx_id}")
    if action is Action.RELEASE_GOODS:
        return [NotificationIntent(record.buyer_uid, f"Seller released goods for {tx_id}")]
    if action is Action.APPROVE_RELEASE:
        return [
            NotificationIntent(
                record.seller_uid, f"Buyer approved release for {tx_id}. Funds released."
            )
        ]
    if action is Action.MARK_UNDER_REVIEW:
        return _to_participants(record, f"Arbitrator marked {tx_id} as Under Review.")
    if action is Action.RESOLVE_REVIEW:
        return _to_participants(
            record,
            f"Arbitrator resolved the review of {tx_id}; it is now {_pretty(record.status)}.",
        )
    if action is Action.MARK_REFUNDED:
        return _to_participants(record, f"Arbitrator marked {tx_id} as Refunded.")
    return []


def _to_participants(record: TransactionRecord, message: str) -> list[NotificationIntent]:
    return [NotificationIntent(uid, message) for uid in record.participants]


def _pretty(status: TxStatus) -> str:
    return status.value.replace("_", " ").upper()
