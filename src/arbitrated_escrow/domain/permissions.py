"""Role and capability gate for transition actions.

The caller's relationship to a transaction is resolved exactly once per
action (capabilities_for) and checked against a single requirement table,
instead of re-deriving "is this the seller / an admin" in every handler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from arbitrated_escrow.domain.enums import Action, Capability, PartyRole, TxStatus
from arbitrated_escrow.domain.exceptions import PermissionDeniedError

if TYPE_CHECKING:
    from arbitrated_escrow.domain.models import Actor, TransactionRecord


ACTION_REQUIREMENTS: dict[Action, Capability] = {
    Action.ACCEPT: Capability.INVITED,
    Action.REJECT: Capability.INVITED,
    Action.MARK_PAYMENT_SENT: Capability.SELLER,
    Action.CONFIRM_PAYMENT: Capability.ARBITRATOR,
    Action.RELEASE_GOODS: Capability.SELLER,
    Action.APPROVE_RELEASE: Capability.BUYER,
    Action.MARK_UNDER_REVIEW: Capability.ARBITRATOR,
    Action.RESOLVE_REVIEW: Capability.ARBITRATOR,
    Action.MARK_REFUNDED: Capability.ARBITRATOR,
    Action.DELETE: Capability.PARTICIPANT,
}

_REQUIREMENT_LABELS: dict[Capability, str] = {
    Capability.INVITED: "invited party",
    Capability.SELLER: "seller",
    Capability.BUYER: "buyer",
    Capability.ARBITRATOR: "arbitrator",
    Capability.PARTICIPANT: "participant",
    Capability.CREATOR: "creator",
}

# Who moves next in each status. Terminal statuses wait on nobody.
_AWAITING: dict[TxStatus, Capability] = {
    TxStatus.PENDING_ACCEPTANCE: Capability.INVITED,
    TxStatus.WAITING_PAYMENT: Capability.SELLER,
    TxStatus.AWAITING_CONFIRMATION: Capability.ARBITRATOR,
    TxStatus.PAYMENT_RECEIVED: Capability.SELLER,
    TxStatus.GOODS_RELEASED: Capability.BUYER,
    TxStatus.UNDER_REVIEW: Capability.ARBITRATOR,
}


def capabilities_for(actor: Actor, record: TransactionRecord) -> frozenset[Capability]:
    """Resolve everything ``actor`` is with respect to ``record``."""
    caps: set[Capability] = set()
    if actor.is_arbitrator:
        caps.add(Capability.ARBITRATOR)
    if actor.uid == record.creator_uid:
        caps.update({Capability.CREATOR, Capability.PARTICIPANT})
        caps.add(Capability(record.creator_role.value))
    if actor.uid == record.invited_uid:
        caps.update({Capability.INVITED, Capability.PARTICIPANT})
        caps.add(Capability(record.invited_role.value))
    return frozenset(caps)


def authorize(action: Action, actor: Actor, record: TransactionRecord) -> frozenset[Capability]:
    """Check that ``actor`` may perform ``action`` on ``record``.

    Returns the resolved capabilities so callers don't resolve them twice.

    Raises:
        PermissionDeniedError: If the actor lacks the required capability.
    """
    caps = capabilities_for(actor, record)
    required = ACTION_REQUIREMENTS[action]
    if required not in caps:
        raise PermissionDeniedError(
            action=action.value,
            actor_uid=actor.uid,
            required=_REQUIREMENT_LABELS[required],
            transaction_id=record.id,
        )
    return caps


def can_view(actor: Actor, record: TransactionRecord) -> bool:
    """Participants and arbitrators may read a transaction."""
    return actor.is_arbitrator or record.is_participant(actor.uid)


def awaiting_party(record: TransactionRecord) -> str | None:
    """Describe whose turn it is, e.g. "seller" or "arbitrator"."""
    capability = _AWAITING.get(record.status)
    if capability is None:
        return None
    return _REQUIREMENT_LABELS[capability]


def role_of(uid: str, record: TransactionRecord) -> PartyRole | None:
    if uid == record.creator_uid:
        return record.creator_role
    if uid == record.invited_uid:
        return record.invited_role
    return None
