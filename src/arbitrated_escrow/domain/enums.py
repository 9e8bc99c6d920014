"""Domain enumerations for the arbitrated escrow engine.

These enums define the canonical statuses, roles and actions used throughout
the system. They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class TxStatus(enum.StrEnum):
    """Lifecycle states of an escrow transaction.

    Transitions are enforced by TransactionStateMachine.
    See domain/state_machine.py for the transition table.
    """

    PENDING_ACCEPTANCE = "pending_acceptance"
    WAITING_PAYMENT = "waiting_payment"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    PAYMENT_RECEIVED = "payment_received"
    GOODS_RELEASED = "goods_released"
    COMPLETED = "completed"
    REJECTED = "rejected"
    UNDER_REVIEW = "under_review"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_deletable(self) -> bool:
        return self in DELETABLE_STATUSES


TERMINAL_STATUSES = frozenset(
    {TxStatus.COMPLETED, TxStatus.REJECTED, TxStatus.REFUNDED}
)

DELETABLE_STATUSES = frozenset(
    {
        TxStatus.REJECTED,
        TxStatus.PENDING_ACCEPTANCE,
        TxStatus.WAITING_PAYMENT,
        TxStatus.AWAITING_CONFIRMATION,
    }
)

# Percentage shown on progress bars.
STATUS_PROGRESS: dict[TxStatus, int] = {
    TxStatus.PENDING_ACCEPTANCE: 10,
    TxStatus.WAITING_PAYMENT: 30,
    TxStatus.AWAITING_CONFIRMATION: 50,
    TxStatus.PAYMENT_RECEIVED: 70,
    TxStatus.GOODS_RELEASED: 85,
    TxStatus.COMPLETED: 100,
    TxStatus.REJECTED: 0,
    TxStatus.UNDER_REVIEW: 40,
    TxStatus.REFUNDED: 0,
}


class PartyRole(enum.StrEnum):
    """Role a participant plays in a transaction."""

    SELLER = "seller"
    BUYER = "buyer"

    @property
    def complement(self) -> "PartyRole":
        return PartyRole.BUYER if self is PartyRole.SELLER else PartyRole.SELLER


class Action(enum.StrEnum):
    """Actions a caller can submit to the transition engine.

    Every action except CREATE and DELETE is also an event name on
    TransactionStateMachine.
    """

    CREATE = "create"
    ACCEPT = "accept"
    REJECT = "reject"
    MARK_PAYMENT_SENT = "mark_payment_sent"
    CONFIRM_PAYMENT = "confirm_payment"
    RELEASE_GOODS = "release_goods"
    APPROVE_RELEASE = "approve_release"
    MARK_UNDER_REVIEW = "mark_under_review"
    RESOLVE_REVIEW = "resolve_review"
    MARK_REFUNDED = "mark_refunded"
    DELETE = "delete"


TRANSITION_ACTIONS: tuple[Action, ...] = tuple(
    a for a in Action if a not in (Action.CREATE, Action.DELETE)
)


class AuditAction(enum.StrEnum):
    """Action names written to a transaction's audit trail.

    Every committed transition produces exactly one entry.
    """

    ACCEPTED_TRANSACTION = "accepted_transaction"
    REJECTED_TRANSACTION = "rejected_transaction"
    MARKED_PAYMENT_SENT = "marked_payment_sent"
    ADMIN_CONFIRMED_PAYMENT = "admin_confirmed_payment"
    MARKED_GOODS_RELEASED = "marked_goods_released"
    BUYER_APPROVED_RELEASE = "buyer_approved_release"
    MARKED_UNDER_REVIEW = "marked_under_review"
    RESOLVED_REVIEW = "resolved_review"
    MARKED_REFUNDED = "marked_refunded"


class Capability(enum.StrEnum):
    """What a caller is, relative to one transaction.

    Resolved once per action by domain.permissions.capabilities_for().
    """

    CREATOR = "creator"
    INVITED = "invited"
    SELLER = "seller"
    BUYER = "buyer"
    PARTICIPANT = "participant"
    ARBITRATOR = "arbitrator"
