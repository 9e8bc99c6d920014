"""Domain layer — pure business logic with zero storage or web dependencies."""

from arbitrated_escrow.domain.enums import (
    Action,
    AuditAction,
    Capability,
    PartyRole,
    TxStatus,
)
from arbitrated_escrow.domain.exceptions import (
    ConflictError,
    EscrowError,
    EscrowValidationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    TransactionNotFoundError,
    UserNotFoundError,
)
from arbitrated_escrow.domain.models import (
    Actor,
    AuditEntry,
    Identity,
    Notification,
    NotificationFeed,
    TransactionRecord,
    UserProfile,
)
from arbitrated_escrow.domain.state_machine import (
    TransactionStateMachine,
    available_actions,
    next_status,
)
from arbitrated_escrow.domain.transitions import (
    NotificationIntent,
    TransitionPlan,
    plan_transition,
)

__all__ = [
    "Action",
    "AuditAction",
    "Capability",
    "PartyRole",
    "TxStatus",
    "ConflictError",
    "EscrowError",
    "EscrowValidationError",
    "InvalidStateError",
    "NotFoundError",
    "PermissionDeniedError",
    "TransactionNotFoundError",
    "UserNotFoundError",
    "Actor",
    "AuditEntry",
    "Identity",
    "Notification",
    "NotificationFeed",
    "TransactionRecord",
    "UserProfile",
    "TransactionStateMachine",
    "available_actions",
    "next_status",
    "NotificationIntent",
    "TransitionPlan",
    "plan_transition",
]
