"""Domain exceptions for the arbitrated escrow engine.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.
Every error carries a ``details`` dict with enough context to render an
actionable message (which precondition failed, whose turn it is).
"""

from __future__ import annotations

from typing import Any


class EscrowError(Exception):
    """Base exception for all domain errors."""

    def __init__(
        self,
        message: str,
        code: str = "ESCROW_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        """Whether re-fetching and re-submitting the same action can succeed."""
        return False


# --- Caller / actor errors ---


class AuthenticationRequiredError(EscrowError):
    """Raised when no caller identity is available."""

    def __init__(self) -> None:
        super().__init__(
            message="An authenticated caller identity is required",
            code="AUTHENTICATION_REQUIRED",
        )


class PermissionDeniedError(EscrowError, PermissionError):
    """Raised when the caller is not the actor an action requires.

    Checked before any state precondition, so a buyer asking to release
    goods is refused no matter what status the transaction is in.
    """

    def __init__(self, action: str, actor_uid: str, required: str, transaction_id: str | None = None) -> None:
        target = f" on {transaction_id}" if transaction_id else ""
        super().__init__(
            message=f"Only the {required} may {action}{target}",
            code="PERMISSION_DENIED",
            details={
                "action": action,
                "actor_uid": actor_uid,
                "required": required,
                "transaction_id": transaction_id,
            },
        )
        self.action = action
        self.actor_uid = actor_uid
        self.required = required


# --- State machine errors ---


class InvalidStateError(EscrowError):
    """Raised when an action's precondition does not hold.

    Example: release_goods while the transaction is still awaiting_confirmation.
    """

    def __init__(
        self,
        transaction_id: str,
        action: str,
        current_status: str,
        reason: str,
        awaiting: str | None = None,
    ) -> None:
        turn = f"; waiting on the {awaiting}" if awaiting else ""
        super().__init__(
            message=(
                f"Cannot {action} transaction {transaction_id} "
                f"in status {current_status}: {reason}{turn}"
            ),
            code="INVALID_STATE",
            details={
                "transaction_id": transaction_id,
                "action": action,
                "current_status": current_status,
                "reason": reason,
                "awaiting": awaiting,
            },
        )
        self.transaction_id = transaction_id
        self.action = action
        self.current_status = current_status
        self.awaiting = awaiting


class DeletionRefusedError(PermissionDeniedError, InvalidStateError):
    """Raised when a non-participant tries to delete a transaction.

    The deletion guard treats an outsider's delete as both a wrong-actor and a
    failed-guard error, so it satisfies handlers for either.
    """

    def __init__(self, transaction_id: str, actor_uid: str, current_status: str) -> None:
        EscrowError.__init__(
            self,
            message=f"Only a participant may delete transaction {transaction_id}",
            code="PERMISSION_DENIED",
            details={
                "action": "delete",
                "actor_uid": actor_uid,
                "required": "participant",
                "transaction_id": transaction_id,
                "current_status": current_status,
            },
        )
        self.action = "delete"
        self.actor_uid = actor_uid
        self.required = "participant"
        self.transaction_id = transaction_id
        self.current_status = current_status
        self.awaiting = None


class ConflictError(EscrowError):
    """Raised when a conditional update lost a race.

    The stored record changed between read and commit. The caller must
    re-fetch the transaction before deciding whether to retry.
    """

    def __init__(self, transaction_id: str, action: str, expected_version: int) -> None:
        super().__init__(
            message=(
                f"Transaction {transaction_id} changed while applying {action}; "
                "refresh and retry"
            ),
            code="CONFLICT",
            details={
                "transaction_id": transaction_id,
                "action": action,
                "expected_version": expected_version,
            },
        )
        self.transaction_id = transaction_id
        self.expected_version = expected_version

    @property
    def retryable(self) -> bool:
        return True


# --- Lookup errors ---


class NotFoundError(EscrowError):
    """Base for unknown transactions, users and notifications."""


class TransactionNotFoundError(NotFoundError):
    """Raised when a transaction ID does not exist."""

    def __init__(self, transaction_id: str) -> None:
        super().__init__(
            message=f"Transaction not found: {transaction_id}",
            code="TRANSACTION_NOT_FOUND",
            details={"transaction_id": transaction_id},
        )
        self.transaction_id = transaction_id


class UserNotFoundError(NotFoundError):
    """Raised when a uid or invite email does not resolve to a user."""

    def __init__(self, *, uid: str | None = None, email: str | None = None) -> None:
        key = f"email {email}" if email is not None else f"uid {uid}"
        super().__init__(
            message=f"User not found for {key}",
            code="USER_NOT_FOUND",
            details={"uid": uid, "email": email},
        )


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification does not exist in the caller's outbox."""

    def __init__(self, notification_id: str) -> None:
        super().__init__(
            message=f"Notification not found: {notification_id}",
            code="NOTIFICATION_NOT_FOUND",
            details={"notification_id": notification_id},
        )


# --- Input errors ---


class EscrowValidationError(EscrowError, ValueError):
    """Raised for non-positive amounts, unsupported currencies and self-invites."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details={"field": field},
        )
        self.field = field


# --- Idempotency errors ---


class DuplicateOperationError(EscrowError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str, existing_id: str | None = None) -> None:
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}",
            code="DUPLICATE_OPERATION",
            details={"idempotency_key": idempotency_key, "existing_id": existing_id},
        )
