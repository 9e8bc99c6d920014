"""Pydantic API schemas."""

from arbitrated_escrow.schemas.escrow import (
    ActionRequest,
    AuditEntryResponse,
    CreateTransactionRequest,
    HealthResponse,
    MarkAllReadResponse,
    NotificationFeedResponse,
    NotificationResponse,
    RegisterUserRequest,
    TransactionResponse,
    TransactionStatusResponse,
    UserResponse,
)

__all__ = [
    "ActionRequest",
    "AuditEntryResponse",
    "CreateTransactionRequest",
    "HealthResponse",
    "MarkAllReadResponse",
    "NotificationFeedResponse",
    "NotificationResponse",
    "RegisterUserRequest",
    "TransactionResponse",
    "TransactionStatusResponse",
    "UserResponse",
]
