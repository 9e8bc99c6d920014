"""Pydantic schemas for the escrow API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain records to keep the HTTP contract and the engine
independent. Business validation (amount > 0, supported currency, role,
self-invite) stays in the engine so every caller gets the same errors.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateTransactionRequest(BaseModel):
    """Request body for opening a new escrow transaction."""

    invite_email: str = Field(
        ...,
        min_length=3,
        max_length=320,
        description="Email of the counterparty to invite",
        examples=["bob@example.com"],
    )
    role: str = Field(
        ...,
        description="The creator's role: 'seller' or 'buyer'",
        examples=["seller"],
    )
    amount: Decimal = Field(
        ...,
        description="Escrowed amount, must be greater than zero",
        examples=["0.5"],
    )
    currency: str = Field(
        ...,
        min_length=2,
        max_length=10,
        description="Currency code, e.g. BTC",
        examples=["BTC"],
    )
    terms: str = Field(
        default="",
        max_length=5000,
        description="Free-text terms of the deal",
    )
    idempotency_key: str | None = Field(
        default=None,
        max_length=128,
        description="Optional idempotency key to prevent duplicate transaction creation",
    )


class ActionRequest(BaseModel):
    """Optional body for a transition action."""

    reason: str | None = Field(
        default=None,
        max_length=2000,
        description="Justification recorded in the audit trail (arbitrator actions)",
    )
    expected_version: int | None = Field(
        default=None,
        ge=1,
        description="The version the caller last observed; a mismatch is a conflict",
    )


class RegisterUserRequest(BaseModel):
    """Request body for adding a user to the directory."""

    uid: str = Field(..., min_length=1, max_length=128)
    email: str = Field(..., min_length=3, max_length=320)
    username: str = Field(default="", max_length=120)
    wallet_address: str = Field(default="", max_length=128)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class TransactionResponse(BaseModel):
    """Response schema for an escrow transaction."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    creator_uid: str
    creator_role: str
    invited_uid: str
    invited_role: str
    participants: list[str]
    amount: Decimal
    currency: str
    terms: str
    status: str
    escrow_wallet_address: str
    seller_wallet_address: str
    buyer_wallet_address: str
    payment_sent: bool
    payment_received: bool
    goods_released: bool
    buyer_approved: bool
    completed: bool
    created_at: datetime | None
    version: int


class TransactionStatusResponse(BaseModel):
    """What the caller is, and may do, on one transaction right now."""

    transaction_id: str
    status: str
    version: int
    role: str | None
    is_arbitrator: bool
    allowed_actions: list[str] = Field(
        description="Actions the caller may perform from the current status"
    )
    awaiting: str | None = Field(description="Whose turn it is, if anyone's")
    progress: int = Field(ge=0, le=100)


class AuditEntryResponse(BaseModel):
    """Response schema for an audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    transaction_id: str
    actor_uid: str | None
    action: str
    metadata: dict
    created_at: datetime


class NotificationResponse(BaseModel):
    """Response schema for a notification."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    message: str
    related_tx_id: str | None
    read: bool
    created_at: datetime


class NotificationFeedResponse(BaseModel):
    """A recipient's notifications, newest first."""

    items: list[NotificationResponse]
    unread_count: int


class MarkAllReadResponse(BaseModel):
    marked: list[str]
    failed: list[str]


class UserResponse(BaseModel):
    """Response schema for a directory entry."""

    model_config = ConfigDict(from_attributes=True)

    uid: str
    email: str
    username: str
    wallet_address: str
    is_arbitrator: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    store: str = "unknown"
    redis: str = "unknown"
