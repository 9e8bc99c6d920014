"""Domain records: users, transactions, audit entries and notifications.

Records are frozen dataclasses. They are converted to and from plain JSON
documents (``to_document`` / ``from_document``) at the store boundary, so the
domain layer stays independent of the storage backend.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from arbitrated_escrow.domain.enums import PartyRole, TxStatus

# Epoch values above this are milliseconds, not seconds (year 5138 in seconds).
_MILLIS_THRESHOLD = 100_000_000_000


def parse_timestamp(value: Any) -> datetime | None:
    """Normalise a heterogeneous timestamp to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings,
    epoch seconds and epoch milliseconds. Returns None for anything else,
    including epochs the platform cannot represent.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        seconds = value / 1000 if abs(value) >= _MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (ValueError, OverflowError, OSError):
            # NaN, infinity, or outside the platform time_t range.
            return None
    if isinstance(value, str):
        try:
            return parse_timestamp(datetime.fromisoformat(value))
        except ValueError:
            pass
        try:
            return parse_timestamp(float(value))
        except ValueError:
            return None
    return None


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class Identity:
    """A durable caller identity issued by the identity provider."""

    uid: str
    email: str | None = None


@dataclass(frozen=True)
class UserProfile:
    """A user directory entry."""

    uid: str
    email: str
    username: str
    wallet_address: str = ""
    is_arbitrator: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def display_name(self) -> str:
        return self.username or self.email


@dataclass(frozen=True)
class Actor:
    """A caller resolved against the user directory for one action."""

    uid: str
    display_name: str
    wallet_address: str = ""
    is_arbitrator: bool = False

    @classmethod
    def from_profile(cls, profile: UserProfile) -> Actor:
        return cls(
            uid=profile.uid,
            display_name=profile.display_name,
            wallet_address=profile.wallet_address,
            is_arbitrator=profile.is_arbitrator,
        )


@dataclass(frozen=True)
class TransactionRecord:
    """The shared escrow record. One per deal.

    ``version`` is assigned by the document store and is not part of the
    stored document; it is the compare-and-swap token for the next update.
    """

    id: str
    creator_uid: str
    creator_role: PartyRole
    invited_uid: str
    invited_role: PartyRole
    amount: Decimal
    currency: str
    terms: str
    status: TxStatus
    escrow_wallet_address: str
    seller_wallet_address: str = ""
    buyer_wallet_address: str = ""
    payment_sent: bool = False
    payment_received: bool = False
    goods_released: bool = False
    buyer_approved: bool = False
    completed: bool = False
    created_at: datetime | None = None
    version: int = 0

    @property
    def participants(self) -> tuple[str, str]:
        return (self.creator_uid, self.invited_uid)

    @property
    def seller_uid(self) -> str:
        return self.creator_uid if self.creator_role is PartyRole.SELLER else self.invited_uid

    @property
    def buyer_uid(self) -> str:
        return self.creator_uid if self.creator_role is PartyRole.BUYER else self.invited_uid

    def is_participant(self, uid: str) -> bool:
        return uid in self.participants

    def counterparty_of(self, uid: str) -> str:
        return self.invited_uid if uid == self.creator_uid else self.creator_uid

    def to_document(self) -> dict[str, Any]:
        """Serialize for storage as a JSON document."""
        return {
            "creator_uid": self.creator_uid,
            "creator_role": self.creator_role.value,
            "invited_uid": self.invited_uid,
            "invited_role": self.invited_role.value,
            "amount": str(self.amount),
            "currency": self.currency,
            "terms": self.terms,
            "status": self.status.value,
            "escrow_wallet_address": self.escrow_wallet_address,
            "seller_wallet_address": self.seller_wallet_address,
            "buyer_wallet_address": self.buyer_wallet_address,
            "participants": list(self.participants),
            "payment_sent": self.payment_sent,
            "payment_received": self.payment_received,
            "goods_released": self.goods_released,
            "buyer_approved": self.buyer_approved,
            "completed": self.completed,
            "created_at": _isoformat(self.created_at),
        }

    @classmethod
    def from_document(
        cls,
        doc_id: str,
        data: dict[str, Any],
        version: int,
        stored_at: datetime | None = None,
    ) -> TransactionRecord:
        """Rebuild a record from a stored document.

        ``stored_at`` is the store-assigned creation time, used when the
        document itself carries no usable ``created_at``.
        """
        return cls(
            id=doc_id,
            creator_uid=data["creator_uid"],
            creator_role=PartyRole(data["creator_role"]),
            invited_uid=data["invited_uid"],
            invited_role=PartyRole(data["invited_role"]),
            amount=Decimal(str(data["amount"])),
            currency=data["currency"],
            terms=data.get("terms", ""),
            status=TxStatus(data["status"]),
            escrow_wallet_address=data.get("escrow_wallet_address", ""),
            seller_wallet_address=data.get("seller_wallet_address", ""),
            buyer_wallet_address=data.get("buyer_wallet_address", ""),
            payment_sent=bool(data.get("payment_sent", False)),
            payment_received=bool(data.get("payment_received", False)),
            goods_released=bool(data.get("goods_released", False)),
            buyer_approved=bool(data.get("buyer_approved", False)),
            completed=bool(data.get("completed", False)),
            created_at=parse_timestamp(data.get("created_at")) or parse_timestamp(stored_at),
            version=version,
        )


@dataclass(frozen=True)
class AuditEntry:
    """Immutable record of one committed transition."""

    id: str
    transaction_id: str
    actor_uid: str | None
    action: str
    metadata: dict[str, Any]
    created_at: datetime
    sequence: int


@dataclass(frozen=True)
class Notification:
    """A message in a user's outbox. Only ``read`` ever changes."""

    id: str
    recipient_uid: str
    message: str
    related_tx_id: str | None
    read: bool
    created_at: datetime
    sequence: int


@dataclass(frozen=True)
class NotificationFeed:
    """A recipient's notifications, newest first, with the unread count."""

    items: list[Notification]

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.items if not n.read)
