"""SQLAlchemy 2.0 ORM models backing the SQL document store.

Two tables:
    1. documents — every versioned document, addressed by (collection, doc_id).
                   Transactions, audit entries and notifications all live here;
                   nested collections use paths like "transactions/TX1/audit".
    2. users     — the user directory.

Design decisions:
    - An integer surrogate key doubles as the store-wide insertion sequence,
      the tie-break when two documents share a created_at.
    - ``version`` is the compare-and-swap token: every write is an
      UPDATE ... WHERE version = :expected.
    - JSON columns use JSONB on PostgreSQL and plain JSON elsewhere.
    - Audit collections are append-only at the application level.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. documents
# ---------------------------------------------------------------------------
class DocumentRow(Base):
    """A versioned JSON document in a named collection."""

    __tablename__ = "documents"

    # --- Primary Key / insertion sequence ---
    sequence: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    # --- Address ---
    collection: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment='Collection path, e.g. "transactions" or "users/u1/notifications"',
    )
    doc_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Document id, unique within its collection",
    )

    # --- Concurrency ---
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Incremented on every write; the CAS token",
    )

    # --- Body ---
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument,
        nullable=False,
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_document_address"),
        Index("idx_document_collection", "collection"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRow {self.collection}/{self.doc_id} v{self.version}>"


# ---------------------------------------------------------------------------
# 2. users
# ---------------------------------------------------------------------------
class UserRow(Base):
    """A user directory entry."""

    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(
        String(320),
        nullable=False,
        unique=True,
        comment="Stored lower-cased; invites resolve by email",
    )
    username: Mapped[str] = mapped_column(String(120), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    is_arbitrator: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_user_arbitrator", "is_arbitrator"),)

    def __repr__(self) -> str:
        return f"<UserRow uid={self.uid} arbitrator={self.is_arbitrator}>"
