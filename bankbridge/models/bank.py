"""User and connected-bank database models."""

import enum
import uuid
from datetime import datetime, timezone
from sqlalchemy import JSON, String, Text, DateTime, Integer, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bankbridge.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BankStatus(str, enum.Enum):
    """Known connection states. Plaid-defined variants are stored as-is."""
    CONNECTED = "connected"
    ERROR = "error"
    LOGIN_REQUIRED = "login_required"
    PENDING_EXPIRATION = "pending_expiration"
    DISCONNECTED = "disconnected"


class User(Base):
    """
    A client application user, identified by an opaque external id.
    Created lazily the first time a bank is connected or listed.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    banks: Mapped[list["ConnectedBank"]] = relationship(
        "ConnectedBank",
        back_populates="user",
        cascade="all, delete-orphan",
    )


class ConnectedBank(Base):
    """
    One linked institution for one user.
    The access credential is stored Fernet-encrypted and never serialized.
    """
    __tablename__ = "connected_banks"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    user_pk: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    institution_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    institution_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    # Encrypted using Fernet - NEVER store in plain text
    encrypted_access_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    item_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    account_mask: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    account_type: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    logo_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    nickname: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    account_ids: Mapped[list[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(50),
        default=BankStatus.CONNECTED.value,
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    last_sync_transaction_count: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    last_sync_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Joined so responses can name the owner without a lazy load under asyncio
    user: Mapped["User"] = relationship(
        "User",
        back_populates="banks",
        lazy="joined",
    )

    @property
    def external_user_id(self) -> str:
        return self.user.user_id

    __table_args__ = (
        # Upserts rely on this constraint for ON CONFLICT
        UniqueConstraint("user_pk", "institution_id", name="uq_connected_bank_user_institution"),
        Index("ix_connected_banks_user_created", "user_pk", "created_at"),
    )
