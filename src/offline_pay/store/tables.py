"""ORM tables for the local transaction store."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - SQLAlchemy needs this at runtime for Mapped[datetime]
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from offline_pay.models.transaction import (
    Keypair,
    OfflineTransaction,
    TransactionOrigin,
    TransactionStatus,
)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all tables."""

    type_annotation_map = {  # noqa: RUF012
        dict[str, Any]: JSON,
    }


class TimestampMixin:
    """Created / updated timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class TransactionRecord(Base, TimestampMixin):
    """A stored offline transaction, keyed by its content hash."""

    __tablename__ = "offline_transactions"
    __table_args__ = (Index("ix_offline_transactions_sender_nonce", "sender", "nonce"),)

    hash: Mapped[str] = mapped_column(
        String(64), primary_key=True, comment="SHA-256 of the canonical message"
    )
    id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sender: Mapped[str] = mapped_column(String(128), nullable=False)
    recipient: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[str] = mapped_column(String(80), nullable=False)
    nonce: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Milliseconds")
    signature: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=TransactionStatus.PENDING.value,
        index=True,
        comment="PENDING | PROCESSING | COMPLETED | FAILED | REJECTED",
    )
    origin: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TransactionOrigin.LOCAL.value
    )
    synced_on_ledger: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    mesh_propagated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    @classmethod
    def from_domain(cls, tx: OfflineTransaction) -> TransactionRecord:
        return cls(
            hash=tx.hash,
            id=tx.id,
            sender=tx.sender,
            recipient=tx.recipient,
            amount=tx.amount,
            nonce=tx.nonce,
            timestamp=tx.timestamp,
            signature=tx.signature,
            status=tx.status.value,
            origin=tx.origin.value,
            synced_on_ledger=tx.synced_on_ledger,
            mesh_propagated=tx.mesh_propagated,
            metadata_=dict(tx.metadata),
        )

    def to_domain(self) -> OfflineTransaction:
        return OfflineTransaction(
            id=self.id,
            sender=self.sender,
            recipient=self.recipient,
            amount=self.amount,
            nonce=self.nonce,
            timestamp=self.timestamp,
            signature=self.signature,
            hash=self.hash,
            status=TransactionStatus(self.status),
            metadata=dict(self.metadata_ or {}),
            synced_on_ledger=self.synced_on_ledger,
            mesh_propagated=self.mesh_propagated,
            origin=TransactionOrigin(self.origin),
        )

    def __repr__(self) -> str:
        return f"<TransactionRecord hash={self.hash[:16]}... status={self.status}>"


class KeypairRecord(Base, TimestampMixin):
    """The device identity keypair. One row per device."""

    __tablename__ = "keypairs"

    address: Mapped[str] = mapped_column(String(64), primary_key=True)
    public_key: Mapped[str] = mapped_column(String(64), nullable=False)
    private_key: Mapped[str] = mapped_column(String(128), nullable=False)

    def to_domain(self) -> Keypair:
        return Keypair(
            address=self.address,
            public_key=self.public_key,
            private_key=self.private_key,
        )
