"""SQLAlchemy database models for the SuiPay backend."""
import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class OrderStatus(str, enum.Enum):
    """Order lifecycle. The only transition is PENDING -> PAID."""

    PENDING = "PENDING"
    PAID = "PAID"


class Order(Base):
    """
    Merchant orders awaiting (or settled by) an on-chain payment.

    Rows are immutable apart from ``status``, which is only ever changed by a
    conditional update guarded on the current status.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    merchant_address: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="USDC")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint("status IN ('PENDING', 'PAID')", name="valid_order_status"),
        Index("idx_orders_merchant_status", "merchant_address", "status"),
    )

    def __repr__(self) -> str:
        """String representation of Order."""
        return (
            f"<Order(id={self.id}, merchant={self.merchant_address}, "
            f"amount={self.amount}, status={self.status})>"
        )


class IndexerCursor(Base):
    """
    Durable event-stream position per (package, module) filter.

    Written only after every event of a page has been applied.
    """

    __tablename__ = "indexer_cursors"

    package_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    module: Mapped[str] = mapped_column(String(128), primary_key=True)
    tx_digest: Mapped[str] = mapped_column(String(128), nullable=False)
    event_seq: Mapped[str] = mapped_column(String(32), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        """String representation of IndexerCursor."""
        return (
            f"<IndexerCursor(package={self.package_id}, module={self.module}, "
            f"tx={self.tx_digest}, seq={self.event_seq})>"
        )


class ZkLoginSalt(Base):
    """
    Per-identity zkLogin salt.

    One row per external identity (issuer, audience, subject). The salt is
    generated once and never recomputed, so derived addresses stay stable.
    """

    __tablename__ = "zklogin_salts"

    identity_key: Mapped[str] = mapped_column(String(512), primary_key=True)
    salt: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        """String representation of ZkLoginSalt."""
        return f"<ZkLoginSalt(identity_key={self.identity_key})>"
