"""
Order persistence with conditional state transitions.

The only write path available to the indexer is ``mark_paid_if_pending``: a
single guarded UPDATE. Repeating it is harmless, which is what makes
re-processing a page of events safe.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.database.models import Order, OrderStatus

logger = structlog.get_logger(__name__)

MAX_CURRENCY_LENGTH = 16
MAX_AMOUNT = 2**63 - 1


class OrderStoreError(Exception):
    """Raised when the storage layer fails."""

    pass


class OrderValidationError(Exception):
    """Raised when order input is invalid."""

    pass


@dataclass(frozen=True)
class OrderRecord:
    """Detached snapshot of an order row."""

    id: uuid.UUID
    merchant_address: str
    amount: int
    currency: str
    status: OrderStatus
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, order: Order) -> "OrderRecord":
        return cls(
            id=order.id,
            merchant_address=order.merchant_address,
            amount=order.amount,
            currency=order.currency,
            status=OrderStatus(order.status),
            created_at=order.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "merchant_address": self.merchant_address,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class OrderStore:
    """
    Conditional state-transition surface over persisted orders.

    Each operation runs in its own short session taken from the shared pool.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize order store.

        Args:
            session_factory: Session factory bound to the pooled engine
        """
        self.session_factory = session_factory

    @staticmethod
    def _validate(merchant: str, amount: int, currency: str) -> str:
        """
        Validate order input.

        Returns:
            str: Normalized currency code

        Raises:
            OrderValidationError: If validation fails
        """
        if not merchant:
            raise OrderValidationError("Merchant is required")
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise OrderValidationError("Amount must be an integer")
        if amount <= 0:
            raise OrderValidationError("Amount must be positive")
        if amount > MAX_AMOUNT:
            raise OrderValidationError("Amount exceeds 64-bit range")

        currency = (currency or "").strip().upper()
        if not currency or len(currency) > MAX_CURRENCY_LENGTH:
            raise OrderValidationError(
                f"Currency must be 1-{MAX_CURRENCY_LENGTH} characters"
            )
        return currency

    async def create(self, merchant: str, amount: int, currency: str) -> OrderRecord:
        """
        Create a new PENDING order.

        Args:
            merchant: Authenticated subject creating the order
            amount: Amount in the currency's smallest unit
            currency: Currency code

        Returns:
            OrderRecord: The stored order

        Raises:
            OrderValidationError: If input is invalid
            OrderStoreError: If the insert fails
        """
        currency = self._validate(merchant, amount, currency)

        order = Order(
            id=uuid.uuid4(),
            merchant_address=merchant,
            amount=amount,
            currency=currency,
            status=OrderStatus.PENDING.value,
        )

        async with self.session_factory() as db:
            try:
                db.add(order)
                await db.commit()
                await db.refresh(order)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("order_create_failed", merchant=merchant, error=str(e))
                raise OrderStoreError(f"Failed to create order: {str(e)}") from e

        logger.info(
            "order_created",
            order_id=str(order.id),
            merchant=merchant,
            amount=amount,
            currency=currency,
        )

        return OrderRecord.from_model(order)

    async def get(self, order_id: uuid.UUID) -> Optional[OrderRecord]:
        """
        Look up an order by id.

        Returns:
            Optional[OrderRecord]: The order, or None if unknown

        Raises:
            OrderStoreError: If the query fails
        """
        async with self.session_factory() as db:
            try:
                result = await db.execute(select(Order).where(Order.id == order_id))
                order = result.scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error("order_get_failed", order_id=str(order_id), error=str(e))
                raise OrderStoreError(f"Failed to load order: {str(e)}") from e

        return OrderRecord.from_model(order) if order else None

    async def mark_paid_if_pending(self, order_id: uuid.UUID) -> int:
        """
        Transition an order to PAID if, and only if, it is PENDING.

        Zero rows means the order is unknown or already paid; callers treat
        that as a no-op.

        Returns:
            int: Number of rows updated (0 or 1)

        Raises:
            OrderStoreError: If the update fails
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .values(status=OrderStatus.PAID.value)
            .execution_options(synchronize_session=False)
        )

        async with self.session_factory() as db:
            try:
                result = await db.execute(stmt)
                rows = result.rowcount
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise OrderStoreError(f"Failed to mark order paid: {str(e)}") from e

        return rows
