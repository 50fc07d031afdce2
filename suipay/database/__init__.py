"""Database package for the SuiPay backend."""
from .connection import (
    close_db,
    create_session_factory,
    get_engine,
    init_db,
)
from .models import Base, IndexerCursor, Order, OrderStatus, ZkLoginSalt

__all__ = [
    "Base",
    "IndexerCursor",
    "Order",
    "OrderStatus",
    "ZkLoginSalt",
    "close_db",
    "create_session_factory",
    "get_engine",
    "init_db",
]
