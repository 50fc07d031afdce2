"""Core payment reconciliation logic."""
from .cursor_store import CursorStore, CursorStoreError
from .event_parser import EventParseError, EventParser, PaymentEvent
from .orders import OrderRecord, OrderStore, OrderStoreError, OrderValidationError
from .reconciler import CycleResult, Reconciler

__all__ = [
    "CursorStore",
    "CursorStoreError",
    "CycleResult",
    "EventParseError",
    "EventParser",
    "OrderRecord",
    "OrderStore",
    "OrderStoreError",
    "OrderValidationError",
    "PaymentEvent",
    "Reconciler",
]
