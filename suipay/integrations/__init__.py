"""External service integrations."""
from .sui_client import (
    EventFilter,
    EventId,
    EventOrder,
    EventPage,
    EventSource,
    EventSourceError,
    SuiEventSource,
)

__all__ = [
    "EventFilter",
    "EventId",
    "EventOrder",
    "EventPage",
    "EventSource",
    "EventSourceError",
    "SuiEventSource",
]
