"""
Decoding of raw ``payment`` module events into typed payment records.

The Move event carries the order reference as ``ref_id``. Depending on how the
transaction was built, the node renders it either as a plain string or as a
``vector<u8>`` (a JSON list of byte values, holding either the UUID text or
its 16 raw bytes); all forms normalize to the same UUID.
"""
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

import structlog

from suipay.integrations.sui_client import EventId

logger = structlog.get_logger(__name__)


class EventParseError(Exception):
    """Raised when a raw event cannot be decoded into a PaymentEvent."""

    pass


@dataclass(frozen=True)
class PaymentEvent:
    """A decoded payment for one order."""

    order_id: uuid.UUID
    event_id: Optional[EventId] = None
    merchant: Optional[str] = None
    amount: Optional[int] = None
    sender: Optional[str] = None
    timestamp_ms: Optional[int] = None


def normalize_ref_id(value: Any) -> uuid.UUID:
    """
    Normalize a ``ref_id`` field to an order id.

    Args:
        value: String, or list of byte values

    Returns:
        uuid.UUID: The referenced order id

    Raises:
        EventParseError: If the value is not a recognizable order id
    """
    if isinstance(value, str):
        text = value.strip()
    elif isinstance(value, list):
        if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
            raise EventParseError("ref_id byte vector contains non-byte values")
        raw = bytes(value)
        if len(raw) == 16:
            # No textual UUID is 16 characters long, so this is the raw form
            return uuid.UUID(bytes=raw)
        try:
            text = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            raise EventParseError("ref_id byte vector is not UTF-8 text") from e
    else:
        raise EventParseError(f"Unsupported ref_id encoding: {type(value).__name__}")

    try:
        return uuid.UUID(text)
    except ValueError as e:
        raise EventParseError(f"ref_id is not an order id: {text!r}") from e


def _optional_int(value: Any) -> Optional[int]:
    # u64 values arrive as decimal strings
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class EventParser:
    """Decodes raw node events, one record at a time."""

    def parse(self, raw_event: Dict[str, Any]) -> PaymentEvent:
        """
        Decode one raw event.

        Args:
            raw_event: Event object as returned by ``suix_queryEvents``

        Returns:
            PaymentEvent: Decoded payment

        Raises:
            EventParseError: If the event carries no usable order reference
        """
        if not isinstance(raw_event, dict):
            raise EventParseError("Event is not a JSON object")

        parsed = raw_event.get("parsedJson")
        if not isinstance(parsed, dict):
            raise EventParseError("Event has no parsedJson payload")
        if "ref_id" not in parsed:
            raise EventParseError("Event payload has no ref_id")

        order_id = normalize_ref_id(parsed["ref_id"])

        merchant = parsed.get("merchant")
        sender = raw_event.get("sender")

        return PaymentEvent(
            order_id=order_id,
            event_id=EventId.from_json(raw_event.get("id")),
            merchant=merchant if isinstance(merchant, str) else None,
            amount=_optional_int(parsed.get("amount")),
            sender=sender if isinstance(sender, str) else None,
            timestamp_ms=_optional_int(raw_event.get("timestampMs")),
        )

    def parse_page(self, raw_events: Iterable[Dict[str, Any]]) -> List[PaymentEvent]:
        """
        Decode a page of events, skipping records that fail to parse.

        Args:
            raw_events: Raw events in source order

        Returns:
            List[PaymentEvent]: Decoded events, source order preserved
        """
        payments: List[PaymentEvent] = []
        for position, raw_event in enumerate(raw_events):
            try:
                payments.append(self.parse(raw_event))
            except EventParseError as e:
                event_id = raw_event.get("id") if isinstance(raw_event, dict) else None
                logger.warning(
                    "payment_event_skipped",
                    position=position,
                    event_id=event_id,
                    error=str(e),
                )
        return payments
