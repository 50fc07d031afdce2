"""
Payment reconciliation loop.

Polls the Sui node for ``payment`` module events and marks the referenced
orders PAID. Each cycle is FETCH -> PARSE -> APPLY -> SLEEP:

- Fetch failures skip the cycle without touching the cursor.
- Unparsable events are dropped; the rest of the page is still applied.
- A storage failure on any event holds the cursor, so the whole page is
  re-read next cycle.
- Every apply is a guarded UPDATE, so zero affected rows is a normal outcome
  (unknown order, or already paid by an earlier delivery).
- The cursor is persisted only after the whole page has been applied. A crash
  mid-page re-reads that page on restart instead of skipping it.
"""
import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.config import Settings
from suipay.core.cursor_store import CursorStore, CursorStoreError
from suipay.core.event_parser import EventParser, PaymentEvent
from suipay.core.orders import OrderStore, OrderStoreError
from suipay.integrations.sui_client import (
    EventFilter,
    EventId,
    EventOrder,
    EventSource,
    EventSourceError,
)
from suipay.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


@dataclass
class CycleResult:
    """Counters for one reconciliation cycle."""

    fetched: int = 0
    parsed: int = 0
    paid: int = 0
    noop: int = 0
    errors: int = 0
    fetch_failed: bool = False
    cursor_advanced: bool = False
    has_next_page: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fetched": self.fetched,
            "parsed": self.parsed,
            "paid": self.paid,
            "noop": self.noop,
            "errors": self.errors,
            "fetch_failed": self.fetch_failed,
            "cursor_advanced": self.cursor_advanced,
            "has_next_page": self.has_next_page,
        }


class Reconciler:
    """
    Single-flight control loop turning payment events into order updates.

    Features:
    - Ascending, cursor-driven paging (chain order)
    - Idempotent apply via conditional updates
    - Cooperative shutdown that never leaves a page half-applied
    """

    def __init__(
        self,
        event_source: EventSource,
        order_store: OrderStore,
        cursor_store: CursorStore,
        event_filter: EventFilter,
        page_size: int = 50,
        poll_interval_seconds: float = 2.0,
        parser: Optional[EventParser] = None,
    ):
        """
        Initialize reconciler.

        Args:
            event_source: Source of raw on-chain events
            order_store: Conditional order update surface
            cursor_store: Durable cursor storage
            event_filter: Package/module whose events are indexed
            page_size: Events requested per fetch
            poll_interval_seconds: Delay between cycles
            parser: Optional event parser
        """
        self.event_source = event_source
        self.order_store = order_store
        self.cursor_store = cursor_store
        self.event_filter = event_filter
        self.page_size = page_size
        self.poll_interval_seconds = poll_interval_seconds
        self.parser = parser or EventParser()

        self._cursor: Optional[EventId] = None
        self._cursor_loaded = False
        self._stop_event = asyncio.Event()
        self._running = False

        self.last_cycle: Optional[CycleResult] = None
        self.last_cycle_at: Optional[datetime] = None

        self.log = logger.bind(package=event_filter.package, module=event_filter.module)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        event_source: EventSource,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> "Reconciler":
        """
        Build a reconciler from application settings.

        Raises:
            ValueError: If no package id is configured (indexing disabled)
        """
        if not settings.indexing_enabled:
            raise ValueError("suipay_package_id is not configured; indexing is disabled")

        return cls(
            event_source=event_source,
            order_store=OrderStore(session_factory),
            cursor_store=CursorStore(session_factory),
            event_filter=EventFilter(
                package=settings.suipay_package_id,
                module=settings.indexer_module,
            ),
            page_size=settings.indexer_page_size,
            poll_interval_seconds=settings.indexer_poll_interval_seconds,
        )

    @property
    def cursor(self) -> Optional[EventId]:
        """Position the next fetch resumes from."""
        return self._cursor

    @property
    def running(self) -> bool:
        return self._running

    async def _apply(self, event: PaymentEvent, result: CycleResult) -> None:
        """Issue the conditional update for one payment event."""
        order_id = str(event.order_id)
        event_id = event.event_id.to_json() if event.event_id else None

        try:
            rows = await self.order_store.mark_paid_if_pending(event.order_id)
        except OrderStoreError as e:
            result.errors += 1
            metrics.record_reconciliation("error")
            self.log.error(
                "order_mark_paid_failed",
                order_id=order_id,
                event_id=event_id,
                error=str(e),
            )
            return

        if rows > 0:
            result.paid += 1
            metrics.record_reconciliation("paid")
            self.log.info(
                "order_marked_paid",
                order_id=order_id,
                event_id=event_id,
                amount=event.amount,
                sender=event.sender,
            )
        else:
            result.noop += 1
            metrics.record_reconciliation("noop")
            self.log.info(
                "payment_event_no_pending_order",
                order_id=order_id,
                event_id=event_id,
            )

    async def run_cycle(self) -> CycleResult:
        """
        Run one FETCH -> PARSE -> APPLY pass.

        Never raises for source, parse or storage faults; they are logged and
        reflected in the returned counters.

        Returns:
            CycleResult: What happened during the cycle
        """
        start_time = time.time()
        result = CycleResult()

        try:
            if not self._cursor_loaded:
                self._cursor = await self.cursor_store.load(self.event_filter)
                self._cursor_loaded = True
                self.log.info(
                    "indexer_cursor_loaded",
                    cursor=self._cursor.to_json() if self._cursor else None,
                )
        except CursorStoreError as e:
            result.fetch_failed = True
            self.log.error("indexer_cursor_load_failed", error=str(e))
            return self._finish_cycle(result, start_time)

        # FETCH
        try:
            page = await self.event_source.fetch_page(
                self.event_filter,
                self._cursor,
                self.page_size,
                EventOrder.ASCENDING,
            )
        except EventSourceError as e:
            result.fetch_failed = True
            metrics.record_fetch_error()
            self.log.warning("indexer_fetch_failed", error=str(e))
            return self._finish_cycle(result, start_time)

        result.fetched = len(page.events)
        result.has_next_page = page.has_next_page
        metrics.record_events_fetched(result.fetched)

        # PARSE
        payments = self.parser.parse_page(page.events)
        result.parsed = len(payments)
        metrics.record_events_skipped(result.fetched - result.parsed)

        # APPLY, in source order
        for payment in payments:
            await self._apply(payment, result)

        # Advance only once the whole page is applied
        if result.errors:
            self.log.warning(
                "indexer_page_retry_scheduled",
                errors=result.errors,
                cursor=self._cursor.to_json() if self._cursor else None,
            )
        elif page.next_cursor is not None and page.next_cursor != self._cursor:
            try:
                await self.cursor_store.save(self.event_filter, page.next_cursor)
            except CursorStoreError as e:
                self.log.error(
                    "indexer_cursor_save_failed",
                    cursor=page.next_cursor.to_json(),
                    error=str(e),
                )
            else:
                self._cursor = page.next_cursor
                result.cursor_advanced = True
                metrics.record_cursor_advanced()

        return self._finish_cycle(result, start_time)

    def _finish_cycle(self, result: CycleResult, start_time: float) -> CycleResult:
        duration = time.time() - start_time
        metrics.record_cycle_duration(duration)
        self.last_cycle = result
        self.last_cycle_at = datetime.now(timezone.utc)

        if result.fetched or result.fetch_failed:
            self.log.info("indexer_cycle_completed", duration_seconds=duration, **result.to_dict())

        return result

    async def _sleep(self) -> None:
        """Wait for the poll interval, waking early on stop()."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    async def start(self) -> None:
        """
        Run the reconciliation loop until stop() is called.

        A full backlog page is followed immediately by the next fetch; other
        cycles wait for the poll interval.
        """
        self._stop_event.clear()
        self._running = True
        self.log.info(
            "indexer_started",
            page_size=self.page_size,
            poll_interval=self.poll_interval_seconds,
        )

        try:
            while not self._stop_event.is_set():
                try:
                    result = await self.run_cycle()
                except Exception as e:
                    # The loop must outlive any single cycle
                    self.log.exception("indexer_cycle_error", error=str(e))
                    result = None

                if self._stop_event.is_set():
                    break

                if result is not None and result.has_next_page and result.cursor_advanced:
                    await asyncio.sleep(0)
                    continue

                await self._sleep()
        finally:
            self._running = False
            self.log.info("indexer_stopped")

    def stop(self) -> None:
        """Request shutdown after the in-flight cycle completes."""
        self._stop_event.set()
        self.log.info("indexer_stop_requested")

    def status(self) -> Dict[str, Any]:
        """Snapshot of the loop's state for the admin API."""
        return {
            "enabled": True,
            "running": self._running,
            "package": self.event_filter.package,
            "module": self.event_filter.module,
            "cursor": self._cursor.to_json() if self._cursor else None,
            "last_cycle": self.last_cycle.to_dict() if self.last_cycle else None,
            "last_cycle_at": self.last_cycle_at.isoformat() if self.last_cycle_at else None,
        }
