"""Durable storage of the indexer's event-stream cursor."""
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.database.models import IndexerCursor
from suipay.integrations.sui_client import EventFilter, EventId

logger = structlog.get_logger(__name__)


class CursorStoreError(Exception):
    """Raised when the cursor cannot be read or written."""

    pass


class CursorStore:
    """Reads and writes one cursor row per (package, module) filter."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self, event_filter: EventFilter) -> Optional[EventId]:
        """
        Load the persisted cursor for a filter.

        Returns:
            Optional[EventId]: Last applied position, or None to start from
            the beginning of the stream
        """
        stmt = select(IndexerCursor).where(
            IndexerCursor.package_id == event_filter.package,
            IndexerCursor.module == event_filter.module,
        )
        async with self.session_factory() as db:
            try:
                row = (await db.execute(stmt)).scalar_one_or_none()
            except SQLAlchemyError as e:
                raise CursorStoreError(f"Failed to load cursor: {str(e)}") from e

        if row is None:
            return None
        return EventId(tx_digest=row.tx_digest, event_seq=row.event_seq)

    async def save(self, event_filter: EventFilter, cursor: EventId) -> None:
        """Persist the cursor for a filter, replacing any previous value."""
        async with self.session_factory() as db:
            try:
                await db.merge(
                    IndexerCursor(
                        package_id=event_filter.package,
                        module=event_filter.module,
                        tx_digest=cursor.tx_digest,
                        event_seq=cursor.event_seq,
                    )
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise CursorStoreError(f"Failed to save cursor: {str(e)}") from e

        logger.debug(
            "indexer_cursor_saved",
            package=event_filter.package,
            module=event_filter.module,
            tx_digest=cursor.tx_digest,
            event_seq=cursor.event_seq,
        )
