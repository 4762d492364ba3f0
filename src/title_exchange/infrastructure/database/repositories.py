"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from title_exchange.infrastructure.database.orm_models import MarketEventRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from title_exchange.domain.enums import EventType
    from title_exchange.domain.models import MarketEvent


def _to_record(event: MarketEvent) -> MarketEventRecord:
    return MarketEventRecord(
        sequence=event.sequence,
        event_type=event.event_type.value,
        title_id=event.title_id,
        actor=event.actor,
        old_status=event.old_status.value if event.old_status else None,
        new_status=event.new_status.value if event.new_status else None,
        asset_id=event.asset_id,
        amount=str(event.amount) if event.amount is not None else None,
        details=event.details or None,
        occurred_at=event.occurred_at,
    )


class EventRepository:
    """Data access for the append-only market event stream."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record(self, event: MarketEvent) -> MarketEventRecord:
        """Append one event. Appending is the ONLY write operation allowed."""
        record = _to_record(event)
        self._session.add(record)
        await self._session.flush()
        return record

    async def record_many(self, events: Iterable[MarketEvent]) -> list[MarketEventRecord]:
        """Append a batch of events in stream order."""
        records = [_to_record(e) for e in events]
        self._session.add_all(records)
        await self._session.flush()
        return records

    async def get_by_title(self, title_id: str) -> list[MarketEventRecord]:
        """Fetch all events for a title in stream order."""
        result = await self._session.execute(
            select(MarketEventRecord)
            .where(MarketEventRecord.title_id == title_id)
            .order_by(MarketEventRecord.sequence.asc())
        )
        return list(result.scalars().all())

    async def get_by_type(self, event_type: EventType) -> list[MarketEventRecord]:
        result = await self._session.execute(
            select(MarketEventRecord)
            .where(MarketEventRecord.event_type == event_type.value)
            .order_by(MarketEventRecord.sequence.asc())
        )
        return list(result.scalars().all())

    async def get_all(self, limit: int | None = None) -> list[MarketEventRecord]:
        stmt = select(MarketEventRecord).order_by(MarketEventRecord.sequence.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
