"""Market event stream.

Append-only, in-memory log of every state transition and value movement.
Each emitted event is also logged through structlog under a dotted name
("market.bid_placed", "market.payout_sent", ...). Subscribers are called
synchronously in emit order; the API uses ``since()`` to persist whatever a
request produced.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from title_exchange.domain.models import MarketEvent
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    from title_exchange.domain.enums import EventType, ListingStatus

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


class EventLog:
    """Sequenced, append-only list of MarketEvents."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._events: list[MarketEvent] = []
        self._subscribers: list[Callable[[MarketEvent], None]] = []

    def emit(
        self,
        event_type: EventType,
        *,
        title_id: str | None = None,
        actor: str | None = None,
        old_status: ListingStatus | None = None,
        new_status: ListingStatus | None = None,
        asset_id: str | None = None,
        amount: int | None = None,
        **details: Any,
    ) -> MarketEvent:
        event = MarketEvent(
            sequence=len(self._events) + 1,
            event_type=event_type,
            occurred_at=self._clock(),
            title_id=title_id,
            actor=actor,
            old_status=old_status,
            new_status=new_status,
            asset_id=asset_id,
            amount=amount,
            details=details,
        )
        self._events.append(event)

        logger.info(
            f"market.{event_type.value.lower()}",
            sequence=event.sequence,
            title_id=title_id,
            actor=actor,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value if new_status else None,
            asset=asset_id,
            amount=amount,
            **details,
        )

        for subscriber in self._subscribers:
            subscriber(event)
        return event

    def subscribe(self, callback: Callable[[MarketEvent], None]) -> None:
        self._subscribers.append(callback)

    def events(self, title_id: str | None = None) -> list[MarketEvent]:
        """Return all events, or only those for one title."""
        if title_id is None:
            return list(self._events)
        return [e for e in self._events if e.title_id == title_id]

    @property
    def cursor(self) -> int:
        """Sequence number of the most recent event (0 when empty)."""
        return len(self._events)

    def since(self, cursor: int) -> list[MarketEvent]:
        """Return events emitted after ``cursor``."""
        return self._events[cursor:]

    def __len__(self) -> int:
        return len(self._events)
