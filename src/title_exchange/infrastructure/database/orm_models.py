"""SQLAlchemy 2.0 ORM models for the Title Exchange.

One table:
    market_events — Append-only copy of the marketplace event stream.

Design decisions:
    - UUIDs as primary keys; the stream's own sequence number is a separate column.
    - Amounts stored as decimal strings: they range up to 2**256 - 1, beyond
      what a portable numeric column holds exactly.
    - JSON details column, stored as JSONB on PostgreSQL.
    - Indexes on hot-path query columns (title_id, event_type, sequence).
    - market_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# market_events (Append-Only Event Stream)
# ---------------------------------------------------------------------------
class MarketEventRecord(Base):
    """Immutable record of one marketplace event.

    This table is APPEND-ONLY. Every row mirrors a single MarketEvent from
    the in-process stream and can be replayed to rebuild a listing's history.
    """

    __tablename__ = "market_events"

    # --- Primary Key ---
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Stream position ---
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position of the event in the in-process stream",
    )

    # --- Event Details ---
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., BID_PLACED, PAYOUT_SENT)",
    )
    title_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Title the event concerns (null for custody-only events)",
    )
    actor: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Participant that triggered the event",
    )
    old_status: Mapped[str | None] = mapped_column(
        String(24),
        nullable=True,
        comment="Listing status before this event",
    )
    new_status: Mapped[str | None] = mapped_column(
        String(24),
        nullable=True,
        comment="Listing status after this event",
    )
    asset_id: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    amount: Mapped[str | None] = mapped_column(
        String(80),
        nullable=True,
        comment="Amount in the asset's smallest unit, as a decimal string",
    )
    details: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
        default=None,
        comment="Extra context: tx refs, fee split, deadlines",
    )

    # --- Timestamps ---
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the event happened in the marketplace",
    )
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # --- Indexes ---
    __table_args__ = (
        Index("idx_market_event_title", "title_id"),
        Index("idx_market_event_type", "event_type"),
        Index("idx_market_event_sequence", "sequence"),
    )

    @property
    def amount_value(self) -> int | None:
        return int(self.amount) if self.amount is not None else None

    def __repr__(self) -> str:
        return (
            f"<MarketEventRecord seq={self.sequence} type={self.event_type} "
            f"title={self.title_id} {self.old_status}->{self.new_status}>"
        )
