"""Domain records for the Title Exchange.

Plain dataclasses shared by the bid book, the listing registry, the custody
ledger and the orchestrator. They carry no framework imports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from title_exchange.domain.enums import EventType, ListingStatus, PendingKind


@dataclass
class Listing:
    """Per-title listing record.

    Attributes:
        title_id: Identifier of the title token.
        holder: Participant that listed the title.
        ask_price: Minimum acceptable price in the asset's smallest unit.
        payment_asset: NATIVE or the id of a fungible asset.
        status: Current ListingStatus.
        confirmation_window: When set, direct purchases wait for holder confirmation.
    """

    title_id: str
    holder: str
    ask_price: int
    payment_asset: str
    status: ListingStatus
    created_at: datetime
    updated_at: datetime
    confirmation_window: timedelta | None = None

    @property
    def requires_confirmation(self) -> bool:
        return self.confirmation_window is not None and self.confirmation_window > timedelta(0)


@dataclass
class Bid:
    """A single offer in a listing's bid book.

    ``amount`` is the nominal price used for competition. ``held`` is what
    custody actually received, which is lower only for deflationary assets.
    """

    bidder: str
    amount: int
    held: int
    asset_id: str
    placed_at: datetime
    is_active: bool = True


@dataclass
class PendingPurchase:
    """A purchase waiting for holder confirmation or buyer payment."""

    counterparty: str
    offer_amount: int
    held: int
    asset_id: str
    kind: PendingKind
    created_at: datetime
    deadline: datetime


@dataclass(frozen=True)
class Payout:
    """Value the orchestrator owes a participant once its own state is final."""

    recipient: str
    asset_id: str
    amount: int
    reason: str = "refund"


@dataclass(frozen=True)
class TransferResult:
    """Outcome of a transfer on the payment rail.

    Attributes:
        requested: Amount the sender asked to move.
        moved: Amount that actually arrived at the recipient.
        tx_ref: Reference of the rail transaction.
    """

    requested: int
    moved: int
    tx_ref: str

    @property
    def lost_in_transit(self) -> int:
        return self.requested - self.moved


@dataclass
class AssetTotals:
    """Running custody totals for one asset.

    Conservation: received == committed + escrowed + disbursed, and custody
    holds committed + escrowed - emergency_withdrawn on the rail.
    """

    received: int = 0
    committed: int = 0
    escrowed: int = 0
    disbursed: int = 0
    emergency_withdrawn: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "received": self.received,
            "committed": self.committed,
            "escrowed": self.escrowed,
            "disbursed": self.disbursed,
            "emergency_withdrawn": self.emergency_withdrawn,
        }


@dataclass(frozen=True)
class SaleReceipt:
    """Summary of a completed sale returned by the orchestrator."""

    title_id: str
    seller: str
    buyer: str
    price: int
    asset_id: str
    fee: int
    proceeds: int


@dataclass(frozen=True)
class MarketEvent:
    """One entry in the append-only market event stream.

    Attributes:
        sequence: Monotonic position in the stream (starts at 1).
        event_type: The EventType of this notification.
        title_id: Title the event concerns, or None for custody-only events.
        actor: Participant that triggered the event.
        old_status / new_status: Listing statuses around a transition.
        asset_id / amount: Value involved, if any.
        details: Extra structured context.
    """

    sequence: int
    event_type: EventType
    occurred_at: datetime
    title_id: str | None = None
    actor: str | None = None
    old_status: ListingStatus | None = None
    new_status: ListingStatus | None = None
    asset_id: str | None = None
    amount: int | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and the API."""
        return {
            "sequence": self.sequence,
            "event_type": self.event_type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "title_id": self.title_id,
            "actor": self.actor,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "asset_id": self.asset_id,
            "amount": self.amount,
            "details": self.details,
        }


def is_expired(pending: PendingPurchase, now: datetime) -> bool:
    """Return True once ``now`` has reached the pending purchase's deadline."""
    return now >= pending.deadline
