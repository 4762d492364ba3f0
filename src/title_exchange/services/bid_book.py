"""Bid Book — the per-listing collection of offers.

Bidding is monotonic: a new bid must reach the minimum next bid (the ask
price on an empty book, otherwise the highest live bid plus the minimum
increment) and a bidder can only raise their own bid. Value for a bid is
taken into custody when the bid is placed; only the increase is supplied on
a raise.

Entries are kept in placement order and addressed by index, so a holder can
accept a specific bid. Cancelled or accepted bids stay in place, inactive,
until ``cleanup`` compacts the book.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from title_exchange.domain.enums import EventType
from title_exchange.domain.exceptions import (
    AssetMismatchError,
    BidBelowMinimumError,
    BidDecreaseNotAllowedError,
    BidIndexOutOfBoundsError,
    IncorrectPaymentError,
    NoActiveBidError,
)
from title_exchange.domain.models import Bid, Payout
from title_exchange.domain.pricing import min_next_bid, validate_amount
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

    from title_exchange.assets import AssetRegistry
    from title_exchange.domain.models import Listing
    from title_exchange.services.custody_ledger import CustodyLedger
    from title_exchange.services.event_log import EventLog

logger = get_logger(__name__)


@dataclass
class _TitleBids:
    bids: list[Bid] = field(default_factory=list)
    index_by_bidder: dict[str, int] = field(default_factory=dict)


class BidBook:
    """Offers for every listing, keyed by title id."""

    def __init__(
        self,
        ledger: CustodyLedger,
        assets: AssetRegistry,
        events: EventLog,
        min_increment: Decimal,
    ) -> None:
        self._ledger = ledger
        self._assets = assets
        self._events = events
        self._min_increment = min_increment
        self._books: dict[str, _TitleBids] = {}

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def place(
        self,
        listing: Listing,
        bidder: str,
        amount: int,
        asset_id: str,
        attached: int,
        now: datetime,
    ) -> Bid:
        """Place a new bid or raise the bidder's existing one.

        Raises:
            AssetMismatchError: If ``asset_id`` differs from the listing's or a live bid's asset.
            BidDecreaseNotAllowedError: If an existing bidder offers less than before.
            BidBelowMinimumError: If ``amount`` is below the minimum next bid.
            IncorrectPaymentError: If attached native value differs from what is owed.
        """
        title_id = listing.title_id
        validate_amount(amount, "bid amount")
        if asset_id != listing.payment_asset:
            raise AssetMismatchError(listing.payment_asset, asset_id)
        for live in self.active_bids(title_id):
            if live.asset_id != asset_id:
                raise AssetMismatchError(live.asset_id, asset_id)

        existing = self.bid_of(title_id, bidder)
        if existing is not None:
            if amount < existing.amount:
                raise BidDecreaseNotAllowedError(existing.amount, amount)
            supplied = amount - existing.amount
        else:
            supplied = amount

        minimum = self.min_next_bid(listing)
        if amount < minimum:
            raise BidBelowMinimumError(amount, minimum)

        expected_attached = supplied if self._assets.resolve(asset_id).is_native else 0
        if attached != expected_attached:
            raise IncorrectPaymentError(expected_attached, attached)

        held = self._ledger.receive(bidder, asset_id, supplied, title_id=title_id)

        book = self._books.setdefault(title_id, _TitleBids())
        if existing is not None:
            existing.amount = amount
            existing.held += held
            existing.placed_at = now
            bid = existing
        else:
            bid = Bid(bidder=bidder, amount=amount, held=held, asset_id=asset_id, placed_at=now)
            book.bids.append(bid)
            book.index_by_bidder[bidder] = len(book.bids) - 1

        self._events.emit(
            EventType.BID_PLACED,
            title_id=title_id,
            actor=bidder,
            asset_id=asset_id,
            amount=amount,
            held=bid.held,
            supplied=supplied,
            index=book.index_by_bidder[bidder],
            raised=existing is not None,
        )
        return bid

    def cancel(self, title_id: str, bidder: str) -> Bid:
        """Withdraw the bidder's live bid and refund what custody holds for it.

        Raises:
            NoActiveBidError: If the bidder has no live bid on this title.
        """
        bid = self.bid_of(title_id, bidder)
        if bid is None:
            raise NoActiveBidError(title_id, bidder)

        bid.is_active = False
        self._events.emit(
            EventType.BID_CANCELLED,
            title_id=title_id,
            actor=bidder,
            asset_id=bid.asset_id,
            amount=bid.amount,
            reason="withdrawn",
        )
        self._ledger.attempt_push(
            bidder, bid.asset_id, bid.held, title_id=title_id, reason="bid_cancelled"
        )
        return bid

    def deactivate(self, title_id: str, bidder: str) -> Bid:
        """Mark the bidder's live bid inactive without refunding it.

        Used on acceptance, where the held value moves on to the sale.
        """
        bid = self.bid_of(title_id, bidder)
        if bid is None:
            raise NoActiveBidError(title_id, bidder)
        bid.is_active = False
        return bid

    def cancel_all(self, title_id: str, reason: str = "listing_closed") -> list[Payout]:
        """Deactivate every live bid and return the refunds owed.

        The caller pushes the refunds once its own state is final.
        """
        payouts: list[Payout] = []
        for bid in self.active_bids(title_id):
            bid.is_active = False
            self._events.emit(
                EventType.BID_CANCELLED,
                title_id=title_id,
                actor=bid.bidder,
                asset_id=bid.asset_id,
                amount=bid.amount,
                reason=reason,
            )
            payouts.append(Payout(bid.bidder, bid.asset_id, bid.held, reason="bid_refund"))
        return payouts

    def cleanup(self, title_id: str, actor: str | None = None) -> tuple[int, int]:
        """Drop inactive entries and rebuild the bidder index.

        Returns (removed, remaining). Nothing is emitted when there is
        nothing to remove.
        """
        book = self._books.get(title_id)
        if book is None:
            return 0, 0

        live = [b for b in book.bids if b.is_active]
        removed = len(book.bids) - len(live)
        if removed == 0:
            return 0, len(live)

        book.bids = live
        book.index_by_bidder = {b.bidder: i for i, b in enumerate(live)}

        self._events.emit(
            EventType.BIDS_CLEANED_UP,
            title_id=title_id,
            actor=actor,
            removed=removed,
            remaining=len(live),
        )
        return removed, len(live)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def all_bids(self, title_id: str) -> list[Bid]:
        book = self._books.get(title_id)
        return list(book.bids) if book else []

    def active_bids(self, title_id: str) -> list[Bid]:
        return [b for b in self.all_bids(title_id) if b.is_active]

    def bid_of(self, title_id: str, bidder: str) -> Bid | None:
        """Return the bidder's live bid, or None."""
        book = self._books.get(title_id)
        if book is None or bidder not in book.index_by_bidder:
            return None
        bid = book.bids[book.index_by_bidder[bidder]]
        return bid if bid.is_active else None

    def bid_at(self, title_id: str, index: int) -> Bid:
        bids = self.all_bids(title_id)
        if index < 0 or index >= len(bids):
            raise BidIndexOutOfBoundsError(index, len(bids))
        return bids[index]

    def highest_active(self, title_id: str) -> Bid | None:
        # Earliest placed wins ties
        best: Bid | None = None
        for bid in self.active_bids(title_id):
            if best is None or bid.amount > best.amount:
                best = bid
        return best

    def min_next_bid(self, listing: Listing) -> int:
        highest = self.highest_active(listing.title_id)
        return min_next_bid(
            listing.ask_price,
            highest.amount if highest else None,
            self._min_increment,
        )

    def total_held(self, asset_id: str) -> int:
        """Sum of value held for live bids in ``asset_id`` across all titles."""
        return sum(
            b.held
            for book in self._books.values()
            for b in book.bids
            if b.is_active and b.asset_id == asset_id
        )
