"""Listing Service — per-title listing records and their lifecycle.

This layer coordinates between:
    - Domain state machine (transition guard)
    - Title registry (live ownership)
    - Bid book (refunds owed when a listing closes)
    - Event log (audit trail)

Authorisation always checks the title's live holder in the registry, never
the holder cached on the listing. A listing whose cached holder no longer
owns the title is stale: only a fresh ``create`` by the new holder revives it.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from statemachine.exceptions import TransitionNotAllowed

from title_exchange.domain.enums import ACTIVE_STATUSES, EventType, ListingStatus
from title_exchange.domain.exceptions import (
    AlreadyListedError,
    AssetChangeWithActiveBidsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    ListingNotActiveError,
    ListingNotFoundError,
    NoPendingPurchaseError,
    NotTitleHolderError,
    StaleListingError,
)
from title_exchange.domain.models import Listing, Payout
from title_exchange.domain.pricing import validate_amount
from title_exchange.domain.state_machine import ListingStateMachine, validate_transition
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from datetime import datetime

    from title_exchange.domain.collaborators import TitleRegistry
    from title_exchange.domain.enums import PendingKind
    from title_exchange.domain.models import PendingPurchase
    from title_exchange.services.bid_book import BidBook
    from title_exchange.services.event_log import EventLog

logger = get_logger(__name__)


class ListingService:
    """Manages the listing lifecycle for every title."""

    def __init__(
        self,
        registry: TitleRegistry,
        bids: BidBook,
        events: EventLog,
        max_confirmation_window: timedelta,
    ) -> None:
        self._registry = registry
        self._bids = bids
        self._events = events
        self._max_confirmation_window = max_confirmation_window
        self._listings: dict[str, Listing] = {}
        self._pending: dict[str, PendingPurchase] = {}

    # ------------------------------------------------------------------
    # Listing Creation
    # ------------------------------------------------------------------

    def create(
        self,
        caller: str,
        title_id: str,
        ask_price: int,
        asset_id: str,
        now: datetime,
        confirmation_window: timedelta | None = None,
    ) -> tuple[Listing, list[Payout]]:
        """List a title, or relist it over a sold, delisted or stale record.

        Returns the listing and the refunds owed to bidders and any pending
        buyer of the record it replaced.
        """
        validate_amount(ask_price, "ask price")
        window = self._validate_window(confirmation_window)

        owner = self._registry.owner_of(title_id)
        if caller != owner:
            raise NotTitleHolderError(title_id, caller)

        existing = self._listings.get(title_id)
        if existing is None:
            listing = Listing(
                title_id=title_id,
                holder=owner,
                ask_price=ask_price,
                payment_asset=asset_id,
                status=ListingStatus.LISTED,
                created_at=now,
                updated_at=now,
                confirmation_window=window,
            )
            self._listings[title_id] = listing
            self._events.emit(
                EventType.LISTING_CREATED,
                title_id=title_id,
                actor=caller,
                new_status=ListingStatus.LISTED,
                asset_id=asset_id,
                amount=ask_price,
                relisted=False,
            )
            return listing, []

        if existing.status in ACTIVE_STATUSES and existing.holder == owner:
            raise AlreadyListedError(title_id)

        old_status = self.fire_transition(existing, "relist")
        payouts = self._bids.cancel_all(title_id, reason="relisted")
        pending = self._pending.pop(title_id, None)
        if pending is not None:
            payouts.append(
                Payout(pending.counterparty, pending.asset_id, pending.held, reason="pending_refund")
            )

        previous_holder = existing.holder
        existing.holder = owner
        existing.ask_price = ask_price
        existing.payment_asset = asset_id
        existing.confirmation_window = window
        existing.created_at = now
        existing.updated_at = now

        self._events.emit(
            EventType.LISTING_CREATED,
            title_id=title_id,
            actor=caller,
            old_status=old_status,
            new_status=ListingStatus.LISTED,
            asset_id=asset_id,
            amount=ask_price,
            relisted=True,
            previous_holder=previous_holder,
        )
        return existing, payouts

    # ------------------------------------------------------------------
    # Holder updates
    # ------------------------------------------------------------------

    def update(
        self,
        caller: str,
        title_id: str,
        new_price: int,
        new_asset: str,
        now: datetime,
    ) -> Listing:
        """Change the ask price and payment asset of a LISTED title."""
        listing = self.get(title_id)
        self.require_holder(listing, caller)
        self.require_listed(listing)
        validate_amount(new_price, "ask price")
        if new_asset != listing.payment_asset and self._bids.active_bids(title_id):
            raise AssetChangeWithActiveBidsError(title_id)

        old_price, old_asset = listing.ask_price, listing.payment_asset
        listing.ask_price = new_price
        listing.payment_asset = new_asset
        listing.updated_at = now

        self._events.emit(
            EventType.LISTING_UPDATED,
            title_id=title_id,
            actor=caller,
            old_status=listing.status,
            new_status=listing.status,
            asset_id=new_asset,
            amount=new_price,
            old_price=old_price,
            old_asset=old_asset,
        )
        return listing

    def delist(self, caller: str, title_id: str, now: datetime) -> list[Payout]:
        """Withdraw a LISTED title. Returns the bid refunds owed."""
        listing = self.get(title_id)
        self.require_holder(listing, caller)
        self.require_listed(listing)

        old_status = self.fire_transition(listing, "delist")
        listing.updated_at = now
        payouts = self._bids.cancel_all(title_id, reason="delisted")

        self._events.emit(
            EventType.LISTING_DELISTED,
            title_id=title_id,
            actor=caller,
            old_status=old_status,
            new_status=listing.status,
            refunds=len(payouts),
        )
        return payouts

    # ------------------------------------------------------------------
    # Pending purchases
    # ------------------------------------------------------------------

    def pending(self, title_id: str) -> PendingPurchase | None:
        return self._pending.get(title_id)

    def require_pending(self, title_id: str, kind: PendingKind) -> PendingPurchase:
        pending = self._pending.get(title_id)
        if pending is None or pending.kind != kind:
            raise NoPendingPurchaseError(title_id, kind.value)
        return pending

    def set_pending(self, title_id: str, pending: PendingPurchase) -> None:
        self._pending[title_id] = pending

    def clear_pending(self, title_id: str) -> PendingPurchase | None:
        return self._pending.pop(title_id, None)

    def total_pending_held(self, asset_id: str) -> int:
        return sum(p.held for p in self._pending.values() if p.asset_id == asset_id)

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get(self, title_id: str) -> Listing:
        listing = self._listings.get(title_id)
        if listing is None:
            raise ListingNotFoundError(title_id)
        return listing

    def active(self) -> list[Listing]:
        return [lst for lst in self._listings.values() if lst.status == ListingStatus.LISTED]

    def allowed_events(self, title_id: str) -> list[str]:
        sm = ListingStateMachine(current_status=self.get(title_id).status.value)
        return sm.get_allowed_events()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def require_holder(self, listing: Listing, caller: str) -> str:
        """Check the caller is the live holder and the listing is theirs.

        Raises:
            NotTitleHolderError: If the caller does not hold the title now.
            StaleListingError: If the listing was made by a former holder.
        """
        owner = self._registry.owner_of(listing.title_id)
        if caller != owner:
            raise NotTitleHolderError(listing.title_id, caller)
        if listing.holder != owner:
            raise StaleListingError(listing.title_id, listing.holder)
        return owner

    def require_listed(self, listing: Listing) -> None:
        if listing.status != ListingStatus.LISTED:
            raise ListingNotActiveError(listing.title_id, listing.status.value)

    def check_transition(self, listing: Listing, event_name: str) -> ListingStatus:
        """Return the status ``event_name`` would move the listing to, without moving it.

        Raises InvalidStateTransitionError if the transition is illegal.
        """
        try:
            return ListingStatus(validate_transition(listing.status.value, event_name))
        except (TransitionNotAllowed, ValueError) as err:
            raise InvalidStateTransitionError(listing.status.value, event_name) from err

    def fire_transition(self, listing: Listing, event_name: str) -> ListingStatus:
        """Validate and apply a state machine transition.

        Returns the status the listing had before the transition.
        """
        old_status = listing.status
        listing.status = self.check_transition(listing, event_name)
        logger.debug(
            "listing.transition",
            title_id=listing.title_id,
            transition=event_name,
            old=old_status.value,
            new=listing.status.value,
        )
        return old_status

    def _validate_window(self, window: timedelta | None) -> timedelta | None:
        if window is None or window == timedelta(0):
            return None
        if window < timedelta(0) or window > self._max_confirmation_window:
            raise InvalidAmountError("confirmation window", window)
        return window
