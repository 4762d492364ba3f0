"""Marketplace Service — the transaction orchestrator.

This is the application layer that coordinates between:
    - Listing service (lifecycle and live-holder authorisation)
    - Bid book (offers and refunds)
    - Custody ledger (value in, value out, escrow fallback)
    - Access policy (halts, compliance, fees)
    - Title registry (ownership transfer)

Both the REST routes and the simulation script call into this service, so
every business rule lives in one place.

Every entry point checks, in order: the operation's halt switch, the
participants' permission, then the component rules. A sale moves the title
first, so a refused transfer leaves the listing untouched; internal state is
written next, and value is pushed last, one payout at a time. A push that
fails is escrowed for pull withdrawal.

Deadlines are enforced lazily: completion refuses to act once a deadline has
passed, and the expire entry points settle the lapse. Nothing runs in the
background.
"""

from __future__ import annotations

import functools
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from title_exchange.assets import AssetRegistry
from title_exchange.domain.enums import (
    NATIVE_ASSET,
    EventType,
    Operation,
    PendingKind,
)
from title_exchange.domain.exceptions import (
    AssetMismatchError,
    AssetNotAcceptedError,
    BidMismatchError,
    DeadlineNotReachedError,
    DeadlinePassedError,
    IncorrectPaymentError,
    InsufficientOfferError,
    InvalidAmountError,
    NoActiveBidError,
    NotAdminError,
    NotCounterpartyError,
    OperationHaltedError,
    ParticipantNotPermittedError,
    ReentrantCallError,
    SelfDealingError,
    StaleListingError,
)
from title_exchange.domain.models import (
    Payout,
    PendingPurchase,
    SaleReceipt,
    is_expired,
)
from title_exchange.domain.pricing import split_proceeds, validate_amount
from title_exchange.logging_config import bound_operation, get_logger
from title_exchange.services.bid_book import BidBook
from title_exchange.services.custody_ledger import CustodyLedger
from title_exchange.services.event_log import EventLog, utc_now
from title_exchange.services.listing_service import ListingService

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from title_exchange.config import Settings
    from title_exchange.domain.collaborators import AccessPolicy, PaymentRail, TitleRegistry
    from title_exchange.domain.models import AssetTotals, Bid, Listing, MarketEvent

logger = get_logger(__name__)

F = TypeVar("F", bound="Callable[..., Any]")


def _single_flight(operation: str) -> Callable[[F], F]:
    """Reject calls made while another marketplace operation is still running.

    External code (a recipient's receive hook, a registry) can call back into
    the marketplace mid-operation; such nested calls fail with ReentrantCallError.
    """

    def decorator(method: F) -> F:
        @functools.wraps(method)
        def wrapper(self: Marketplace, caller: str, *args: Any, **kwargs: Any) -> Any:
            if self._in_flight is not None:
                logger.warning(
                    "marketplace.reentrant_call",
                    operation=operation,
                    in_flight=self._in_flight,
                    caller=caller,
                )
                raise ReentrantCallError(operation)
            self._in_flight = operation
            try:
                with bound_operation(operation, caller):
                    return method(self, caller, *args, **kwargs)
            finally:
                self._in_flight = None

        return wrapper  # type: ignore[return-value]

    return decorator


class Marketplace:
    """Entry points for listing, bidding, purchasing and settling titles."""

    def __init__(
        self,
        *,
        policy: AccessPolicy,
        registry: TitleRegistry,
        rail: PaymentRail,
        custody_account: str = "custody",
        min_bid_increment: Decimal = Decimal("0.01"),
        payment_window: timedelta = timedelta(days=1),
        max_confirmation_window: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if not Decimal(0) < min_bid_increment < Decimal(1):
            raise InvalidAmountError("minimum bid increment", min_bid_increment)
        if payment_window <= timedelta(0):
            raise InvalidAmountError("payment window", payment_window)

        self._policy = policy
        self._registry = registry
        self._rail = rail
        self._payment_window = payment_window
        self._clock = clock
        self._in_flight: str | None = None

        self.events = EventLog(clock)
        self.assets = AssetRegistry(rail)
        self.ledger = CustodyLedger(self.assets, rail, custody_account, self.events)
        self.bids = BidBook(self.ledger, self.assets, self.events, min_bid_increment)
        self.listings = ListingService(registry, self.bids, self.events, max_confirmation_window)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        policy: AccessPolicy,
        registry: TitleRegistry,
        rail: PaymentRail,
        clock: Callable[[], datetime] = utc_now,
    ) -> Marketplace:
        """Build a marketplace with the marketplace_* parameters from settings."""
        return cls(
            policy=policy,
            registry=registry,
            rail=rail,
            custody_account=settings.marketplace_custody_account,
            min_bid_increment=settings.marketplace_min_bid_increment,
            payment_window=timedelta(seconds=settings.marketplace_payment_window_seconds),
            max_confirmation_window=timedelta(
                seconds=settings.marketplace_max_confirmation_window_seconds
            ),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Listing lifecycle
    # ------------------------------------------------------------------

    @_single_flight(Operation.LIST)
    def list_title(
        self,
        caller: str,
        title_id: str,
        ask_price: int,
        asset_id: str = NATIVE_ASSET,
        confirmation_window: timedelta | None = None,
    ) -> Listing:
        """List a title the caller holds, replacing any stale or closed record."""
        self._check(Operation.LIST, caller)
        self._require_accepted(asset_id)

        listing, refunds = self.listings.create(
            caller, title_id, ask_price, asset_id, self._clock(), confirmation_window
        )
        self.ledger.push_all(refunds, title_id=title_id)

        logger.info(
            "listing.created",
            title_id=title_id,
            holder=caller,
            ask_price=ask_price,
            asset=asset_id,
            refunds=len(refunds),
        )
        return listing

    @_single_flight(Operation.UPDATE)
    def update_listing(
        self,
        caller: str,
        title_id: str,
        ask_price: int,
        asset_id: str | None = None,
    ) -> Listing:
        self._check(Operation.UPDATE, caller)
        listing = self.listings.get(title_id)
        new_asset = asset_id or listing.payment_asset
        self._require_accepted(new_asset)
        return self.listings.update(caller, title_id, ask_price, new_asset, self._clock())

    @_single_flight(Operation.DELIST)
    def delist(self, caller: str, title_id: str) -> Listing:
        """Withdraw a LISTED title and refund its live bids."""
        self._check(Operation.DELIST, caller)
        refunds = self.listings.delist(caller, title_id, self._clock())
        self.ledger.push_all(refunds, title_id=title_id)
        logger.info("listing.delisted", title_id=title_id, refunds=len(refunds))
        return self.listings.get(title_id)

    # ------------------------------------------------------------------
    # Bidding
    # ------------------------------------------------------------------

    @_single_flight(Operation.PLACE_BID)
    def place_bid(
        self,
        caller: str,
        title_id: str,
        amount: int,
        asset_id: str | None = None,
        attached: int = 0,
    ) -> Bid:
        """Place or raise a bid.

        For the native asset the value being supplied (the full amount for a
        new bid, the increase for a raise) must be attached. Fungible assets
        are pulled through the rail and ``attached`` must be 0.
        """
        self._check(Operation.PLACE_BID, caller)
        listing = self.listings.get(title_id)
        self.listings.require_listed(listing)
        holder = self._require_current_listing(listing)
        if caller == holder:
            raise SelfDealingError(title_id)
        asset_id = asset_id or listing.payment_asset
        self._require_accepted(asset_id)

        return self.bids.place(listing, caller, amount, asset_id, attached, self._clock())

    @_single_flight(Operation.CANCEL_BID)
    def cancel_bid(self, caller: str, title_id: str) -> Bid:
        """Withdraw the caller's live bid; the held value is refunded."""
        self._check(Operation.CANCEL_BID, caller)
        self.listings.get(title_id)
        return self.bids.cancel(title_id, caller)

    @_single_flight(Operation.CLEANUP_BIDS)
    def cleanup_bids(self, caller: str, title_id: str) -> tuple[int, int]:
        """Compact the bid book. Returns (removed, remaining)."""
        self._check(Operation.CLEANUP_BIDS, caller)
        self.listings.get(title_id)
        return self.bids.cleanup(title_id, actor=caller)

    # ------------------------------------------------------------------
    # Direct purchase
    # ------------------------------------------------------------------

    @_single_flight(Operation.PURCHASE)
    def purchase(
        self,
        caller: str,
        title_id: str,
        offer: int,
        asset_id: str | None = None,
        attached: int = 0,
    ) -> SaleReceipt | PendingPurchase:
        """Buy a LISTED title outright.

        The offer must reach both the ask price and the minimum next bid.
        Listings with a confirmation window hold the payment and wait for the
        holder; others settle immediately.
        """
        self._check(Operation.PURCHASE, caller)
        listing = self.listings.get(title_id)
        self.listings.require_listed(listing)
        holder = self._require_current_listing(listing)
        if caller == holder:
            raise SelfDealingError(title_id)

        asset_id = asset_id or listing.payment_asset
        if asset_id != listing.payment_asset:
            raise AssetMismatchError(listing.payment_asset, asset_id)
        self._require_accepted(asset_id)

        validate_amount(offer, "offer")
        required = max(listing.ask_price, self.bids.min_next_bid(listing))
        if offer < required:
            raise InsufficientOfferError(offer, required)
        self._require_attached(asset_id, expected=offer, attached=attached)

        held = self.ledger.receive(caller, asset_id, offer, title_id=title_id)
        now = self._clock()

        if listing.requires_confirmation:
            old_status = self.listings.fire_transition(listing, "request_purchase")
            listing.updated_at = now
            pending = PendingPurchase(
                counterparty=caller,
                offer_amount=offer,
                held=held,
                asset_id=asset_id,
                kind=PendingKind.CONFIRMATION,
                created_at=now,
                deadline=now + listing.confirmation_window,
            )
            self.listings.set_pending(title_id, pending)
            self.events.emit(
                EventType.PURCHASE_REQUESTED,
                title_id=title_id,
                actor=caller,
                old_status=old_status,
                new_status=listing.status,
                asset_id=asset_id,
                amount=offer,
                deadline=pending.deadline.isoformat(),
            )
            return pending

        highest = self.bids.highest_active(title_id)
        return self._settle_sale(
            listing,
            transition="purchase",
            completion_event=EventType.PURCHASE_COMPLETED,
            actor=caller,
            buyer=caller,
            price=offer,
            held=held,
            received=held,
            outbid=highest,
        )

    # ------------------------------------------------------------------
    # Seller confirmation
    # ------------------------------------------------------------------

    @_single_flight(Operation.CONFIRM_PURCHASE)
    def confirm_purchase(self, caller: str, title_id: str) -> SaleReceipt:
        self._check(Operation.CONFIRM_PURCHASE, caller)
        listing = self.listings.get(title_id)
        self.listings.require_holder(listing, caller)
        pending = self.listings.require_pending(title_id, PendingKind.CONFIRMATION)
        if is_expired(pending, self._clock()):
            raise DeadlinePassedError(title_id)
        self._require_permitted(pending.counterparty)

        return self._settle_sale(
            listing,
            transition="confirm_purchase",
            completion_event=EventType.PURCHASE_CONFIRMED,
            actor=caller,
            buyer=pending.counterparty,
            price=pending.offer_amount,
            held=pending.held,
        )

    @_single_flight(Operation.REJECT_PURCHASE)
    def reject_purchase(self, caller: str, title_id: str) -> PendingPurchase:
        """Holder turns down a purchase request; the buyer is refunded."""
        self._check(Operation.REJECT_PURCHASE, caller)
        listing = self.listings.get(title_id)
        self.listings.require_holder(listing, caller)
        pending = self.listings.require_pending(title_id, PendingKind.CONFIRMATION)
        return self._unwind_pending(
            listing,
            pending,
            transition="reject_purchase",
            event_type=EventType.PURCHASE_REJECTED,
            actor=caller,
            reason="purchase_rejected",
        )

    @_single_flight(Operation.EXPIRE)
    def expire(self, caller: str, title_id: str) -> PendingPurchase:
        """Anyone may lapse a purchase request once its deadline has passed."""
        self._check(Operation.EXPIRE, caller)
        listing = self.listings.get(title_id)
        pending = self.listings.require_pending(title_id, PendingKind.CONFIRMATION)
        if not is_expired(pending, self._clock()):
            raise DeadlineNotReachedError(title_id)
        return self._unwind_pending(
            listing,
            pending,
            transition="expire_confirmation",
            event_type=EventType.PURCHASE_EXPIRED,
            actor=caller,
            reason="purchase_expired",
        )

    # ------------------------------------------------------------------
    # Bid acceptance and payment
    # ------------------------------------------------------------------

    @_single_flight(Operation.ACCEPT_BID)
    def accept_bid(
        self,
        caller: str,
        title_id: str,
        bid_index: int,
        expected_bidder: str,
        expected_amount: int,
    ) -> SaleReceipt | PendingPurchase:
        """Holder accepts the bid at ``bid_index``.

        ``expected_bidder`` and ``expected_amount`` guard against the book
        changing between the holder reading it and accepting.

        Native-asset bids move to PENDING_PAYMENT and wait for the buyer to
        complete; fungible-asset bids settle immediately.
        """
        self._check(Operation.ACCEPT_BID, caller)
        listing = self.listings.get(title_id)
        self.listings.require_holder(listing, caller)
        self.listings.require_listed(listing)

        bid = self.bids.bid_at(title_id, bid_index)
        if not bid.is_active:
            raise NoActiveBidError(title_id, bid.bidder)
        if bid.bidder != expected_bidder or bid.amount != expected_amount:
            raise BidMismatchError(bid_index)
        if bid.bidder == caller:
            raise SelfDealingError(title_id)
        self._require_permitted(bid.bidder)

        if not self.assets.resolve(bid.asset_id).is_native:
            return self._settle_sale(
                listing,
                transition="settle_bid",
                completion_event=EventType.BID_ACCEPTED,
                actor=caller,
                buyer=bid.bidder,
                price=bid.amount,
                held=bid.held,
                accepted=bid,
                bid_index=bid_index,
            )

        now = self._clock()
        old_status = self.listings.fire_transition(listing, "accept_bid")
        listing.updated_at = now
        self.bids.deactivate(title_id, bid.bidder)
        pending = PendingPurchase(
            counterparty=bid.bidder,
            offer_amount=bid.amount,
            held=bid.held,
            asset_id=bid.asset_id,
            kind=PendingKind.PAYMENT,
            created_at=now,
            deadline=now + self._payment_window,
        )
        self.listings.set_pending(title_id, pending)
        self.events.emit(
            EventType.BID_ACCEPTED,
            title_id=title_id,
            actor=caller,
            old_status=old_status,
            new_status=listing.status,
            asset_id=bid.asset_id,
            amount=bid.amount,
            bidder=bid.bidder,
            bid_index=bid_index,
            deadline=pending.deadline.isoformat(),
        )
        return pending

    @_single_flight(Operation.COMPLETE_PAYMENT)
    def complete_payment(self, caller: str, title_id: str, attached: int = 0) -> SaleReceipt:
        """Buyer of an accepted native bid completes the sale before the deadline.

        The attached value must equal what is still owed (offer minus held),
        which is 0 when the bid was fully funded.
        """
        self._check(Operation.COMPLETE_PAYMENT, caller)
        listing = self.listings.get(title_id)
        pending = self.listings.require_pending(title_id, PendingKind.PAYMENT)
        if caller != pending.counterparty:
            raise NotCounterpartyError(title_id, caller)
        if is_expired(pending, self._clock()):
            raise DeadlinePassedError(title_id)
        self._require_current_listing(listing)

        remaining = pending.offer_amount - pending.held
        self._require_attached(pending.asset_id, expected=remaining, attached=attached)
        received = 0
        if remaining > 0:
            received = self.ledger.receive(caller, pending.asset_id, remaining, title_id=title_id)

        return self._settle_sale(
            listing,
            transition="complete_payment",
            completion_event=EventType.PAYMENT_COMPLETED,
            actor=caller,
            buyer=caller,
            price=pending.offer_amount,
            held=pending.held + received,
            received=received,
        )

    # ------------------------------------------------------------------
    # Custody
    # ------------------------------------------------------------------

    @_single_flight(Operation.WITHDRAW)
    def withdraw(self, caller: str, asset_id: str = NATIVE_ASSET) -> int:
        """Pull the caller's escrowed balance. Only the halt switch applies."""
        if self._policy.is_operation_halted(Operation.WITHDRAW):
            raise OperationHaltedError(Operation.WITHDRAW)
        return self.ledger.withdraw(caller, asset_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @_single_flight("force_expire_pending_payment")
    def force_expire_pending_payment(self, caller: str, title_id: str) -> PendingPurchase:
        """Admin lapses an accepted bid whose payment deadline has passed."""
        self._require_admin(caller)
        listing = self.listings.get(title_id)
        pending = self.listings.require_pending(title_id, PendingKind.PAYMENT)
        if not is_expired(pending, self._clock()):
            raise DeadlineNotReachedError(title_id)
        return self._unwind_pending(
            listing,
            pending,
            transition="expire_payment",
            event_type=EventType.PAYMENT_EXPIRED,
            actor=caller,
            reason="payment_expired",
        )

    @_single_flight("force_expire_pending_confirmation")
    def force_expire_pending_confirmation(self, caller: str, title_id: str) -> PendingPurchase:
        """Admin lapses an expired purchase request, bypassing the halt switch."""
        self._require_admin(caller)
        listing = self.listings.get(title_id)
        pending = self.listings.require_pending(title_id, PendingKind.CONFIRMATION)
        if not is_expired(pending, self._clock()):
            raise DeadlineNotReachedError(title_id)
        return self._unwind_pending(
            listing,
            pending,
            transition="expire_confirmation",
            event_type=EventType.PURCHASE_EXPIRED,
            actor=caller,
            reason="purchase_expired",
        )

    @_single_flight("set_asset_deflationary")
    def set_asset_deflationary(self, caller: str, asset_id: str, flag: bool) -> None:
        self._require_admin(caller)
        self.assets.set_deflationary(asset_id, flag)
        self.events.emit(
            EventType.DEFLATIONARY_ASSET_SET,
            actor=caller,
            asset_id=asset_id,
            deflationary=flag,
        )

    @_single_flight("emergency_withdraw")
    def emergency_withdraw(self, caller: str, asset_id: str, amount: int, recipient: str) -> int:
        self._require_admin(caller)
        return self.ledger.emergency_withdraw(caller, asset_id, amount, recipient)

    @_single_flight("mark_rented")
    def mark_rented(self, caller: str, title_id: str) -> Listing:
        """Take a LISTED title off the market while it is rented out."""
        self._require_admin(caller)
        listing = self.listings.get(title_id)
        old_status = self.listings.fire_transition(listing, "rent_out")
        listing.updated_at = self._clock()
        self.events.emit(
            EventType.LISTING_RENTED,
            title_id=title_id,
            actor=caller,
            old_status=old_status,
            new_status=listing.status,
        )
        return listing

    @_single_flight("end_rental")
    def end_rental(self, caller: str, title_id: str) -> Listing:
        self._require_admin(caller)
        listing = self.listings.get(title_id)
        old_status = self.listings.fire_transition(listing, "end_rental")
        listing.updated_at = self._clock()
        self.events.emit(
            EventType.RENTAL_ENDED,
            title_id=title_id,
            actor=caller,
            old_status=old_status,
            new_status=listing.status,
        )
        return listing

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def get_listing(self, title_id: str) -> Listing:
        return self.listings.get(title_id)

    def get_pending_purchase(self, title_id: str) -> PendingPurchase | None:
        self.listings.get(title_id)
        return self.listings.pending(title_id)

    def pending_is_expired(self, pending: PendingPurchase) -> bool:
        """Whether ``pending`` has passed its deadline by the marketplace clock."""
        return is_expired(pending, self._clock())

    def active_listings(self) -> list[Listing]:
        return self.listings.active()

    def bids_for(self, title_id: str, include_inactive: bool = False) -> list[Bid]:
        self.listings.get(title_id)
        if include_inactive:
            return self.bids.all_bids(title_id)
        return self.bids.active_bids(title_id)

    def min_next_bid(self, title_id: str) -> int:
        return self.bids.min_next_bid(self.listings.get(title_id))

    def allowed_events(self, title_id: str) -> list[str]:
        return self.listings.allowed_events(title_id)

    def pending_balance(self, participant: str, asset_id: str = NATIVE_ASSET) -> int:
        return self.ledger.pending_balance(participant, asset_id)

    def custody_totals(self, asset_id: str) -> AssetTotals:
        return self.ledger.totals(asset_id)

    def events_for(self, title_id: str | None = None) -> list[MarketEvent]:
        return self.events.events(title_id)

    def verify_conservation(self) -> list[str]:
        """Check custody totals against the rail and against live obligations.

        Committed value must equal what live bids and pending purchases hold.
        Returns a list of violation messages; empty means the books balance.
        """
        violations = self.ledger.verify_conservation()
        for asset_id in self.ledger.assets_held():
            committed = self.ledger.totals(asset_id).committed
            obligations = self.bids.total_held(asset_id) + self.listings.total_pending_held(asset_id)
            if committed != obligations:
                violations.append(
                    f"{asset_id}: committed {committed} != live bids + pending {obligations}"
                )
        return violations

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _settle_sale(
        self,
        listing: Listing,
        *,
        transition: str,
        completion_event: EventType,
        actor: str,
        buyer: str,
        price: int,
        held: int,
        received: int = 0,
        accepted: Bid | None = None,
        outbid: Bid | None = None,
        **details: Any,
    ) -> SaleReceipt:
        """Close a sale: the title first, then internal state, then the money.

        ``held`` is the value custody holds for the sale. It is split into the
        fee and the seller's proceeds; every other live bid is refunded.

        ``received`` is the part of ``held`` pulled in by the current call. If
        the registry refuses the title transfer, nothing has changed yet apart
        from that pull, so it goes back to the buyer and the error propagates.
        ``accepted`` is the bid being settled, deactivated without a refund.
        """
        title_id = listing.title_id
        seller = listing.holder
        asset_id = listing.payment_asset
        self.listings.check_transition(listing, transition)

        # 1. Title
        try:
            self._registry.transfer(title_id, seller, buyer)
        except Exception as exc:
            logger.warning(
                "sale.title_transfer_failed",
                title_id=title_id,
                seller=seller,
                buyer=buyer,
                error=str(exc),
            )
            self.ledger.attempt_push(
                buyer, asset_id, received, title_id=title_id, reason="sale_failed"
            )
            raise

        # 2. Internal state
        old_status = self.listings.fire_transition(listing, transition)
        listing.updated_at = self._clock()
        self.listings.clear_pending(title_id)
        if accepted is not None:
            self.bids.deactivate(title_id, accepted.bidder)
        refunds = self.bids.cancel_all(title_id, reason="sold")
        fee, proceeds = split_proceeds(held, self._policy.fee_rate())

        if outbid is not None:
            self.events.emit(
                EventType.COMPETITIVE_PURCHASE,
                title_id=title_id,
                actor=buyer,
                asset_id=asset_id,
                amount=price,
                highest_bid=outbid.amount,
                highest_bidder=outbid.bidder,
            )
        self.events.emit(
            completion_event,
            title_id=title_id,
            actor=actor,
            old_status=old_status,
            new_status=listing.status,
            asset_id=asset_id,
            amount=price,
            buyer=buyer,
            seller=seller,
            fee=fee,
            proceeds=proceeds,
            **details,
        )

        self.events.emit(
            EventType.TITLE_TRANSFERRED,
            title_id=title_id,
            actor=actor,
            seller=seller,
            buyer=buyer,
        )

        # 3. Value, one push at a time
        payouts = [
            Payout(self._policy.fee_recipient(), asset_id, fee, reason="fee"),
            Payout(seller, asset_id, proceeds, reason="proceeds"),
            *refunds,
        ]
        self.ledger.push_all(payouts, title_id=title_id)

        logger.info(
            "sale.settled",
            title_id=title_id,
            seller=seller,
            buyer=buyer,
            price=price,
            fee=fee,
            refunds=len(refunds),
        )
        return SaleReceipt(
            title_id=title_id,
            seller=seller,
            buyer=buyer,
            price=price,
            asset_id=asset_id,
            fee=fee,
            proceeds=proceeds,
        )

    def _unwind_pending(
        self,
        listing: Listing,
        pending: PendingPurchase,
        *,
        transition: str,
        event_type: EventType,
        actor: str,
        reason: str,
    ) -> PendingPurchase:
        """Return a PENDING_* listing to LISTED and refund the pending buyer."""
        old_status = self.listings.fire_transition(listing, transition)
        listing.updated_at = self._clock()
        self.listings.clear_pending(listing.title_id)

        self.events.emit(
            event_type,
            title_id=listing.title_id,
            actor=actor,
            old_status=old_status,
            new_status=listing.status,
            asset_id=pending.asset_id,
            amount=pending.offer_amount,
            counterparty=pending.counterparty,
        )
        self.ledger.attempt_push(
            pending.counterparty,
            pending.asset_id,
            pending.held,
            title_id=listing.title_id,
            reason=reason,
        )
        return pending

    def _check(self, operation: Operation, *participants: str) -> None:
        if self._policy.is_operation_halted(operation):
            raise OperationHaltedError(operation)
        for participant in participants:
            self._require_permitted(participant)

    def _require_permitted(self, participant: str) -> None:
        if not self._policy.is_permitted(participant):
            raise ParticipantNotPermittedError(participant)

    def _require_admin(self, caller: str) -> None:
        if not self._policy.is_admin(caller):
            raise NotAdminError(caller)

    def _require_accepted(self, asset_id: str) -> None:
        if not self._policy.is_asset_accepted(asset_id):
            raise AssetNotAcceptedError(asset_id)

    def _require_current_listing(self, listing: Listing) -> str:
        """Return the live holder; raise if the listing belongs to a former one."""
        holder = self._registry.owner_of(listing.title_id)
        if holder != listing.holder:
            raise StaleListingError(listing.title_id, listing.holder)
        return holder

    def _require_attached(self, asset_id: str, *, expected: int, attached: int) -> None:
        """Native value owed must be attached exactly; fungible calls attach nothing."""
        owed = expected if self.assets.resolve(asset_id).is_native else 0
        if attached != owed:
            raise IncorrectPaymentError(owed, attached)
