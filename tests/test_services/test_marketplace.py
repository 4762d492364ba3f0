"""Tests for the Marketplace orchestrator: purchases, confirmations, bid acceptance.

These tests verify that:
    1. Direct purchases settle with the right fee split.
    2. Confirmation-gated purchases can be confirmed, rejected or expired.
    3. Accepted native bids wait for payment; fungible bids settle at once.
    4. Halts, compliance and admin checks run in the documented order.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from title_exchange.domain.enums import (
    NATIVE_ASSET,
    EventType,
    ListingStatus,
    Operation,
    PendingKind,
)
from title_exchange.domain.exceptions import (
    AssetMismatchError,
    BidIndexOutOfBoundsError,
    BidMismatchError,
    DeadlineNotReachedError,
    DeadlinePassedError,
    IncorrectPaymentError,
    InsufficientOfferError,
    ListingNotActiveError,
    NoActiveBidError,
    NoPendingPurchaseError,
    NotAdminError,
    NotCounterpartyError,
    NotTitleHolderError,
    OperationHaltedError,
    ParticipantNotPermittedError,
    SelfDealingError,
)
from title_exchange.domain.models import PendingPurchase, SaleReceipt

if TYPE_CHECKING:
    from conftest import FakeClock

    from title_exchange.services import (
        InMemoryPaymentRail,
        InMemoryTitleRegistry,
        Marketplace,
        StaticAccessPolicy,
    )

START = 1_000_000


class TestDirectPurchase:
    def test_purchase_settles(
        self,
        listed_market: Marketplace,
        registry: InMemoryTitleRegistry,
        rail: InMemoryPaymentRail,
    ) -> None:
        receipt = listed_market.purchase("bob", "T-1", 100, attached=100)

        assert isinstance(receipt, SaleReceipt)
        assert (receipt.fee, receipt.proceeds) == (2, 98)
        assert registry.owner_of("T-1") == "bob"
        assert listed_market.get_listing("T-1").status == ListingStatus.SOLD
        assert rail.balance_of(NATIVE_ASSET, "alice") == START + 98
        assert rail.balance_of(NATIVE_ASSET, "bob") == START - 100
        assert rail.balance_of(NATIVE_ASSET, "fee-recipient") == 2
        assert listed_market.verify_conservation() == []

    def test_offer_below_ask(self, listed_market: Marketplace) -> None:
        with pytest.raises(InsufficientOfferError):
            listed_market.purchase("bob", "T-1", 99, attached=99)

    def test_offer_must_beat_live_bids(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("carol", "T-1", 200, attached=200)
        with pytest.raises(InsufficientOfferError):
            listed_market.purchase("bob", "T-1", 200, attached=200)

    def test_attached_must_match_offer(self, listed_market: Marketplace) -> None:
        with pytest.raises(IncorrectPaymentError):
            listed_market.purchase("bob", "T-1", 100, attached=150)

    def test_asset_must_match(self, listed_market: Marketplace) -> None:
        with pytest.raises(AssetMismatchError):
            listed_market.purchase("bob", "T-1", 100, asset_id="USDX")

    def test_holder_cannot_buy_own_title(self, listed_market: Marketplace) -> None:
        with pytest.raises(SelfDealingError):
            listed_market.purchase("alice", "T-1", 100, attached=100)

    def test_fungible_purchase(self, market: Marketplace, rail: InMemoryPaymentRail) -> None:
        market.list_title("alice", "T-1", 1_000, asset_id="USDX")
        receipt = market.purchase("bob", "T-1", 1_000)
        assert receipt.asset_id == "USDX"
        assert rail.balance_of("USDX", "alice") == START + 975
        assert market.verify_conservation() == []

    def test_sale_event_order(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("carol", "T-1", 100, attached=100)
        listed_market.purchase("bob", "T-1", 200, attached=200)
        types = [e.event_type for e in listed_market.events_for("T-1")]
        completed = types.index(EventType.PURCHASE_COMPLETED)
        transferred = types.index(EventType.TITLE_TRANSFERRED)
        first_payout = types.index(EventType.PAYOUT_SENT, transferred)
        assert completed < transferred < first_payout
        assert EventType.COMPETITIVE_PURCHASE in types


class TestConfirmation:
    @pytest.fixture
    def gated(self, market: Marketplace) -> Marketplace:
        market.list_title("alice", "T-1", 100, confirmation_window=timedelta(hours=1))
        return market

    def test_purchase_waits_for_holder(self, gated: Marketplace) -> None:
        pending = gated.purchase("bob", "T-1", 100, attached=100)
        assert isinstance(pending, PendingPurchase)
        assert pending.kind == PendingKind.CONFIRMATION
        assert gated.get_listing("T-1").status == ListingStatus.PENDING_CONFIRMATION
        assert gated.get_pending_purchase("T-1") is pending
        assert gated.verify_conservation() == []

    def test_confirm(self, gated: Marketplace, registry: InMemoryTitleRegistry) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        receipt = gated.confirm_purchase("alice", "T-1")
        assert receipt.buyer == "bob"
        assert registry.owner_of("T-1") == "bob"
        assert gated.get_pending_purchase("T-1") is None

    def test_only_holder_confirms(self, gated: Marketplace) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        with pytest.raises(NotTitleHolderError):
            gated.confirm_purchase("bob", "T-1")

    def test_confirm_after_deadline(self, gated: Marketplace, clock: FakeClock) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        clock.advance(3600)
        with pytest.raises(DeadlinePassedError):
            gated.confirm_purchase("alice", "T-1")

    def test_pending_expiry_follows_clock(self, gated: Marketplace, clock: FakeClock) -> None:
        pending = gated.purchase("bob", "T-1", 100, attached=100)
        assert isinstance(pending, PendingPurchase)
        assert not gated.pending_is_expired(pending)
        clock.advance(3599)
        assert not gated.pending_is_expired(pending)
        clock.advance(1)
        assert gated.pending_is_expired(pending)

    def test_reject_refunds_buyer(self, gated: Marketplace, rail: InMemoryPaymentRail) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        gated.reject_purchase("alice", "T-1")
        assert rail.balance_of(NATIVE_ASSET, "bob") == START
        assert gated.get_listing("T-1").status == ListingStatus.LISTED
        assert gated.verify_conservation() == []

    def test_expire_before_deadline(self, gated: Marketplace, clock: FakeClock) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        clock.advance(3599)
        with pytest.raises(DeadlineNotReachedError):
            gated.expire("erin", "T-1")

    def test_no_bids_while_pending(self, gated: Marketplace) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        with pytest.raises(ListingNotActiveError):
            gated.place_bid("carol", "T-1", 200, attached=200)

    def test_buyer_blocked_before_confirmation(
        self, gated: Marketplace, policy: StaticAccessPolicy
    ) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        policy.block("bob")
        with pytest.raises(ParticipantNotPermittedError):
            gated.confirm_purchase("alice", "T-1")

    def test_admin_force_expire_ignores_halt(
        self, gated: Marketplace, policy: StaticAccessPolicy, clock: FakeClock
    ) -> None:
        gated.purchase("bob", "T-1", 100, attached=100)
        clock.advance(7200)
        policy.halt(Operation.EXPIRE)
        with pytest.raises(OperationHaltedError):
            gated.expire("erin", "T-1")
        gated.force_expire_pending_confirmation("admin", "T-1")
        assert gated.get_listing("T-1").status == ListingStatus.LISTED


class TestAcceptBid:
    def test_native_bid_waits_for_payment(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        pending = listed_market.accept_bid("alice", "T-1", 0, "bob", 150)

        assert isinstance(pending, PendingPurchase)
        assert pending.kind == PendingKind.PAYMENT
        assert pending.held == 150
        assert listed_market.get_listing("T-1").status == ListingStatus.PENDING_PAYMENT
        assert listed_market.verify_conservation() == []

    def test_complete_payment(
        self,
        listed_market: Marketplace,
        registry: InMemoryTitleRegistry,
        rail: InMemoryPaymentRail,
        clock: FakeClock,
    ) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.place_bid("carol", "T-1", 200, attached=200)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)
        clock.advance(3600)

        receipt = listed_market.complete_payment("bob", "T-1")
        assert receipt.price == 150
        assert registry.owner_of("T-1") == "bob"
        assert rail.balance_of(NATIVE_ASSET, "carol") == START
        assert listed_market.verify_conservation() == []

    def test_payment_with_attached_value_rejected(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)
        with pytest.raises(IncorrectPaymentError):
            listed_market.complete_payment("bob", "T-1", attached=150)

    def test_only_counterparty_completes(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)
        with pytest.raises(NotCounterpartyError):
            listed_market.complete_payment("carol", "T-1")

    def test_payment_deadline(self, listed_market: Marketplace, clock: FakeClock) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)
        clock.advance(86_400)
        with pytest.raises(DeadlinePassedError):
            listed_market.complete_payment("bob", "T-1")

    def test_force_expire_payment(
        self, listed_market: Marketplace, rail: InMemoryPaymentRail, clock: FakeClock
    ) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)

        with pytest.raises(DeadlineNotReachedError):
            listed_market.force_expire_pending_payment("admin", "T-1")
        clock.advance(86_400)
        with pytest.raises(NotAdminError):
            listed_market.force_expire_pending_payment("alice", "T-1")

        listed_market.force_expire_pending_payment("admin", "T-1")
        assert rail.balance_of(NATIVE_ASSET, "bob") == START
        assert listed_market.get_listing("T-1").status == ListingStatus.LISTED
        assert listed_market.verify_conservation() == []

    def test_fungible_bid_settles_immediately(
        self, market: Marketplace, registry: InMemoryTitleRegistry, rail: InMemoryPaymentRail
    ) -> None:
        market.list_title("alice", "T-1", 1_000, asset_id="USDX")
        market.place_bid("bob", "T-1", 1_000)
        market.place_bid("carol", "T-1", 2_000)

        receipt = market.accept_bid("alice", "T-1", 0, "bob", 1_000)
        assert isinstance(receipt, SaleReceipt)
        assert registry.owner_of("T-1") == "bob"
        assert rail.balance_of("USDX", "carol") == START
        assert market.get_listing("T-1").status == ListingStatus.SOLD
        assert market.verify_conservation() == []

    def test_expected_values_must_match(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        with pytest.raises(BidMismatchError):
            listed_market.accept_bid("alice", "T-1", 0, "bob", 140)
        with pytest.raises(BidMismatchError):
            listed_market.accept_bid("alice", "T-1", 0, "carol", 150)

    def test_index_out_of_bounds(self, listed_market: Marketplace) -> None:
        with pytest.raises(BidIndexOutOfBoundsError):
            listed_market.accept_bid("alice", "T-1", 0, "bob", 150)

    def test_inactive_bid(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.cancel_bid("bob", "T-1")
        with pytest.raises(NoActiveBidError):
            listed_market.accept_bid("alice", "T-1", 0, "bob", 150)

    def test_only_holder_accepts(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        with pytest.raises(NotTitleHolderError):
            listed_market.accept_bid("carol", "T-1", 0, "bob", 150)

    def test_no_double_completion(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 150, attached=150)
        listed_market.accept_bid("alice", "T-1", 0, "bob", 150)
        listed_market.complete_payment("bob", "T-1")
        with pytest.raises(NoPendingPurchaseError):
            listed_market.complete_payment("bob", "T-1")


class TestAccessChecks:
    def test_halted_operation(self, listed_market: Marketplace, policy: StaticAccessPolicy) -> None:
        policy.halt(Operation.PLACE_BID)
        with pytest.raises(OperationHaltedError):
            listed_market.place_bid("bob", "T-1", 100, attached=100)

    def test_halt_is_checked_before_permission(
        self, listed_market: Marketplace, policy: StaticAccessPolicy
    ) -> None:
        policy.block("bob")
        policy.halt(Operation.PURCHASE)
        with pytest.raises(OperationHaltedError):
            listed_market.purchase("bob", "T-1", 100, attached=100)

    def test_blocked_participant(
        self, listed_market: Marketplace, policy: StaticAccessPolicy
    ) -> None:
        policy.block("bob")
        with pytest.raises(ParticipantNotPermittedError):
            listed_market.place_bid("bob", "T-1", 100, attached=100)

    def test_blocked_participant_can_still_withdraw(
        self,
        listed_market: Marketplace,
        policy: StaticAccessPolicy,
        rail: InMemoryPaymentRail,
    ) -> None:
        listed_market.place_bid("bob", "T-1", 100, attached=100)
        rail.register_receive_hook("bob", _refuse)
        listed_market.cancel_bid("bob", "T-1")
        rail.clear_receive_hook("bob")
        policy.block("bob")

        assert listed_market.withdraw("bob") == 100

    def test_withdraw_halt(self, market: Marketplace, policy: StaticAccessPolicy) -> None:
        policy.halt(Operation.WITHDRAW)
        with pytest.raises(OperationHaltedError):
            market.withdraw("bob")

    def test_admin_ops_require_admin(self, market: Marketplace) -> None:
        with pytest.raises(NotAdminError):
            market.set_asset_deflationary("alice", "USDX", True)
        with pytest.raises(NotAdminError):
            market.emergency_withdraw("alice", NATIVE_ASSET, 1, "alice")

    def test_set_deflationary_emits(self, market: Marketplace) -> None:
        market.set_asset_deflationary("admin", "USDX", True)
        assert market.assets.is_deflationary("USDX")
        assert market.events_for()[-1].event_type == EventType.DEFLATIONARY_ASSET_SET


def _refuse(asset_id: str, sender: str, received: int) -> None:
    raise RuntimeError("refused")
