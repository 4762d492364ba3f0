"""Tests for listing creation, updates, delisting and rentals."""

from __future__ import annotations

from datetime import timedelta

import pytest

from title_exchange.domain.enums import NATIVE_ASSET, EventType, ListingStatus
from title_exchange.domain.exceptions import (
    AlreadyListedError,
    AssetChangeWithActiveBidsError,
    AssetNotAcceptedError,
    InvalidAmountError,
    InvalidStateTransitionError,
    ListingNotActiveError,
    ListingNotFoundError,
    NotAdminError,
    NotTitleHolderError,
    TitleNotFoundError,
)
from title_exchange.services import Marketplace


class TestCreate:
    def test_list_title(self, market: Marketplace) -> None:
        listing = market.list_title("alice", "T-1", 100)
        assert listing.status == ListingStatus.LISTED
        assert listing.holder == "alice"
        assert listing.payment_asset == NATIVE_ASSET
        assert not listing.requires_confirmation
        assert market.events_for("T-1")[0].event_type == EventType.LISTING_CREATED

    def test_only_holder_can_list(self, market: Marketplace) -> None:
        with pytest.raises(NotTitleHolderError):
            market.list_title("bob", "T-1", 100)

    def test_unknown_title(self, market: Marketplace) -> None:
        with pytest.raises(TitleNotFoundError):
            market.list_title("alice", "T-404", 100)

    def test_cannot_list_twice(self, listed_market: Marketplace) -> None:
        with pytest.raises(AlreadyListedError):
            listed_market.list_title("alice", "T-1", 200)

    def test_zero_ask_rejected(self, market: Marketplace) -> None:
        with pytest.raises(InvalidAmountError):
            market.list_title("alice", "T-1", 0)

    def test_asset_must_be_accepted(self, market: Marketplace) -> None:
        with pytest.raises(AssetNotAcceptedError):
            market.list_title("alice", "T-1", 100, asset_id="JUNK")

    def test_confirmation_window(self, market: Marketplace) -> None:
        listing = market.list_title(
            "alice", "T-1", 100, confirmation_window=timedelta(hours=1)
        )
        assert listing.requires_confirmation

    def test_zero_window_means_none(self, market: Marketplace) -> None:
        listing = market.list_title("alice", "T-1", 100, confirmation_window=timedelta(0))
        assert listing.confirmation_window is None

    def test_window_above_maximum_rejected(self, market: Marketplace) -> None:
        with pytest.raises(InvalidAmountError):
            market.list_title("alice", "T-1", 100, confirmation_window=timedelta(days=8))

    def test_relist_after_delist(self, listed_market: Marketplace) -> None:
        listed_market.delist("alice", "T-1")
        listing = listed_market.list_title("alice", "T-1", 300)
        assert listing.status == ListingStatus.LISTED
        assert listing.ask_price == 300
        assert listed_market.events_for("T-1")[-1].details["relisted"] is True


class TestUpdate:
    def test_update_price(self, listed_market: Marketplace) -> None:
        listing = listed_market.update_listing("alice", "T-1", 250)
        assert listing.ask_price == 250
        assert listed_market.min_next_bid("T-1") == 250

    def test_update_asset_without_bids(self, listed_market: Marketplace) -> None:
        listing = listed_market.update_listing("alice", "T-1", 100, asset_id="USDX")
        assert listing.payment_asset == "USDX"

    def test_asset_change_with_live_bids(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 100, attached=100)
        with pytest.raises(AssetChangeWithActiveBidsError):
            listed_market.update_listing("alice", "T-1", 100, asset_id="USDX")

    def test_only_holder_can_update(self, listed_market: Marketplace) -> None:
        with pytest.raises(NotTitleHolderError):
            listed_market.update_listing("bob", "T-1", 50)

    def test_update_unknown_listing(self, market: Marketplace) -> None:
        with pytest.raises(ListingNotFoundError):
            market.update_listing("alice", "T-2", 50)


class TestDelist:
    def test_delist_refunds_bids(self, listed_market: Marketplace) -> None:
        listed_market.place_bid("bob", "T-1", 100, attached=100)
        listed_market.place_bid("carol", "T-1", 120, attached=120)

        listing = listed_market.delist("alice", "T-1")
        assert listing.status == ListingStatus.DELISTED
        assert listed_market.bids_for("T-1") == []
        assert listed_market.custody_totals(NATIVE_ASSET).committed == 0
        assert listed_market.verify_conservation() == []

    def test_delisted_title_cannot_be_bought(self, listed_market: Marketplace) -> None:
        listed_market.delist("alice", "T-1")
        with pytest.raises(ListingNotActiveError):
            listed_market.purchase("bob", "T-1", 100, attached=100)

    def test_delist_twice(self, listed_market: Marketplace) -> None:
        listed_market.delist("alice", "T-1")
        with pytest.raises(ListingNotActiveError):
            listed_market.delist("alice", "T-1")


class TestRental:
    def test_rent_and_return(self, listed_market: Marketplace) -> None:
        listing = listed_market.mark_rented("admin", "T-1")
        assert listing.status == ListingStatus.RENTED
        with pytest.raises(ListingNotActiveError):
            listed_market.place_bid("bob", "T-1", 100, attached=100)
        with pytest.raises(AlreadyListedError):
            listed_market.list_title("alice", "T-1", 100)

        listing = listed_market.end_rental("admin", "T-1")
        assert listing.status == ListingStatus.LISTED

    def test_rental_is_admin_only(self, listed_market: Marketplace) -> None:
        with pytest.raises(NotAdminError):
            listed_market.mark_rented("alice", "T-1")

    def test_end_rental_requires_rented(self, listed_market: Marketplace) -> None:
        with pytest.raises(InvalidStateTransitionError):
            listed_market.end_rental("admin", "T-1")


class TestReads:
    def test_allowed_events(self, listed_market: Marketplace) -> None:
        assert "purchase" in listed_market.allowed_events("T-1")

    def test_active_listings(self, listed_market: Marketplace) -> None:
        listed_market.list_title("alice", "T-2", 100)
        listed_market.delist("alice", "T-2")
        assert [lst.title_id for lst in listed_market.active_listings()] == ["T-1"]

    def test_get_unknown(self, market: Marketplace) -> None:
        with pytest.raises(ListingNotFoundError):
            market.get_listing("T-1")


class TestTransitions:
    def test_check_does_not_move_listing(self, listed_market: Marketplace) -> None:
        listing = listed_market.get_listing("T-1")
        assert listed_market.listings.check_transition(listing, "purchase") == ListingStatus.SOLD
        assert listing.status == ListingStatus.LISTED

    def test_fire_moves_listing(self, listed_market: Marketplace) -> None:
        listing = listed_market.get_listing("T-1")
        old = listed_market.listings.fire_transition(listing, "rent_out")
        assert old == ListingStatus.LISTED
        assert listing.status == ListingStatus.RENTED

    def test_illegal_transition(self, listed_market: Marketplace) -> None:
        listing = listed_market.get_listing("T-1")
        with pytest.raises(InvalidStateTransitionError):
            listed_market.listings.check_transition(listing, "complete_payment")
        with pytest.raises(InvalidStateTransitionError):
            listed_market.listings.fire_transition(listing, "teleport")
        assert listing.status == ListingStatus.LISTED
