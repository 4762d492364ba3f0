"""Tests for the in-memory payment rail, title registry and access policy."""

from __future__ import annotations

from decimal import Decimal

import pytest

from title_exchange.domain.collaborators import AccessPolicy, PaymentRail, TitleRegistry
from title_exchange.domain.enums import NATIVE_ASSET, Operation
from title_exchange.domain.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    NotTitleHolderError,
    TitleNotFoundError,
    TransferFailedError,
)
from title_exchange.services import (
    InMemoryPaymentRail,
    InMemoryTitleRegistry,
    StaticAccessPolicy,
)


class TestPaymentRail:
    def test_transfer_moves_balance(self) -> None:
        rail = InMemoryPaymentRail()
        rail.mint(NATIVE_ASSET, "alice", 100)
        tx_ref = rail.transfer(NATIVE_ASSET, "alice", "bob", 60)
        assert tx_ref.startswith("0x")
        assert len(tx_ref) == 34
        assert rail.balance_of(NATIVE_ASSET, "alice") == 40
        assert rail.balance_of(NATIVE_ASSET, "bob") == 60

    def test_insufficient_funds(self) -> None:
        rail = InMemoryPaymentRail()
        rail.mint(NATIVE_ASSET, "alice", 10)
        with pytest.raises(InsufficientFundsError):
            rail.transfer(NATIVE_ASSET, "alice", "bob", 11)

    def test_zero_transfer_rejected(self) -> None:
        with pytest.raises(InvalidAmountError):
            InMemoryPaymentRail().transfer(NATIVE_ASSET, "alice", "bob", 0)

    def test_transfer_fee_is_burned(self) -> None:
        rail = InMemoryPaymentRail()
        rail.mint("DFT", "alice", 1_000)
        rail.set_transfer_fee("DFT", Decimal("0.05"))
        rail.transfer("DFT", "alice", "bob", 1_000)
        assert rail.balance_of("DFT", "alice") == 0
        assert rail.balance_of("DFT", "bob") == 950

    def test_refusing_hook_reverts(self) -> None:
        rail = InMemoryPaymentRail()
        rail.mint(NATIVE_ASSET, "alice", 100)

        def refuse(asset_id: str, sender: str, received: int) -> None:
            raise RuntimeError("no thanks")

        rail.register_receive_hook("bob", refuse)
        with pytest.raises(TransferFailedError, match="no thanks"):
            rail.transfer(NATIVE_ASSET, "alice", "bob", 50)
        assert rail.balance_of(NATIVE_ASSET, "alice") == 100
        assert rail.balance_of(NATIVE_ASSET, "bob") == 0

    def test_hook_sees_received_amount(self) -> None:
        rail = InMemoryPaymentRail()
        rail.mint(NATIVE_ASSET, "alice", 100)
        seen: list[tuple[str, str, int]] = []
        rail.register_receive_hook("bob", lambda *args: seen.append(args))
        rail.transfer(NATIVE_ASSET, "alice", "bob", 30)
        assert seen == [(NATIVE_ASSET, "alice", 30)]

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryPaymentRail(), PaymentRail)


class TestTitleRegistry:
    def test_owner_of_unknown_title(self) -> None:
        with pytest.raises(TitleNotFoundError):
            InMemoryTitleRegistry().owner_of("nope")

    def test_transfer_by_owner(self) -> None:
        registry = InMemoryTitleRegistry()
        registry.mint("T-1", "alice")
        registry.transfer("T-1", "alice", "bob")
        assert registry.owner_of("T-1") == "bob"

    def test_transfer_by_non_owner(self) -> None:
        registry = InMemoryTitleRegistry()
        registry.mint("T-1", "alice")
        with pytest.raises(NotTitleHolderError):
            registry.transfer("T-1", "mallory", "bob")

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryTitleRegistry(), TitleRegistry)


class TestAccessPolicy:
    def test_defaults(self) -> None:
        policy = StaticAccessPolicy()
        assert policy.is_permitted("anyone")
        assert policy.is_asset_accepted(NATIVE_ASSET)
        assert not policy.is_asset_accepted("USDX")
        assert policy.fee_rate() == Decimal("0.025")
        assert isinstance(policy, AccessPolicy)

    def test_block_and_halt(self) -> None:
        policy = StaticAccessPolicy()
        policy.block("mallory")
        policy.halt(Operation.PURCHASE)
        assert not policy.is_permitted("mallory")
        assert policy.is_operation_halted("purchase")
        policy.resume(Operation.PURCHASE)
        assert not policy.is_operation_halted("purchase")

    def test_invalid_fee_rate(self) -> None:
        with pytest.raises(InvalidAmountError):
            StaticAccessPolicy(fee_rate=Decimal("1.5"))

    def test_from_settings(self) -> None:
        from title_exchange.config import Settings

        settings = Settings(
            marketplace_admins="root, ops",
            marketplace_accepted_assets="NATIVE,USDX",
            marketplace_fee_rate=Decimal("0.01"),
        )
        policy = StaticAccessPolicy.from_settings(settings)
        assert policy.is_admin("ops")
        assert policy.is_asset_accepted("USDX")
        assert policy.fee_rate() == Decimal("0.01")
