"""Shared test fixtures for the Title Exchange test suite.

Provides:
    - A hand-driven clock
    - In-memory collaborators (payment rail, title registry, access policy)
    - A wired Marketplace with funded participants
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from title_exchange.domain.enums import NATIVE_ASSET
from title_exchange.services import (
    InMemoryPaymentRail,
    InMemoryTitleRegistry,
    Marketplace,
    StaticAccessPolicy,
)

ADMIN = "admin"
FEE_RECIPIENT = "fee-recipient"
FUNGIBLE_ASSET = "USDX"
STARTING_BALANCE = 1_000_000


class FakeClock:
    """Clock that only moves when a test says so."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Collaborator Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rail() -> InMemoryPaymentRail:
    """Payment rail with every usual participant funded in both assets."""
    rail = InMemoryPaymentRail()
    for account in ("alice", "bob", "carol", "dave", "erin"):
        rail.mint(NATIVE_ASSET, account, STARTING_BALANCE)
        rail.mint(FUNGIBLE_ASSET, account, STARTING_BALANCE)
    return rail


@pytest.fixture
def registry() -> InMemoryTitleRegistry:
    """Registry where alice holds T-1 and T-2, and bob holds T-3."""
    registry = InMemoryTitleRegistry()
    registry.mint("T-1", "alice")
    registry.mint("T-2", "alice")
    registry.mint("T-3", "bob")
    return registry


@pytest.fixture
def policy() -> StaticAccessPolicy:
    return StaticAccessPolicy(
        fee_rate=Decimal("0.025"),
        fee_recipient=FEE_RECIPIENT,
        admins=[ADMIN],
        accepted_assets=[NATIVE_ASSET, FUNGIBLE_ASSET],
    )


@pytest.fixture
def market(
    policy: StaticAccessPolicy,
    registry: InMemoryTitleRegistry,
    rail: InMemoryPaymentRail,
    clock: FakeClock,
) -> Marketplace:
    return Marketplace(policy=policy, registry=registry, rail=rail, clock=clock)


@pytest.fixture
def listed_market(market: Marketplace) -> Marketplace:
    """Marketplace with T-1 listed by alice at 100 in the native asset."""
    market.list_title("alice", "T-1", 100)
    return market
