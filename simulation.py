#!/usr/bin/env python3
"""Title Exchange — End-to-End Simulation.

Runs the marketplace against the in-memory title registry and payment rail
with a simulated clock:

    Scenario 1: Competitive Purchase
        - Holder lists a title at 100 (native)
        - Two bidders bid 110 and 120
        - A direct purchaser pays 125 -> SOLD, both bidders refunded in full

    Scenario 2: Confirmation Window Expiry
        - Holder lists with a 3600s confirmation window
        - Buyer pays 100 -> PENDING_CONFIRMATION
        - Holder does nothing for 3601s, anyone expires -> buyer refunded, LISTED

    Scenario 3: Accepted Bid and Payment
        - Holder accepts a native bid -> PENDING_PAYMENT
        - Buyer completes payment before the deadline -> SOLD

    Scenario 4: Hostile Recipient
        - A bidder whose account refuses incoming transfers cancels its bid
        - The refund is escrowed, and withdrawn once the account accepts funds

    Scenario 5: Ownership Handover
        - The title changes hands outside the marketplace
        - The old listing goes stale; the new holder relists and old bids are refunded

    Scenario 6: Deflationary Asset
        - A fee-on-transfer asset is flagged deflationary
        - A bid is credited with what custody actually received; acceptance settles it

Every scenario ends by checking the custody books.

Usage:
    # Option A: With Docker (PostgreSQL) — events are persisted:
    docker compose up -d
    uv run python simulation.py

    # Option B: Without Docker (SQLite in-memory):
    uv run python simulation.py --sqlite

    # Option C: No database at all:
    uv run python simulation.py --no-db

    # Run a specific scenario:
    uv run python simulation.py --sqlite --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from title_exchange.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from title_exchange.domain.enums import NATIVE_ASSET  # noqa: E402
from title_exchange.services import (  # noqa: E402
    InMemoryPaymentRail,
    InMemoryTitleRegistry,
    Marketplace,
    StaticAccessPolicy,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

ADMIN = "admin"
FEE_RECIPIENT = "fee-recipient"

# Module-level state
_use_db = True


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize the event database and create tables."""
    from title_exchange.infrastructure.database.engine import init_db

    if use_sqlite:
        await init_db("sqlite+aiosqlite:///:memory:", create_tables=True)
        logger.info("database.sqlite_initialized")
    else:
        await init_db()


async def persist(market: Marketplace, cursor: int = 0) -> int:
    """Write the events emitted since ``cursor`` and return how many were written."""
    if not _use_db:
        return 0
    from title_exchange.infrastructure.database.engine import _get_session_factory
    from title_exchange.infrastructure.database.repositories import EventRepository

    events = market.events.since(cursor)
    factory = _get_session_factory()
    async with factory() as session:
        await EventRepository(session).record_many(events)
        await session.commit()
    logger.info("simulation.events_persisted", count=len(events))
    return len(events)


async def shutdown_database() -> None:
    """Close database connections."""
    from title_exchange.infrastructure.database.engine import close_db

    await close_db()


# ---------------------------------------------------------------------------
# World
# ---------------------------------------------------------------------------
@dataclass
class SimulatedClock:
    """Clock the scenarios advance by hand."""

    now: datetime = field(default_factory=lambda: datetime(2025, 1, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)
        logger.info("⏱  CLOCK: advanced", seconds=seconds, now=self.now.isoformat())


@dataclass
class World:
    """A marketplace plus the collaborators a scenario pokes at directly."""

    market: Marketplace
    policy: StaticAccessPolicy
    registry: InMemoryTitleRegistry
    rail: InMemoryPaymentRail
    clock: SimulatedClock

    def fund(self, account: str, amount: int, asset_id: str = NATIVE_ASSET) -> None:
        self.rail.mint(asset_id, account, amount)

    def balance(self, account: str, asset_id: str = NATIVE_ASSET) -> int:
        return self.rail.balance_of(asset_id, account)


def build_world(accepted_assets: tuple[str, ...] = (NATIVE_ASSET,)) -> World:
    clock = SimulatedClock()
    policy = StaticAccessPolicy(
        fee_rate=Decimal("0.025"),
        fee_recipient=FEE_RECIPIENT,
        admins=[ADMIN],
        accepted_assets=accepted_assets,
    )
    registry = InMemoryTitleRegistry()
    rail = InMemoryPaymentRail()
    market = Marketplace(policy=policy, registry=registry, rail=rail, clock=clock)
    return World(market=market, policy=policy, registry=registry, rail=rail, clock=clock)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_balances(world: World, *accounts: str, asset_id: str = NATIVE_ASSET) -> None:
    for account in accounts:
        escrowed = world.market.pending_balance(account, asset_id)
        suffix = f" (+{escrowed} escrowed)" if escrowed else ""
        print(f"  💰 {account:<14} {world.balance(account, asset_id):>8}{suffix}")


def print_event_trail(world: World, title_id: str) -> None:
    """Print the event stream for one title."""
    print("\n  📜 Event Trail:")
    for evt in world.market.events_for(title_id):
        transition = ""
        if evt.new_status is not None:
            old = evt.old_status.value if evt.old_status else "—"
            transition = f" {old} → {evt.new_status.value}"
        amount = f" {evt.amount}" if evt.amount is not None else ""
        print(f"    {evt.sequence:>3}. [{evt.event_type.value}]{transition}{amount} (by {evt.actor})")
    print()


def check_books(world: World) -> None:
    violations = world.market.verify_conservation()
    if violations:
        for violation in violations:
            print(f"  ❌ {violation}")
        raise RuntimeError("custody books do not balance")
    print("  ✅ Custody books balance")


# ===========================================================================
# Scenario 1: Competitive Purchase
# ===========================================================================
async def scenario_1_competitive_purchase() -> None:
    """Direct purchase over two live bids refunds both bidders in full."""
    banner("SCENARIO 1: Competitive Purchase — Buy Over Live Bids")

    world = build_world()
    market = world.market
    world.registry.mint("T-1", "holder")
    for account in ("bidder-x", "bidder-y", "buyer-z"):
        world.fund(account, 1_000)

    section("Step 1: Holder lists T-1 at 100")
    market.list_title("holder", "T-1", 100)

    section("Step 2: Bidders X and Y bid 110 and 120")
    market.place_bid("bidder-x", "T-1", 110, attached=110)
    market.place_bid("bidder-y", "T-1", 120, attached=120)
    print(f"  Minimum next bid: {market.min_next_bid('T-1')}")

    section("Step 3: Z buys outright for 125")
    receipt = market.purchase("buyer-z", "T-1", 125, attached=125)
    print(f"  Sold to {receipt.buyer} for {receipt.price}: fee {receipt.fee}, proceeds {receipt.proceeds}")
    print(f"  Title owner is now: {world.registry.owner_of('T-1')}")
    print_balances(world, "holder", "bidder-x", "bidder-y", "buyer-z", FEE_RECIPIENT)

    check_books(world)
    print_event_trail(world, "T-1")
    await persist(market)


# ===========================================================================
# Scenario 2: Confirmation Window Expiry
# ===========================================================================
async def scenario_2_confirmation_expiry() -> None:
    """An unconfirmed purchase lapses and the buyer gets the payment back."""
    banner("SCENARIO 2: Confirmation Window Expiry")

    world = build_world()
    market = world.market
    world.registry.mint("T-2", "holder")
    world.fund("buyer", 500)

    section("Step 1: Holder lists T-2 at 100 with a 3600s confirmation window")
    market.list_title("holder", "T-2", 100, confirmation_window=timedelta(seconds=3600))

    section("Step 2: Buyer pays 100")
    pending = market.purchase("buyer", "T-2", 100, attached=100)
    print(f"  Pending {pending.kind.value} until {pending.deadline.isoformat()}")
    print(f"  Listing status: {market.get_listing('T-2').status.value}")

    section("Step 3: Holder stays silent for 3601s, a passer-by expires the request")
    world.clock.advance(3601)
    market.expire("passer-by", "T-2")
    print(f"  Listing status: {market.get_listing('T-2').status.value}")
    print_balances(world, "buyer", "holder")

    check_books(world)
    print_event_trail(world, "T-2")
    await persist(market)


# ===========================================================================
# Scenario 3: Accepted Bid and Payment
# ===========================================================================
async def scenario_3_accept_and_pay() -> None:
    """Holder accepts a native bid; the buyer completes within the window."""
    banner("SCENARIO 3: Accepted Bid and Payment")

    world = build_world()
    market = world.market
    world.registry.mint("T-3", "holder")
    world.fund("bidder-a", 1_000)
    world.fund("bidder-b", 1_000)

    section("Step 1: List at 200, two bids")
    market.list_title("holder", "T-3", 200)
    market.place_bid("bidder-a", "T-3", 200, attached=200)
    market.place_bid("bidder-b", "T-3", 250, attached=250)

    section("Step 2: Holder accepts bidder B's bid at index 1")
    pending = market.accept_bid("holder", "T-3", 1, "bidder-b", 250)
    print(f"  Pending {pending.kind.value}: owed {pending.offer_amount - pending.held}")

    section("Step 3: Bidder B completes payment an hour later")
    world.clock.advance(3600)
    receipt = market.complete_payment("bidder-b", "T-3")
    print(f"  Sold to {receipt.buyer} for {receipt.price}")
    print_balances(world, "holder", "bidder-a", "bidder-b", FEE_RECIPIENT)

    section("Step 4: Compact the bid book")
    removed, remaining = market.cleanup_bids("anyone", "T-3")
    print(f"  Removed {removed}, remaining {remaining}")

    check_books(world)
    print_event_trail(world, "T-3")
    await persist(market)


# ===========================================================================
# Scenario 4: Hostile Recipient
# ===========================================================================
async def scenario_4_hostile_recipient() -> None:
    """A refund that cannot be delivered is escrowed instead of blocking the cancel."""
    banner("SCENARIO 4: Hostile Recipient — Refund Falls Back to Escrow")

    world = build_world()
    market = world.market
    world.registry.mint("T-4", "holder")
    world.fund("hostile", 1_000)

    def refuse(asset_id: str, sender: str, received: int) -> None:
        raise RuntimeError("recipient refuses payment")

    section("Step 1: Hostile bidder bids 150, then starts refusing transfers")
    market.list_title("holder", "T-4", 150)
    market.place_bid("hostile", "T-4", 150, attached=150)
    world.rail.register_receive_hook("hostile", refuse)

    section("Step 2: Hostile bidder cancels; the refund cannot be pushed")
    market.cancel_bid("hostile", "T-4")
    print_balances(world, "hostile")

    section("Step 3: The account accepts funds again and withdraws")
    world.rail.clear_receive_hook("hostile")
    withdrawn = market.withdraw("hostile")
    print(f"  Withdrew {withdrawn}")
    print_balances(world, "hostile")

    check_books(world)
    print_event_trail(world, "T-4")
    await persist(market)


# ===========================================================================
# Scenario 5: Ownership Handover
# ===========================================================================
async def scenario_5_ownership_handover() -> None:
    """Out-of-band transfer leaves a stale listing the new holder can replace."""
    banner("SCENARIO 5: Ownership Handover")

    world = build_world()
    market = world.market
    world.registry.mint("T-5", "holder-a")
    world.fund("bidder", 1_000)

    section("Step 1: Holder A lists, a bid arrives")
    market.list_title("holder-a", "T-5", 300)
    market.place_bid("bidder", "T-5", 300, attached=300)

    section("Step 2: A hands the title to B outside the marketplace")
    world.registry.transfer("T-5", "holder-a", "holder-b")

    section("Step 3: B relists at 400; A's bids are refunded")
    market.list_title("holder-b", "T-5", 400)
    listing = market.get_listing("T-5")
    print(f"  Listing holder: {listing.holder}, ask {listing.ask_price}")
    print_balances(world, "bidder")

    check_books(world)
    print_event_trail(world, "T-5")
    await persist(market)


# ===========================================================================
# Scenario 6: Deflationary Asset
# ===========================================================================
async def scenario_6_deflationary_asset() -> None:
    """Settle a bid in a fee-on-transfer asset using what custody actually holds."""
    banner("SCENARIO 6: Deflationary Asset")

    world = build_world(accepted_assets=(NATIVE_ASSET, "DFT"))
    market = world.market
    world.registry.mint("T-6", "holder")
    world.fund("bidder", 10_000, asset_id="DFT")
    world.rail.set_transfer_fee("DFT", Decimal("0.01"))

    section("Step 1: Admin flags DFT deflationary; holder lists in DFT")
    market.set_asset_deflationary(ADMIN, "DFT", True)
    market.list_title("holder", "T-6", 1_000, asset_id="DFT")

    section("Step 2: Bidder bids 1000 DFT")
    bid = market.place_bid("bidder", "T-6", 1_000)
    print(f"  Nominal {bid.amount}, held {bid.held}")

    section("Step 3: Holder accepts; the sale settles immediately")
    receipt = market.accept_bid("holder", "T-6", 0, "bidder", 1_000)
    print(f"  Sold to {receipt.buyer}: fee {receipt.fee}, proceeds {receipt.proceeds}")
    print_balances(world, "holder", "bidder", FEE_RECIPIENT, asset_id="DFT")

    check_books(world)
    print_event_trail(world, "T-6")
    await persist(market)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS: dict[int, Callable[[], Awaitable[None]]] = {
    1: scenario_1_competitive_purchase,
    2: scenario_2_confirmation_expiry,
    3: scenario_3_accept_and_pay,
    4: scenario_4_hostile_recipient,
    5: scenario_5_ownership_handover,
    6: scenario_6_deflationary_asset,
}


async def run(scenarios: list[int], use_sqlite: bool = False, use_db: bool = True) -> None:
    """Run the given scenarios sequentially."""
    global _use_db
    _use_db = use_db
    if use_db:
        await init_database(use_sqlite=use_sqlite)

    try:
        print("\n" + "🏠" * 35)
        print("  THE TITLE EXCHANGE — SIMULATION")
        if not use_db:
            db_type = "none"
        else:
            db_type = "SQLite (in-memory)" if use_sqlite else "PostgreSQL"
        print(f"  Database: {db_type}")
        print("🏠" * 35 + "\n")

        for num in scenarios:
            await SCENARIOS[num]()

        print("\n" + "=" * 70)
        print("  ✅ ALL SCENARIOS COMPLETED SUCCESSFULLY")
        print("=" * 70 + "\n")
    finally:
        if use_db:
            await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Title Exchange Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help=f"Run a specific scenario ({', '.join(map(str, SCENARIOS))}). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of PostgreSQL (no Docker needed).",
    )
    parser.add_argument(
        "--no-db",
        action="store_true",
        help="Do not persist events anywhere.",
    )
    args = parser.parse_args()

    if args.scenario and args.scenario not in SCENARIOS:
        parser.error(f"Unknown scenario {args.scenario}. Available: {list(SCENARIOS)}")
    selected = [args.scenario] if args.scenario else list(SCENARIOS)
    asyncio.run(run(selected, use_sqlite=args.sqlite, use_db=not args.no_db))
