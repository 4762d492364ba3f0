"""Marketplace REST API routes.

All routes delegate to the Marketplace orchestrator — no business logic here.
Every mutating route persists the events it produced to the market_events
table before responding.

Endpoints:
    GET    /api/v1/titles                          — Active listings
    GET    /api/v1/titles/{id}                     — Listing with min next bid
    POST   /api/v1/titles/{id}/listing             — List (or relist) a title
    PATCH  /api/v1/titles/{id}/listing             — Update price / asset
    POST   /api/v1/titles/{id}/delist              — Delist
    GET    /api/v1/titles/{id}/bids                — Bid book
    POST   /api/v1/titles/{id}/bids                — Place or raise a bid
    POST   /api/v1/titles/{id}/bids/cancel         — Cancel own bid
    POST   /api/v1/titles/{id}/bids/cleanup        — Compact the bid book
    POST   /api/v1/titles/{id}/purchase            — Direct purchase
    POST   /api/v1/titles/{id}/accept-bid          — Holder accepts a bid
    POST   /api/v1/titles/{id}/complete-payment    — Buyer completes payment
    POST   /api/v1/titles/{id}/confirm             — Holder confirms purchase
    POST   /api/v1/titles/{id}/reject              — Holder rejects purchase
    POST   /api/v1/titles/{id}/expire              — Lapse an expired request
    GET    /api/v1/titles/{id}/pending             — Pending purchase, if any
    GET    /api/v1/titles/{id}/events              — In-process event stream
    GET    /api/v1/events/history                  — Persisted event stream
    POST   /api/v1/escrow/withdraw                 — Pull an escrowed balance
    GET    /api/v1/escrow/{participant}/{asset}    — Escrowed balance
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from title_exchange.api.deps import get_event_repo, get_marketplace
from title_exchange.domain.enums import ListingStatus
from title_exchange.infrastructure.database.repositories import EventRepository
from title_exchange.logging_config import get_logger
from title_exchange.schemas.market import (
    AcceptBidRequest,
    BalanceResponse,
    BidResponse,
    CallerRequest,
    CleanupResponse,
    CompletePaymentRequest,
    ListingResponse,
    ListTitleRequest,
    MarketEventResponse,
    PendingPurchaseResponse,
    PlaceBidRequest,
    PurchaseRequest,
    SettlementResponse,
    UpdateListingRequest,
    WithdrawRequest,
)
from title_exchange.services.marketplace_service import Marketplace

router = APIRouter(prefix="/api/v1", tags=["Marketplace"])
logger = get_logger(__name__)


async def persist_events(marketplace: Marketplace, repo: EventRepository, cursor: int) -> None:
    """Write every event emitted after ``cursor`` to the event table."""
    produced = marketplace.events.since(cursor)
    if produced:
        await repo.record_many(produced)
        logger.debug("events.persisted", count=len(produced))


def _listing_response(marketplace: Marketplace, title_id: str) -> ListingResponse:
    listing = marketplace.get_listing(title_id)
    min_bid = (
        marketplace.min_next_bid(title_id) if listing.status == ListingStatus.LISTED else None
    )
    return ListingResponse.from_domain(
        listing,
        min_next_bid=min_bid,
        allowed_events=marketplace.allowed_events(title_id),
    )


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


@router.get("/titles", response_model=list[ListingResponse], summary="List active listings")
async def list_active(marketplace: Marketplace = Depends(get_marketplace)) -> list[ListingResponse]:
    return [_listing_response(marketplace, lst.title_id) for lst in marketplace.active_listings()]


@router.get("/titles/{title_id}", response_model=ListingResponse, summary="Get a listing")
async def get_listing(
    title_id: str,
    marketplace: Marketplace = Depends(get_marketplace),
) -> ListingResponse:
    return _listing_response(marketplace, title_id)


@router.post(
    "/titles/{title_id}/listing",
    response_model=ListingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="List a title",
    description="List a title the caller holds. Relists over sold, delisted or stale records.",
)
async def list_title(
    title_id: str,
    body: ListTitleRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> ListingResponse:
    cursor = marketplace.events.cursor
    marketplace.list_title(
        body.caller,
        title_id,
        body.ask_price,
        body.asset_id,
        confirmation_window=body.confirmation_window,
    )
    await persist_events(marketplace, repo, cursor)
    return _listing_response(marketplace, title_id)


@router.patch("/titles/{title_id}/listing", response_model=ListingResponse)
async def update_listing(
    title_id: str,
    body: UpdateListingRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> ListingResponse:
    cursor = marketplace.events.cursor
    marketplace.update_listing(body.caller, title_id, body.ask_price, body.asset_id)
    await persist_events(marketplace, repo, cursor)
    return _listing_response(marketplace, title_id)


@router.post("/titles/{title_id}/delist", response_model=ListingResponse)
async def delist(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> ListingResponse:
    cursor = marketplace.events.cursor
    marketplace.delist(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return _listing_response(marketplace, title_id)


# ---------------------------------------------------------------------------
# Bids
# ---------------------------------------------------------------------------


@router.get("/titles/{title_id}/bids", response_model=list[BidResponse])
async def list_bids(
    title_id: str,
    include_inactive: bool = Query(default=False),
    marketplace: Marketplace = Depends(get_marketplace),
) -> list[BidResponse]:
    bids = marketplace.bids_for(title_id, include_inactive=include_inactive)
    return [BidResponse.model_validate(b) for b in bids]


@router.post(
    "/titles/{title_id}/bids",
    response_model=BidResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place or raise a bid",
)
async def place_bid(
    title_id: str,
    body: PlaceBidRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> BidResponse:
    cursor = marketplace.events.cursor
    bid = marketplace.place_bid(body.caller, title_id, body.amount, body.asset_id, body.attached)
    await persist_events(marketplace, repo, cursor)
    return BidResponse.model_validate(bid)


@router.post("/titles/{title_id}/bids/cancel", response_model=BidResponse)
async def cancel_bid(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> BidResponse:
    cursor = marketplace.events.cursor
    bid = marketplace.cancel_bid(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return BidResponse.model_validate(bid)


@router.post("/titles/{title_id}/bids/cleanup", response_model=CleanupResponse)
async def cleanup_bids(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> CleanupResponse:
    cursor = marketplace.events.cursor
    removed, remaining = marketplace.cleanup_bids(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return CleanupResponse(title_id=title_id, removed=removed, remaining=remaining)


# ---------------------------------------------------------------------------
# Purchases and settlement
# ---------------------------------------------------------------------------


@router.post("/titles/{title_id}/purchase", response_model=SettlementResponse)
async def purchase(
    title_id: str,
    body: PurchaseRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> SettlementResponse:
    cursor = marketplace.events.cursor
    result = marketplace.purchase(body.caller, title_id, body.offer, body.asset_id, body.attached)
    await persist_events(marketplace, repo, cursor)
    return SettlementResponse.from_result(result)


@router.post("/titles/{title_id}/accept-bid", response_model=SettlementResponse)
async def accept_bid(
    title_id: str,
    body: AcceptBidRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> SettlementResponse:
    cursor = marketplace.events.cursor
    result = marketplace.accept_bid(
        body.caller, title_id, body.bid_index, body.expected_bidder, body.expected_amount
    )
    await persist_events(marketplace, repo, cursor)
    return SettlementResponse.from_result(result)


@router.post("/titles/{title_id}/complete-payment", response_model=SettlementResponse)
async def complete_payment(
    title_id: str,
    body: CompletePaymentRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> SettlementResponse:
    cursor = marketplace.events.cursor
    receipt = marketplace.complete_payment(body.caller, title_id, body.attached)
    await persist_events(marketplace, repo, cursor)
    return SettlementResponse.from_result(receipt)


@router.post("/titles/{title_id}/confirm", response_model=SettlementResponse)
async def confirm_purchase(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> SettlementResponse:
    cursor = marketplace.events.cursor
    receipt = marketplace.confirm_purchase(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return SettlementResponse.from_result(receipt)


@router.post("/titles/{title_id}/reject", response_model=PendingPurchaseResponse)
async def reject_purchase(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> PendingPurchaseResponse:
    cursor = marketplace.events.cursor
    pending = marketplace.reject_purchase(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return PendingPurchaseResponse.from_domain(
        pending, is_expired=marketplace.pending_is_expired(pending)
    )


@router.post("/titles/{title_id}/expire", response_model=PendingPurchaseResponse)
async def expire(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> PendingPurchaseResponse:
    cursor = marketplace.events.cursor
    pending = marketplace.expire(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return PendingPurchaseResponse.from_domain(
        pending, is_expired=marketplace.pending_is_expired(pending)
    )


@router.get("/titles/{title_id}/pending", response_model=PendingPurchaseResponse | None)
async def get_pending(
    title_id: str,
    marketplace: Marketplace = Depends(get_marketplace),
) -> PendingPurchaseResponse | None:
    pending = marketplace.get_pending_purchase(title_id)
    if pending is None:
        return None
    return PendingPurchaseResponse.from_domain(
        pending, is_expired=marketplace.pending_is_expired(pending)
    )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@router.get("/titles/{title_id}/events", response_model=list[MarketEventResponse])
async def title_events(
    title_id: str,
    marketplace: Marketplace = Depends(get_marketplace),
) -> list[MarketEventResponse]:
    marketplace.get_listing(title_id)
    return [MarketEventResponse.from_domain(e) for e in marketplace.events_for(title_id)]


@router.get("/events/history", response_model=list[MarketEventResponse])
async def event_history(
    title_id: str | None = Query(default=None),
    limit: int = Query(default=500, ge=1, le=5000),
    repo: EventRepository = Depends(get_event_repo),
) -> list[MarketEventResponse]:
    """Read the persisted event stream."""
    if title_id is not None:
        records = await repo.get_by_title(title_id)
    else:
        records = await repo.get_all(limit=limit)
    return [MarketEventResponse.from_record(r) for r in records]


# ---------------------------------------------------------------------------
# Escrow
# ---------------------------------------------------------------------------


@router.post("/escrow/withdraw", response_model=BalanceResponse)
async def withdraw(
    body: WithdrawRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> BalanceResponse:
    cursor = marketplace.events.cursor
    amount = marketplace.withdraw(body.caller, body.asset_id)
    await persist_events(marketplace, repo, cursor)
    return BalanceResponse(participant=body.caller, asset_id=body.asset_id, amount=amount)


@router.get("/escrow/{participant}/{asset_id}", response_model=BalanceResponse)
async def pending_balance(
    participant: str,
    asset_id: str,
    marketplace: Marketplace = Depends(get_marketplace),
) -> BalanceResponse:
    return BalanceResponse(
        participant=participant,
        asset_id=asset_id,
        amount=marketplace.pending_balance(participant, asset_id),
    )
