"""Administrative and sandbox routes.

Admin endpoints require the caller to be a configured administrator; the
marketplace enforces that. Sandbox endpoints seed the in-memory registry and
payment rail and are only mounted in development.

Endpoints:
    POST /api/v1/admin/titles/{id}/expire-payment       — Lapse an unpaid accepted bid
    POST /api/v1/admin/titles/{id}/expire-confirmation  — Lapse an unconfirmed purchase
    POST /api/v1/admin/titles/{id}/rent                 — Mark a listing rented
    POST /api/v1/admin/titles/{id}/end-rental           — Return a rented listing
    PUT  /api/v1/admin/assets/{asset}/deflationary      — Flag a fee-on-transfer asset
    POST /api/v1/admin/emergency-withdraw               — Move funds out of custody
    GET  /api/v1/admin/custody/{asset}                  — Custody totals and violations
    POST /api/v1/sandbox/titles                         — Mint a title (development)
    POST /api/v1/sandbox/funds                          — Fund an account (development)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from title_exchange.api.deps import MarketRuntime, get_event_repo, get_marketplace, get_runtime
from title_exchange.api.routes.market import persist_events
from title_exchange.infrastructure.database.repositories import EventRepository
from title_exchange.logging_config import get_logger
from title_exchange.schemas.market import (
    BalanceResponse,
    CallerRequest,
    CustodyReportResponse,
    EmergencyWithdrawRequest,
    FundAccountRequest,
    ListingResponse,
    MintTitleRequest,
    PendingPurchaseResponse,
    SetDeflationaryRequest,
)
from title_exchange.services.marketplace_service import Marketplace

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])
sandbox_router = APIRouter(prefix="/api/v1/sandbox", tags=["Sandbox"])
logger = get_logger(__name__)


@router.post("/titles/{title_id}/expire-payment", response_model=PendingPurchaseResponse)
async def force_expire_payment(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> PendingPurchaseResponse:
    cursor = marketplace.events.cursor
    pending = marketplace.force_expire_pending_payment(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return PendingPurchaseResponse.from_domain(
        pending, is_expired=marketplace.pending_is_expired(pending)
    )


@router.post("/titles/{title_id}/expire-confirmation", response_model=PendingPurchaseResponse)
async def force_expire_confirmation(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> PendingPurchaseResponse:
    cursor = marketplace.events.cursor
    pending = marketplace.force_expire_pending_confirmation(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return PendingPurchaseResponse.from_domain(
        pending, is_expired=marketplace.pending_is_expired(pending)
    )


@router.post("/titles/{title_id}/rent", response_model=ListingResponse)
async def mark_rented(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> ListingResponse:
    cursor = marketplace.events.cursor
    listing = marketplace.mark_rented(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return ListingResponse.from_domain(listing, allowed_events=marketplace.allowed_events(title_id))


@router.post("/titles/{title_id}/end-rental", response_model=ListingResponse)
async def end_rental(
    title_id: str,
    body: CallerRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> ListingResponse:
    cursor = marketplace.events.cursor
    listing = marketplace.end_rental(body.caller, title_id)
    await persist_events(marketplace, repo, cursor)
    return ListingResponse.from_domain(listing, allowed_events=marketplace.allowed_events(title_id))


@router.put("/assets/{asset_id}/deflationary", status_code=status.HTTP_204_NO_CONTENT)
async def set_deflationary(
    asset_id: str,
    body: SetDeflationaryRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> None:
    cursor = marketplace.events.cursor
    marketplace.set_asset_deflationary(body.caller, asset_id, body.deflationary)
    await persist_events(marketplace, repo, cursor)


@router.post("/emergency-withdraw", response_model=BalanceResponse)
async def emergency_withdraw(
    body: EmergencyWithdrawRequest,
    marketplace: Marketplace = Depends(get_marketplace),
    repo: EventRepository = Depends(get_event_repo),
) -> BalanceResponse:
    cursor = marketplace.events.cursor
    amount = marketplace.emergency_withdraw(
        body.caller, body.asset_id, body.amount, body.recipient
    )
    await persist_events(marketplace, repo, cursor)
    return BalanceResponse(participant=body.recipient, asset_id=body.asset_id, amount=amount)


@router.get("/custody/{asset_id}", response_model=CustodyReportResponse)
async def custody_report(
    asset_id: str,
    marketplace: Marketplace = Depends(get_marketplace),
) -> CustodyReportResponse:
    violations = [v for v in marketplace.verify_conservation() if v.startswith(f"{asset_id}:")]
    return CustodyReportResponse.from_totals(
        asset_id, marketplace.custody_totals(asset_id), violations
    )


# ---------------------------------------------------------------------------
# Sandbox (development only)
# ---------------------------------------------------------------------------


@sandbox_router.post("/titles", status_code=status.HTTP_201_CREATED)
async def mint_title(
    body: MintTitleRequest,
    runtime: MarketRuntime = Depends(get_runtime),
) -> dict:
    runtime.registry.mint(body.title_id, body.owner)
    return {"title_id": body.title_id, "owner": body.owner}


@sandbox_router.post("/funds", response_model=BalanceResponse)
async def fund_account(
    body: FundAccountRequest,
    runtime: MarketRuntime = Depends(get_runtime),
) -> BalanceResponse:
    runtime.rail.mint(body.asset_id, body.account, body.amount)
    logger.info("sandbox.account_funded", account=body.account, asset=body.asset_id)
    return BalanceResponse(
        participant=body.account,
        asset_id=body.asset_id,
        amount=runtime.rail.balance_of(body.asset_id, body.account),
    )
