"""Pydantic schemas for the Title Exchange API.

These schemas define the request/response shapes for the REST API. They are
separate from the domain dataclasses to keep clean boundaries between the
API and the marketplace core.

Amounts are integers in the asset's smallest unit and may be as large as
2**256 - 1; the marketplace rejects anything outside that range.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from title_exchange.domain.enums import NATIVE_ASSET

if TYPE_CHECKING:
    from title_exchange.domain.models import (
        AssetTotals,
        Bid,
        Listing,
        MarketEvent,
        PendingPurchase,
        SaleReceipt,
    )
    from title_exchange.infrastructure.database.orm_models import MarketEventRecord

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CallerRequest(BaseModel):
    """Request body for operations that only need the acting participant."""

    caller: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Participant performing the operation",
        examples=["alice"],
    )


class ListTitleRequest(CallerRequest):
    ask_price: int = Field(..., gt=0, description="Ask price in the asset's smallest unit")
    asset_id: str = Field(default=NATIVE_ASSET, description="NATIVE or a fungible asset id")
    confirmation_window_seconds: int | None = Field(
        default=None,
        ge=0,
        description="If set, direct purchases wait this long for holder confirmation",
    )

    @property
    def confirmation_window(self) -> timedelta | None:
        if self.confirmation_window_seconds is None:
            return None
        return timedelta(seconds=self.confirmation_window_seconds)


class UpdateListingRequest(CallerRequest):
    ask_price: int = Field(..., gt=0)
    asset_id: str | None = Field(default=None, description="New payment asset (optional)")


class PlaceBidRequest(CallerRequest):
    amount: int = Field(..., gt=0, description="Total bid amount, not the increase")
    asset_id: str | None = None
    attached: int = Field(
        default=0,
        ge=0,
        description="Native value sent with the call (the full bid, or the increase on a raise)",
    )


class PurchaseRequest(CallerRequest):
    offer: int = Field(..., gt=0)
    asset_id: str | None = None
    attached: int = Field(default=0, ge=0)


class AcceptBidRequest(CallerRequest):
    bid_index: int = Field(..., ge=0)
    expected_bidder: str = Field(..., min_length=1)
    expected_amount: int = Field(..., gt=0)


class CompletePaymentRequest(CallerRequest):
    attached: int = Field(default=0, ge=0)


class WithdrawRequest(CallerRequest):
    asset_id: str = NATIVE_ASSET


class SetDeflationaryRequest(CallerRequest):
    deflationary: bool


class EmergencyWithdrawRequest(CallerRequest):
    asset_id: str
    amount: int = Field(..., gt=0)
    recipient: str = Field(..., min_length=1)


class MintTitleRequest(BaseModel):
    """Sandbox: put a title into the in-memory registry."""

    title_id: str = Field(..., min_length=1, max_length=128)
    owner: str = Field(..., min_length=1, max_length=128)


class FundAccountRequest(BaseModel):
    """Sandbox: credit an account on the in-memory payment rail."""

    account: str = Field(..., min_length=1, max_length=128)
    asset_id: str = NATIVE_ASSET
    amount: int = Field(..., gt=0)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class ListingResponse(BaseModel):
    """Response schema for a listing."""

    model_config = ConfigDict(from_attributes=True)

    title_id: str
    holder: str
    ask_price: int
    payment_asset: str
    status: str
    confirmation_window_seconds: int | None
    min_next_bid: int | None = None
    allowed_events: list[str] = Field(
        default_factory=list,
        description="State machine events that can fire from the current status",
    )
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(
        cls,
        listing: Listing,
        *,
        min_next_bid: int | None = None,
        allowed_events: list[str] | None = None,
    ) -> ListingResponse:
        window = listing.confirmation_window
        return cls(
            title_id=listing.title_id,
            holder=listing.holder,
            ask_price=listing.ask_price,
            payment_asset=listing.payment_asset,
            status=listing.status.value,
            confirmation_window_seconds=int(window.total_seconds()) if window else None,
            min_next_bid=min_next_bid,
            allowed_events=allowed_events or [],
            created_at=listing.created_at,
            updated_at=listing.updated_at,
        )


class BidResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bidder: str
    amount: int
    held: int
    asset_id: str
    is_active: bool
    placed_at: datetime


class PendingPurchaseResponse(BaseModel):
    counterparty: str
    offer_amount: int
    held: int
    asset_id: str
    kind: str
    created_at: datetime
    deadline: datetime
    is_expired: bool = Field(
        default=False,
        description="Whether the deadline has passed by the marketplace clock",
    )

    @classmethod
    def from_domain(
        cls, pending: PendingPurchase, *, is_expired: bool = False
    ) -> PendingPurchaseResponse:
        return cls(
            counterparty=pending.counterparty,
            offer_amount=pending.offer_amount,
            held=pending.held,
            asset_id=pending.asset_id,
            kind=pending.kind.value,
            created_at=pending.created_at,
            deadline=pending.deadline,
            is_expired=is_expired,
        )


class SaleReceiptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title_id: str
    seller: str
    buyer: str
    price: int
    asset_id: str
    fee: int
    proceeds: int


class SettlementResponse(BaseModel):
    """Outcome of a purchase or bid acceptance: settled now, or pending."""

    outcome: Literal["sold", "pending"]
    receipt: SaleReceiptResponse | None = None
    pending: PendingPurchaseResponse | None = None

    @classmethod
    def from_result(cls, result: SaleReceipt | PendingPurchase) -> SettlementResponse:
        if hasattr(result, "seller"):
            return cls(outcome="sold", receipt=SaleReceiptResponse.model_validate(result))
        return cls(outcome="pending", pending=PendingPurchaseResponse.from_domain(result))


class CleanupResponse(BaseModel):
    title_id: str
    removed: int
    remaining: int


class BalanceResponse(BaseModel):
    participant: str
    asset_id: str
    amount: int


class MarketEventResponse(BaseModel):
    """Response schema for one entry of the event stream."""

    sequence: int
    event_type: str
    occurred_at: datetime
    title_id: str | None
    actor: str | None
    old_status: str | None
    new_status: str | None
    asset_id: str | None
    amount: int | None
    details: dict[str, Any]

    @classmethod
    def from_domain(cls, event: MarketEvent) -> MarketEventResponse:
        return cls.model_validate(event.to_dict())

    @classmethod
    def from_record(cls, record: MarketEventRecord) -> MarketEventResponse:
        return cls(
            sequence=record.sequence,
            event_type=record.event_type,
            occurred_at=record.occurred_at,
            title_id=record.title_id,
            actor=record.actor,
            old_status=record.old_status,
            new_status=record.new_status,
            asset_id=record.asset_id,
            amount=record.amount_value,
            details=record.details or {},
        )


class CustodyReportResponse(BaseModel):
    asset_id: str
    received: int
    committed: int
    escrowed: int
    disbursed: int
    emergency_withdrawn: int
    violations: list[str]

    @classmethod
    def from_totals(
        cls, asset_id: str, totals: AssetTotals, violations: list[str]
    ) -> CustodyReportResponse:
        return cls(asset_id=asset_id, violations=violations, **totals.to_dict())


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
