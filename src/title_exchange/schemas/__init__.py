"""Pydantic API schemas."""

from title_exchange.schemas.market import (
    AcceptBidRequest,
    BalanceResponse,
    BidResponse,
    CallerRequest,
    CleanupResponse,
    CompletePaymentRequest,
    CustodyReportResponse,
    EmergencyWithdrawRequest,
    FundAccountRequest,
    HealthResponse,
    ListingResponse,
    ListTitleRequest,
    MarketEventResponse,
    MintTitleRequest,
    PendingPurchaseResponse,
    PlaceBidRequest,
    PurchaseRequest,
    SaleReceiptResponse,
    SetDeflationaryRequest,
    SettlementResponse,
    UpdateListingRequest,
    WithdrawRequest,
)

__all__ = [
    "AcceptBidRequest",
    "BalanceResponse",
    "BidResponse",
    "CallerRequest",
    "CleanupResponse",
    "CompletePaymentRequest",
    "CustodyReportResponse",
    "EmergencyWithdrawRequest",
    "FundAccountRequest",
    "HealthResponse",
    "ListingResponse",
    "ListTitleRequest",
    "MarketEventResponse",
    "MintTitleRequest",
    "PendingPurchaseResponse",
    "PlaceBidRequest",
    "PurchaseRequest",
    "SaleReceiptResponse",
    "SetDeflationaryRequest",
    "SettlementResponse",
    "UpdateListingRequest",
    "WithdrawRequest",
]
