"""Application services — use case orchestration."""

from title_exchange.services.access_policy import StaticAccessPolicy
from title_exchange.services.bid_book import BidBook
from title_exchange.services.custody_ledger import CustodyLedger
from title_exchange.services.event_log import EventLog
from title_exchange.services.listing_service import ListingService
from title_exchange.services.marketplace_service import Marketplace
from title_exchange.services.payment_service import InMemoryPaymentRail
from title_exchange.services.title_registry import InMemoryTitleRegistry

__all__ = [
    "BidBook",
    "CustodyLedger",
    "EventLog",
    "InMemoryPaymentRail",
    "InMemoryTitleRegistry",
    "ListingService",
    "Marketplace",
    "StaticAccessPolicy",
]
