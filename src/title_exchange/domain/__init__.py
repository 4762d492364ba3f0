"""Domain layer — pure business logic with zero framework dependencies."""

from title_exchange.domain.collaborators import (
    AccessPolicy,
    PaymentAsset,
    PaymentRail,
    TitleRegistry,
)
from title_exchange.domain.enums import (
    NATIVE_ASSET,
    EventType,
    ListingStatus,
    Operation,
    PendingKind,
)
from title_exchange.domain.exceptions import (
    InvalidStateTransitionError,
    ListingNotFoundError,
    MarketplaceError,
)
from title_exchange.domain.models import (
    Bid,
    Listing,
    MarketEvent,
    PendingPurchase,
    is_expired,
)
from title_exchange.domain.state_machine import (
    ListingStateMachine,
    validate_transition,
)

__all__ = [
    "AccessPolicy",
    "PaymentAsset",
    "PaymentRail",
    "TitleRegistry",
    "NATIVE_ASSET",
    "EventType",
    "ListingStatus",
    "Operation",
    "PendingKind",
    "InvalidStateTransitionError",
    "ListingNotFoundError",
    "MarketplaceError",
    "Bid",
    "Listing",
    "MarketEvent",
    "PendingPurchase",
    "is_expired",
    "ListingStateMachine",
    "validate_transition",
]
