"""Domain enumerations for the Title Exchange.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum

NATIVE_ASSET = "NATIVE"


class ListingStatus(enum.StrEnum):
    """Lifecycle states of a title listing.

    State transitions are enforced by the ListingStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    LISTED = "LISTED"
    RENTED = "RENTED"
    SOLD = "SOLD"
    DELISTED = "DELISTED"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    PENDING_CONFIRMATION = "PENDING_CONFIRMATION"


# Statuses in which a listing still belongs to its holder and blocks relisting.
ACTIVE_STATUSES = frozenset(
    {
        ListingStatus.LISTED,
        ListingStatus.RENTED,
        ListingStatus.PENDING_PAYMENT,
        ListingStatus.PENDING_CONFIRMATION,
    }
)


class PendingKind(enum.StrEnum):
    """Why a purchase is pending: seller confirmation or buyer payment."""

    CONFIRMATION = "CONFIRMATION"
    PAYMENT = "PAYMENT"


class AssetKind(enum.StrEnum):
    """Payment asset variants.

    NATIVE value travels with the call; FUNGIBLE assets are pulled through
    the payment rail; DEFLATIONARY assets lose part of every transfer in transit.
    """

    NATIVE = "native"
    FUNGIBLE = "fungible"
    DEFLATIONARY = "deflationary"


class Operation(enum.StrEnum):
    """User-facing operations that an external authority may halt."""

    LIST = "list"
    UPDATE = "update"
    DELIST = "delist"
    PLACE_BID = "place_bid"
    CANCEL_BID = "cancel_bid"
    CLEANUP_BIDS = "cleanup_bids"
    PURCHASE = "purchase"
    ACCEPT_BID = "accept_bid"
    COMPLETE_PAYMENT = "complete_payment"
    CONFIRM_PURCHASE = "confirm_purchase"
    REJECT_PURCHASE = "reject_purchase"
    EXPIRE = "expire"
    WITHDRAW = "withdraw"


class EventType(enum.StrEnum):
    """Types of notifications recorded in the market event stream.

    Every state transition and every value movement MUST produce an event.
    The stream alone is enough to rebuild each listing's history.
    """

    # Listing lifecycle
    LISTING_CREATED = "LISTING_CREATED"
    LISTING_UPDATED = "LISTING_UPDATED"
    LISTING_DELISTED = "LISTING_DELISTED"
    LISTING_RENTED = "LISTING_RENTED"
    RENTAL_ENDED = "RENTAL_ENDED"

    # Bid book
    BID_PLACED = "BID_PLACED"
    BID_CANCELLED = "BID_CANCELLED"
    BIDS_CLEANED_UP = "BIDS_CLEANED_UP"
    BID_ACCEPTED = "BID_ACCEPTED"

    # Purchases and settlement
    PURCHASE_COMPLETED = "PURCHASE_COMPLETED"
    COMPETITIVE_PURCHASE = "COMPETITIVE_PURCHASE"
    PURCHASE_REQUESTED = "PURCHASE_REQUESTED"
    PURCHASE_CONFIRMED = "PURCHASE_CONFIRMED"
    PURCHASE_REJECTED = "PURCHASE_REJECTED"
    PURCHASE_EXPIRED = "PURCHASE_EXPIRED"
    PAYMENT_COMPLETED = "PAYMENT_COMPLETED"
    PAYMENT_EXPIRED = "PAYMENT_EXPIRED"
    TITLE_TRANSFERRED = "TITLE_TRANSFERRED"

    # Custody
    FUNDS_RECEIVED = "FUNDS_RECEIVED"
    PAYOUT_SENT = "PAYOUT_SENT"
    PUSH_FAILED_ESCROWED = "PUSH_FAILED_ESCROWED"
    REFUND_WITHDRAWN = "REFUND_WITHDRAWN"
    DEFLATIONARY_TRANSFER = "DEFLATIONARY_TRANSFER"

    # Administration
    DEFLATIONARY_ASSET_SET = "DEFLATIONARY_ASSET_SET"
    EMERGENCY_WITHDRAWAL = "EMERGENCY_WITHDRAWAL"
