"""Domain exceptions for the Title Exchange.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware.

Every rejected operation leaves no partial state behind: components validate
fully before they mutate anything.
"""


class MarketplaceError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "MARKETPLACE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Category bases
# ---------------------------------------------------------------------------


class AuthorizationError(MarketplaceError):
    """Caller is not the current holder, the counterparty, or an admin."""


class InvalidStateError(MarketplaceError):
    """Operation is not valid for the listing's current status."""


class InvalidValueError(MarketplaceError):
    """Amount or payment does not satisfy the pricing rules."""


class AssetError(MarketplaceError):
    """Payment asset is not accepted or does not match the listing."""


class ResourceError(MarketplaceError):
    """A referenced record (listing, bid, balance) does not exist."""


class PaymentError(MarketplaceError):
    """Raised when a value transfer on the payment rail fails."""

    def __init__(self, message: str, code: str = "PAYMENT_ERROR") -> None:
        super().__init__(message=message, code=code)


# --- Authorization Errors ---


class NotTitleHolderError(AuthorizationError):
    """Raised when the caller does not currently hold the title."""

    def __init__(self, title_id: str, caller: str) -> None:
        super().__init__(
            message=f"{caller} is not the current holder of title {title_id}",
            code="NOT_TITLE_HOLDER",
        )
        self.title_id = title_id
        self.caller = caller


class NotCounterpartyError(AuthorizationError):
    """Raised when someone other than the pending buyer tries to complete payment."""

    def __init__(self, title_id: str, caller: str) -> None:
        super().__init__(
            message=f"{caller} is not the counterparty of the pending purchase on {title_id}",
            code="NOT_COUNTERPARTY",
        )


class NotAdminError(AuthorizationError):
    def __init__(self, caller: str) -> None:
        super().__init__(message=f"{caller} is not an administrator", code="NOT_ADMIN")


class ParticipantNotPermittedError(AuthorizationError):
    """Raised when the compliance collaborator refuses a participant."""

    def __init__(self, participant: str) -> None:
        super().__init__(
            message=f"Participant is not permitted to trade: {participant}",
            code="PARTICIPANT_NOT_PERMITTED",
        )
        self.participant = participant


class SelfDealingError(AuthorizationError):
    """Raised when a holder tries to bid on or buy their own title."""

    def __init__(self, title_id: str) -> None:
        super().__init__(
            message=f"Holder cannot bid on or buy their own title: {title_id}",
            code="SELF_DEALING",
        )


# --- State Errors ---


class InvalidStateTransitionError(InvalidStateError):
    """Raised when an attempted state transition is not allowed.

    Example: LISTED -> PENDING_PAYMENT via complete_payment.
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {attempted_event} from {current_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


class AlreadyListedError(InvalidStateError):
    def __init__(self, title_id: str) -> None:
        super().__init__(message=f"Title already listed: {title_id}", code="ALREADY_LISTED")
        self.title_id = title_id


class ListingNotActiveError(InvalidStateError):
    """Raised when an operation needs a LISTED title but finds another status."""

    def __init__(self, title_id: str, status: str) -> None:
        super().__init__(
            message=f"Listing {title_id} is {status}, expected LISTED",
            code="LISTING_NOT_ACTIVE",
        )
        self.status = status


class StaleListingError(InvalidStateError):
    """Raised when the listing's holder no longer owns the title."""

    def __init__(self, title_id: str, stale_holder: str) -> None:
        super().__init__(
            message=f"Listing {title_id} belongs to former holder {stale_holder}; relist first",
            code="STALE_LISTING",
        )


class NoPendingPurchaseError(InvalidStateError):
    def __init__(self, title_id: str, kind: str) -> None:
        super().__init__(
            message=f"No pending {kind.lower()} purchase on title {title_id}",
            code="NO_PENDING_PURCHASE",
        )


class DeadlinePassedError(InvalidStateError):
    def __init__(self, title_id: str) -> None:
        super().__init__(
            message=f"Deadline for the pending purchase on {title_id} has passed",
            code="DEADLINE_PASSED",
        )


class DeadlineNotReachedError(InvalidStateError):
    def __init__(self, title_id: str) -> None:
        super().__init__(
            message=f"Pending purchase on {title_id} has not expired yet",
            code="DEADLINE_NOT_REACHED",
        )


class OperationHaltedError(InvalidStateError):
    def __init__(self, operation: str) -> None:
        super().__init__(message=f"Operation is halted: {operation}", code="OPERATION_HALTED")
        self.operation = operation


class ReentrantCallError(InvalidStateError):
    """Raised when external code calls back into an operation still in flight."""

    def __init__(self, operation: str) -> None:
        super().__init__(
            message=f"Re-entrant call rejected: {operation}",
            code="REENTRANT_CALL",
        )


# --- Value Errors ---


class InvalidAmountError(InvalidValueError):
    def __init__(self, field: str, value: object) -> None:
        super().__init__(message=f"Invalid {field}: {value!r}", code="INVALID_AMOUNT")


class IncorrectPaymentError(InvalidValueError):
    """Raised when attached native value differs from the amount owed."""

    def __init__(self, expected: int, attached: int) -> None:
        super().__init__(
            message=f"Incorrect payment: expected {expected}, attached {attached}",
            code="INCORRECT_PAYMENT",
        )
        self.expected = expected
        self.attached = attached


class BidBelowMinimumError(InvalidValueError):
    def __init__(self, amount: int, minimum: int) -> None:
        super().__init__(
            message=f"Bid {amount} is below the required minimum {minimum}",
            code="BID_BELOW_MINIMUM",
        )
        self.amount = amount
        self.minimum = minimum


class BidDecreaseNotAllowedError(InvalidValueError):
    def __init__(self, current: int, attempted: int) -> None:
        super().__init__(
            message=f"Bid decrease not allowed: {current} -> {attempted}",
            code="BID_DECREASE_NOT_ALLOWED",
        )


class InsufficientOfferError(InvalidValueError):
    def __init__(self, offer: int, required: int) -> None:
        super().__init__(
            message=f"Offer {offer} is below the required price {required}",
            code="INSUFFICIENT_OFFER",
        )
        self.offer = offer
        self.required = required


class BidMismatchError(InvalidValueError):
    """Raised when the bid at an index no longer matches what the holder expected."""

    def __init__(self, index: int) -> None:
        super().__init__(
            message=f"Bid at index {index} does not match the expected bidder and amount",
            code="BID_MISMATCH",
        )


# --- Asset Errors ---


class AssetNotAcceptedError(AssetError):
    def __init__(self, asset_id: str) -> None:
        super().__init__(message=f"Payment asset not accepted: {asset_id}", code="ASSET_NOT_ACCEPTED")


class AssetMismatchError(AssetError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            message=f"Asset mismatch: listing uses {expected}, got {actual}",
            code="ASSET_MISMATCH",
        )


class AssetChangeWithActiveBidsError(AssetError):
    def __init__(self, title_id: str) -> None:
        super().__init__(
            message=f"Cannot change payment asset with active bids on {title_id}",
            code="ASSET_CHANGE_WITH_ACTIVE_BIDS",
        )


# --- Resource Errors ---


class ListingNotFoundError(ResourceError):
    def __init__(self, title_id: str) -> None:
        super().__init__(message=f"Listing not found: {title_id}", code="LISTING_NOT_FOUND")
        self.title_id = title_id


class TitleNotFoundError(ResourceError):
    def __init__(self, title_id: str) -> None:
        super().__init__(message=f"Title not found: {title_id}", code="TITLE_NOT_FOUND")


class BidIndexOutOfBoundsError(ResourceError):
    def __init__(self, index: int, size: int) -> None:
        super().__init__(
            message=f"Bid index {index} out of bounds (book has {size} entries)",
            code="BID_INDEX_OUT_OF_BOUNDS",
        )


class NoActiveBidError(ResourceError):
    def __init__(self, title_id: str, bidder: str) -> None:
        super().__init__(
            message=f"No active bid from {bidder} on title {title_id}",
            code="NO_ACTIVE_BID",
        )


class NoPendingBalanceError(ResourceError):
    def __init__(self, participant: str, asset_id: str) -> None:
        super().__init__(
            message=f"No pending balance for {participant} in {asset_id}",
            code="NO_PENDING_BALANCE",
        )


# --- Payment Errors ---


class TransferFailedError(PaymentError):
    """Raised when the rail or the recipient refuses a transfer."""

    def __init__(self, message: str, tx_ref: str | None = None) -> None:
        super().__init__(message=message, code="TRANSFER_FAILED")
        self.tx_ref = tx_ref


class InsufficientFundsError(PaymentError):
    """Raised when an account holds less than a transfer requires."""

    def __init__(self, account: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient funds in {account}: required {required}, available {available}"
            ),
            code="INSUFFICIENT_FUNDS",
        )
        self.required = required
        self.available = available
