"""Listing State Machine Guard.

Uses python-statemachine to enforce legal listing transitions at the domain level.
No matter what the orchestrator or the API does, an illegal transition
(e.g., SOLD -> PENDING_PAYMENT) will raise TransitionNotAllowed.

The state machine is instantiated per-transition and validates the move before
the listing's status field is updated.

Transition table:
    any state            -> LISTED                (relist)
    LISTED               -> SOLD                  (purchase)
    LISTED               -> PENDING_CONFIRMATION  (request_purchase)
    PENDING_CONFIRMATION -> SOLD                  (confirm_purchase)
    PENDING_CONFIRMATION -> LISTED                (reject_purchase)
    PENDING_CONFIRMATION -> LISTED                (expire_confirmation)
    LISTED               -> PENDING_PAYMENT       (accept_bid)
    LISTED               -> SOLD                  (settle_bid)
    PENDING_PAYMENT      -> SOLD                  (complete_payment)
    PENDING_PAYMENT      -> LISTED                (expire_payment)
    LISTED               -> DELISTED              (delist)
    LISTED               -> RENTED                (rent_out)
    RENTED               -> LISTED                (end_rental)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class ListingStateMachine(StateMachine):
    """State machine that guards title listing lifecycle transitions.

    SOLD and DELISTED are not final: a new holder (or the same one) can
    relist the title, which reuses the record.

    Usage:
        sm = ListingStateMachine(current_status="LISTED")
        sm.accept_bid()       # transitions to PENDING_PAYMENT
        sm.current_state      # State('PENDING_PAYMENT', ...)
    """

    # --- States ---
    LISTED = State("LISTED", initial=True)
    RENTED = State("RENTED")
    SOLD = State("SOLD")
    DELISTED = State("DELISTED")
    PENDING_PAYMENT = State("PENDING_PAYMENT")
    PENDING_CONFIRMATION = State("PENDING_CONFIRMATION")

    # --- Events / Transitions ---

    # Relisting replaces whatever record was there
    relist = (
        LISTED.to.itself()
        | RENTED.to(LISTED)
        | SOLD.to(LISTED)
        | DELISTED.to(LISTED)
        | PENDING_PAYMENT.to(LISTED)
        | PENDING_CONFIRMATION.to(LISTED)
    )

    # Direct purchase
    purchase = LISTED.to(SOLD)

    # Purchase gated by seller confirmation
    request_purchase = LISTED.to(PENDING_CONFIRMATION)
    confirm_purchase = PENDING_CONFIRMATION.to(SOLD)
    reject_purchase = PENDING_CONFIRMATION.to(LISTED)
    expire_confirmation = PENDING_CONFIRMATION.to(LISTED)

    # Bid acceptance
    accept_bid = LISTED.to(PENDING_PAYMENT)
    settle_bid = LISTED.to(SOLD)
    complete_payment = PENDING_PAYMENT.to(SOLD)
    expire_payment = PENDING_PAYMENT.to(LISTED)

    # Holder-driven lifecycle
    delist = LISTED.to(DELISTED)
    rent_out = LISTED.to(RENTED)
    end_rental = RENTED.to(LISTED)

    def __init__(self, current_status: str = "LISTED") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current ListingStatus value (e.g., "LISTED").
                           Must match one of the State value strings exactly.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        # start_value expects the string value, not the State object
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches ListingStatus enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Args:
        current_status: Current ListingStatus value.
        event_name: The event to fire (e.g., "accept_bid").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    sm = ListingStateMachine(current_status=current_status)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_status}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.status
