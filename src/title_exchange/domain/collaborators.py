"""Collaborator Protocols.

The marketplace consumes compliance, title ownership and value transfer
through these narrow interfaces. They are Protocols (structural subtyping),
so concrete implementations don't need to inherit from a base class; they
just need to match the shape.

The domain layer has ZERO imports from any concrete rail or registry.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from title_exchange.domain.models import TransferResult


@runtime_checkable
class AccessPolicy(Protocol):
    """Compliance, halt switches and fee schedule.

    Concrete implementation:
        - services/access_policy.py (StaticAccessPolicy)
    """

    def is_permitted(self, participant: str) -> bool: ...

    def is_asset_accepted(self, asset_id: str) -> bool: ...

    def is_operation_halted(self, operation: str) -> bool: ...

    def is_admin(self, participant: str) -> bool: ...

    def fee_rate(self) -> Decimal: ...

    def fee_recipient(self) -> str: ...


@runtime_checkable
class TitleRegistry(Protocol):
    """Authoritative record of who holds each title.

    Concrete implementation:
        - services/title_registry.py (InMemoryTitleRegistry)
    """

    def owner_of(self, title_id: str) -> str:
        """Return the live holder. Raises TitleNotFoundError for unknown titles."""
        ...

    def transfer(self, title_id: str, sender: str, recipient: str) -> None: ...


@runtime_checkable
class PaymentRail(Protocol):
    """Moves value between accounts.

    Concrete implementation:
        - services/payment_service.py (InMemoryPaymentRail)
    """

    def balance_of(self, asset_id: str, account: str) -> int: ...

    def transfer(self, asset_id: str, sender: str, recipient: str, amount: int) -> str:
        """Move ``amount`` and return a transaction reference.

        Raises:
            PaymentError: If the sender lacks funds or the recipient refuses.
        """
        ...


@runtime_checkable
class PaymentAsset(Protocol):
    """One payment asset as seen by custody.

    Concrete implementations:
        - assets/fungible.py (FungibleAsset, NativeAsset)
        - assets/deflationary.py (DeflationaryAsset)
    """

    asset_id: str

    @property
    def is_native(self) -> bool: ...

    def pull(self, sender: str, custody: str, amount: int) -> TransferResult:
        """Move value from a participant into custody."""
        ...

    def push(self, custody: str, recipient: str, amount: int) -> TransferResult:
        """Move value out of custody to a participant."""
        ...
