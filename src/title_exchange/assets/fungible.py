"""Standard payment assets.

A fungible asset moves exactly the requested amount. The native asset is a
fungible asset whose value travels with the call: the orchestrator checks the
attached amount, then pulls it through the rail like any other asset.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from title_exchange.domain.enums import NATIVE_ASSET, AssetKind
from title_exchange.domain.models import TransferResult

if TYPE_CHECKING:
    from title_exchange.domain.collaborators import PaymentRail


class FungibleAsset:
    """Asset that delivers exactly what is sent."""

    kind = AssetKind.FUNGIBLE

    def __init__(self, rail: PaymentRail, asset_id: str) -> None:
        self._rail = rail
        self.asset_id = asset_id

    @property
    def is_native(self) -> bool:
        return False

    def pull(self, sender: str, custody: str, amount: int) -> TransferResult:
        tx_ref = self._rail.transfer(self.asset_id, sender, custody, amount)
        return TransferResult(requested=amount, moved=amount, tx_ref=tx_ref)

    def push(self, custody: str, recipient: str, amount: int) -> TransferResult:
        tx_ref = self._rail.transfer(self.asset_id, custody, recipient, amount)
        return TransferResult(requested=amount, moved=amount, tx_ref=tx_ref)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.asset_id!r})"


class NativeAsset(FungibleAsset):
    """The chain's native value."""

    kind = AssetKind.NATIVE

    def __init__(self, rail: PaymentRail, asset_id: str = NATIVE_ASSET) -> None:
        super().__init__(rail, asset_id)

    @property
    def is_native(self) -> bool:
        return True
