"""Deflationary (fee-on-transfer) assets.

The amount that arrives can be less than the amount sent, so both directions
are measured by the balance delta of the receiving account.
"""

from __future__ import annotations

from title_exchange.assets.fungible import FungibleAsset
from title_exchange.domain.enums import AssetKind
from title_exchange.domain.models import TransferResult


class DeflationaryAsset(FungibleAsset):
    kind = AssetKind.DEFLATIONARY

    def pull(self, sender: str, custody: str, amount: int) -> TransferResult:
        return self._measured_transfer(sender, custody, amount)

    def push(self, custody: str, recipient: str, amount: int) -> TransferResult:
        return self._measured_transfer(custody, recipient, amount)

    def _measured_transfer(self, sender: str, recipient: str, amount: int) -> TransferResult:
        before = self._rail.balance_of(self.asset_id, recipient)
        tx_ref = self._rail.transfer(self.asset_id, sender, recipient, amount)
        after = self._rail.balance_of(self.asset_id, recipient)
        return TransferResult(requested=amount, moved=after - before, tx_ref=tx_ref)
