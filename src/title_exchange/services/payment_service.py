"""Payment Service — in-memory payment rail for simulation and tests.

Keeps per-asset account balances and generates fake transaction references,
the same way a simulated settlement would on a real chain. It can model two
hostile behaviours of real tokens:

    - per-asset transfer fees (deflationary tokens burn part of each transfer)
    - per-account receive hooks (a recipient that runs code, or refuses, on receipt)

A receive hook that raises reverts the whole transfer and surfaces as
TransferFailedError, so the sender keeps its funds.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING

from title_exchange.domain.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    TransferFailedError,
)
from title_exchange.domain.pricing import compute_fee, validate_fraction
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

    # (asset_id, sender, amount_received) -> None; raise to refuse the transfer
    ReceiveHook = Callable[[str, str, int], None]

logger = get_logger(__name__)


class InMemoryPaymentRail:
    """Simulated value transfer between accounts."""

    def __init__(self) -> None:
        self._balances: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._transfer_fees: dict[str, Decimal] = {}
        self._receive_hooks: dict[str, ReceiveHook] = {}

    # ------------------------------------------------------------------
    # Simulation controls
    # ------------------------------------------------------------------

    def mint(self, asset_id: str, account: str, amount: int) -> None:
        """Credit ``amount`` of ``asset_id`` to ``account`` out of thin air."""
        if amount < 0:
            raise InvalidAmountError("mint amount", amount)
        self._balances[asset_id][account] += amount
        logger.debug("rail.minted", asset=asset_id, account=account, amount=amount)

    def set_transfer_fee(self, asset_id: str, rate: Decimal) -> None:
        """Burn ``rate`` of every transfer of ``asset_id`` in transit."""
        self._transfer_fees[asset_id] = validate_fraction(rate, "transfer fee")

    def register_receive_hook(self, account: str, hook: ReceiveHook) -> None:
        self._receive_hooks[account] = hook

    def clear_receive_hook(self, account: str) -> None:
        self._receive_hooks.pop(account, None)

    # ------------------------------------------------------------------
    # PaymentRail protocol
    # ------------------------------------------------------------------

    def balance_of(self, asset_id: str, account: str) -> int:
        return self._balances[asset_id][account]

    def transfer(self, asset_id: str, sender: str, recipient: str, amount: int) -> str:
        """Move ``amount`` from sender to recipient and return a fake tx reference.

        Raises:
            InsufficientFundsError: If the sender holds less than ``amount``.
            TransferFailedError: If the recipient's receive hook raises.
        """
        if amount <= 0:
            raise InvalidAmountError("transfer amount", amount)

        accounts = self._balances[asset_id]
        available = accounts[sender]
        if available < amount:
            raise InsufficientFundsError(sender, required=amount, available=available)

        burned = compute_fee(amount, self._transfer_fees.get(asset_id, Decimal(0)))
        received = amount - burned
        tx_ref = "0x" + uuid.uuid4().hex

        accounts[sender] -= amount
        accounts[recipient] += received

        hook = self._receive_hooks.get(recipient)
        if hook is not None:
            try:
                hook(asset_id, sender, received)
            except Exception as exc:
                # Revert: the recipient refused the funds
                accounts[recipient] -= received
                accounts[sender] += amount
                logger.warning(
                    "rail.transfer_reverted",
                    asset=asset_id,
                    sender=sender,
                    recipient=recipient,
                    amount=amount,
                    error=str(exc),
                )
                raise TransferFailedError(
                    f"Recipient {recipient} refused transfer: {exc}", tx_ref=tx_ref
                ) from exc

        logger.info(
            "rail.transfer_simulated",
            tx_ref=tx_ref,
            asset=asset_id,
            sender=sender,
            recipient=recipient,
            amount=amount,
            burned=burned,
        )
        return tx_ref
