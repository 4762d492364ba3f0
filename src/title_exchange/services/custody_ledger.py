"""Custody Ledger — holds value on behalf of pending transactions.

Value enters custody through ``receive`` and is committed to a bid or a
pending purchase. It leaves exactly once: pushed to its recipient, or, when
the push fails, escrowed for that recipient to pull with ``withdraw``.

Per-asset totals (received, committed, escrowed, disbursed, emergency
withdrawn) let ``verify_conservation`` check the books against the rail.
"""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from title_exchange.domain.enums import EventType
from title_exchange.domain.exceptions import (
    InsufficientFundsError,
    NoPendingBalanceError,
    PaymentError,
)
from title_exchange.domain.models import AssetTotals
from title_exchange.domain.pricing import validate_amount
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from title_exchange.assets import AssetRegistry
    from title_exchange.domain.collaborators import PaymentRail
    from title_exchange.domain.models import Payout, TransferResult
    from title_exchange.services.event_log import EventLog

logger = get_logger(__name__)


class CustodyLedger:
    """Tracks custody of every asset the marketplace holds."""

    def __init__(
        self,
        assets: AssetRegistry,
        rail: PaymentRail,
        custody_account: str,
        events: EventLog,
    ) -> None:
        self._assets = assets
        self._rail = rail
        self._custody = custody_account
        self._events = events
        self._escrow: dict[tuple[str, str], int] = {}
        self._totals: dict[str, AssetTotals] = defaultdict(AssetTotals)

    @property
    def custody_account(self) -> str:
        return self._custody

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def receive(
        self,
        sender: str,
        asset_id: str,
        amount: int,
        *,
        title_id: str | None = None,
    ) -> int:
        """Pull ``amount`` from ``sender`` into custody and commit it.

        Returns the amount actually received, which is below ``amount`` only
        for deflationary assets. A failed pull propagates and leaves no trace.
        """
        result = self._assets.resolve(asset_id).pull(sender, self._custody, amount)

        totals = self._totals[asset_id]
        totals.received += result.moved
        totals.committed += result.moved

        self._events.emit(
            EventType.FUNDS_RECEIVED,
            title_id=title_id,
            actor=sender,
            asset_id=asset_id,
            amount=result.moved,
            requested=amount,
            tx_ref=result.tx_ref,
        )
        self._report_deflation(result, asset_id, title_id, sender, direction="inbound")
        return result.moved

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def credit(
        self,
        participant: str,
        asset_id: str,
        amount: int,
        *,
        title_id: str | None = None,
    ) -> None:
        """Move committed value into the participant's pull-withdrawal balance."""
        if amount <= 0:
            return
        key = (participant, asset_id)
        self._escrow[key] = self._escrow.get(key, 0) + amount

        totals = self._totals[asset_id]
        totals.committed -= amount
        totals.escrowed += amount
        logger.info(
            "ledger.credited",
            participant=participant,
            asset=asset_id,
            amount=amount,
            title_id=title_id,
        )

    def attempt_push(
        self,
        recipient: str,
        asset_id: str,
        amount: int,
        *,
        title_id: str | None = None,
        reason: str = "refund",
    ) -> bool:
        """Push committed value to ``recipient``; escrow it if the push fails.

        Returns True when the value was delivered, False when it was escrowed.
        Payment failures never propagate out of this method.
        """
        if amount <= 0:
            return True

        # Book the disbursement before the external call
        totals = self._totals[asset_id]
        totals.committed -= amount
        totals.disbursed += amount

        try:
            result = self._assets.resolve(asset_id).push(self._custody, recipient, amount)
        except PaymentError as exc:
            totals.disbursed -= amount
            totals.committed += amount
            self.credit(recipient, asset_id, amount, title_id=title_id)
            self._events.emit(
                EventType.PUSH_FAILED_ESCROWED,
                title_id=title_id,
                actor=recipient,
                asset_id=asset_id,
                amount=amount,
                reason=reason,
                error=exc.message,
            )
            logger.warning(
                "ledger.push_failed_escrowed",
                recipient=recipient,
                asset=asset_id,
                amount=amount,
                error=exc.message,
            )
            return False

        self._events.emit(
            EventType.PAYOUT_SENT,
            title_id=title_id,
            actor=recipient,
            asset_id=asset_id,
            amount=amount,
            delivered=result.moved,
            reason=reason,
            tx_ref=result.tx_ref,
        )
        self._report_deflation(result, asset_id, title_id, recipient, direction="outbound")
        return True

    def push_all(self, payouts: Iterable[Payout], *, title_id: str | None = None) -> None:
        """Attempt each payout in order, one at a time."""
        for payout in payouts:
            self.attempt_push(
                payout.recipient,
                payout.asset_id,
                payout.amount,
                title_id=title_id,
                reason=payout.reason,
            )

    def withdraw(self, caller: str, asset_id: str) -> int:
        """Pay out the caller's escrowed balance in ``asset_id``.

        The balance is zeroed before the transfer. If the transfer fails the
        balance is restored and the error propagates.

        Raises:
            NoPendingBalanceError: If the caller has nothing escrowed.
            PaymentError: If the transfer fails.
        """
        key = (caller, asset_id)
        amount = self._escrow.get(key, 0)
        if amount == 0:
            raise NoPendingBalanceError(caller, asset_id)

        del self._escrow[key]
        totals = self._totals[asset_id]
        totals.escrowed -= amount
        totals.disbursed += amount

        try:
            result = self._assets.resolve(asset_id).push(self._custody, caller, amount)
        except PaymentError:
            self._escrow[key] = amount
            totals.disbursed -= amount
            totals.escrowed += amount
            logger.warning("ledger.withdraw_failed", participant=caller, asset=asset_id)
            raise

        self._events.emit(
            EventType.REFUND_WITHDRAWN,
            actor=caller,
            asset_id=asset_id,
            amount=amount,
            delivered=result.moved,
            tx_ref=result.tx_ref,
        )
        self._report_deflation(result, asset_id, None, caller, direction="outbound")
        return amount

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def emergency_withdraw(self, actor: str, asset_id: str, amount: int, recipient: str) -> int:
        """Move value out of custody without touching escrow accounting.

        The amount is tracked in ``emergency_withdrawn`` so the shortfall
        against outstanding obligations stays visible.

        Raises:
            InsufficientFundsError: If custody holds less than ``amount``.
        """
        validate_amount(amount, "emergency withdrawal amount")
        available = self._rail.balance_of(asset_id, self._custody)
        if amount > available:
            raise InsufficientFundsError(self._custody, required=amount, available=available)

        result = self._assets.resolve(asset_id).push(self._custody, recipient, amount)
        self._totals[asset_id].emergency_withdrawn += amount

        logger.warning(
            "admin.emergency_withdrawal",
            actor=actor,
            asset=asset_id,
            amount=amount,
            recipient=recipient,
            tx_ref=result.tx_ref,
        )
        self._events.emit(
            EventType.EMERGENCY_WITHDRAWAL,
            actor=actor,
            asset_id=asset_id,
            amount=amount,
            recipient=recipient,
            tx_ref=result.tx_ref,
        )
        return amount

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def pending_balance(self, participant: str, asset_id: str) -> int:
        return self._escrow.get((participant, asset_id), 0)

    def totals(self, asset_id: str) -> AssetTotals:
        """Return a copy of the running totals for one asset."""
        current = self._totals.get(asset_id, AssetTotals())
        return AssetTotals(**current.to_dict())

    def assets_held(self) -> list[str]:
        return sorted(self._totals)

    def verify_conservation(self) -> list[str]:
        """Check the custody identities for every asset.

        For each asset:
            received == committed + escrowed + disbursed
            rail balance of custody == committed + escrowed - emergency_withdrawn
            sum of escrow balances == escrowed

        Returns a list of violation messages; empty means the books balance.
        """
        violations: list[str] = []
        for asset_id, totals in sorted(self._totals.items()):
            accounted = totals.committed + totals.escrowed + totals.disbursed
            if totals.received != accounted:
                violations.append(
                    f"{asset_id}: received {totals.received} != "
                    f"committed + escrowed + disbursed {accounted}"
                )

            expected_balance = totals.committed + totals.escrowed - totals.emergency_withdrawn
            actual_balance = self._rail.balance_of(asset_id, self._custody)
            if actual_balance != expected_balance:
                violations.append(
                    f"{asset_id}: custody balance {actual_balance} != expected {expected_balance}"
                )

            escrow_sum = sum(v for (_, a), v in self._escrow.items() if a == asset_id)
            if escrow_sum != totals.escrowed:
                violations.append(
                    f"{asset_id}: escrow balances {escrow_sum} != escrowed total {totals.escrowed}"
                )

            for name, value in totals.to_dict().items():
                if value < 0:
                    violations.append(f"{asset_id}: negative {name} {value}")
        return violations

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _report_deflation(
        self,
        result: TransferResult,
        asset_id: str,
        title_id: str | None,
        counterparty: str,
        *,
        direction: str,
    ) -> None:
        if result.lost_in_transit <= 0:
            return
        self._events.emit(
            EventType.DEFLATIONARY_TRANSFER,
            title_id=title_id,
            actor=counterparty,
            asset_id=asset_id,
            amount=result.moved,
            requested=result.requested,
            lost=result.lost_in_transit,
            direction=direction,
        )
