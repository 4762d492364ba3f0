"""Static access policy — compliance, halts and fees held in memory.

Stands in for an external compliance service. Participants are permitted
unless explicitly blocked; operations run unless explicitly halted.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from title_exchange.domain.enums import NATIVE_ASSET, Operation
from title_exchange.domain.pricing import validate_fraction
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterable

    from title_exchange.config import Settings

logger = get_logger(__name__)


class StaticAccessPolicy:
    """In-memory AccessPolicy implementation."""

    def __init__(
        self,
        *,
        fee_rate: Decimal = Decimal("0.025"),
        fee_recipient: str = "fee-recipient",
        admins: Iterable[str] = (),
        accepted_assets: Iterable[str] = (NATIVE_ASSET,),
    ) -> None:
        self._fee_rate = validate_fraction(fee_rate, "fee rate")
        self._fee_recipient = fee_recipient
        self._admins = set(admins)
        self._accepted_assets = set(accepted_assets)
        self._blocked: set[str] = set()
        self._halted: set[str] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> StaticAccessPolicy:
        return cls(
            fee_rate=settings.marketplace_fee_rate,
            fee_recipient=settings.marketplace_fee_recipient,
            admins=settings.admin_list,
            accepted_assets=settings.accepted_asset_list,
        )

    # --- AccessPolicy protocol ---

    def is_permitted(self, participant: str) -> bool:
        return participant not in self._blocked

    def is_asset_accepted(self, asset_id: str) -> bool:
        return asset_id in self._accepted_assets

    def is_operation_halted(self, operation: str) -> bool:
        return operation in self._halted

    def is_admin(self, participant: str) -> bool:
        return participant in self._admins

    def fee_rate(self) -> Decimal:
        return self._fee_rate

    def fee_recipient(self) -> str:
        return self._fee_recipient

    # --- Controls ---

    def block(self, participant: str) -> None:
        self._blocked.add(participant)
        logger.info("policy.participant_blocked", participant=participant)

    def halt(self, operation: Operation | str) -> None:
        self._halted.add(str(operation))
        logger.warning("policy.operation_halted", operation=str(operation))

    def resume(self, operation: Operation | str) -> None:
        self._halted.discard(str(operation))
        logger.info("policy.operation_resumed", operation=str(operation))

    def accept_asset(self, asset_id: str) -> None:
        self._accepted_assets.add(asset_id)

    def add_admin(self, participant: str) -> None:
        self._admins.add(participant)
