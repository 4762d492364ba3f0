"""Payment asset implementations and registry.

Three variants:
    - NativeAsset:        value attached to the call
    - FungibleAsset:      pulled through the payment rail, delivers exactly
    - DeflationaryAsset:  pulled through the rail, measured by balance delta

The AssetRegistry resolves an asset id to the right variant. An asset id is
fungible until an administrator flags it deflationary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from title_exchange.assets.deflationary import DeflationaryAsset
from title_exchange.assets.fungible import FungibleAsset, NativeAsset
from title_exchange.domain.enums import NATIVE_ASSET, AssetKind
from title_exchange.domain.exceptions import AssetError
from title_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from title_exchange.domain.collaborators import PaymentAsset, PaymentRail

logger = get_logger(__name__)


class AssetRegistry:
    """Registry that creates the correct asset wrapper for an asset id.

    Usage:
        assets = AssetRegistry(rail)
        assets.set_deflationary("USDX", True)
        asset = assets.resolve("USDX")  # DeflationaryAsset
        result = asset.pull("alice", "custody", 1_000)
    """

    _registry: dict[AssetKind, type[FungibleAsset]] = {
        AssetKind.NATIVE: NativeAsset,
        AssetKind.FUNGIBLE: FungibleAsset,
        AssetKind.DEFLATIONARY: DeflationaryAsset,
    }

    def __init__(self, rail: PaymentRail) -> None:
        self._rail = rail
        self._deflationary: set[str] = set()

    def kind_of(self, asset_id: str) -> AssetKind:
        if asset_id == NATIVE_ASSET:
            return AssetKind.NATIVE
        if asset_id in self._deflationary:
            return AssetKind.DEFLATIONARY
        return AssetKind.FUNGIBLE

    def resolve(self, asset_id: str) -> PaymentAsset:
        """Create the asset wrapper for ``asset_id``."""
        asset_cls = self._registry[self.kind_of(asset_id)]
        return asset_cls(self._rail, asset_id)

    def is_deflationary(self, asset_id: str) -> bool:
        return asset_id in self._deflationary

    def set_deflationary(self, asset_id: str, flag: bool) -> None:
        """Flag or unflag an asset as fee-on-transfer.

        Raises:
            AssetError: If asked to flag the native asset.
        """
        if asset_id == NATIVE_ASSET:
            raise AssetError(
                "Native asset cannot be flagged deflationary",
                code="NATIVE_NOT_DEFLATIONARY",
            )
        if flag:
            self._deflationary.add(asset_id)
        else:
            self._deflationary.discard(asset_id)
        logger.info("assets.deflationary_set", asset=asset_id, deflationary=flag)

    @classmethod
    def supported_kinds(cls) -> list[str]:
        """Return the list of supported asset kinds."""
        return [kind.value for kind in cls._registry]


__all__ = [
    "AssetRegistry",
    "DeflationaryAsset",
    "FungibleAsset",
    "NativeAsset",
]
