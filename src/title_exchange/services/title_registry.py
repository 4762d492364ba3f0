"""In-memory title registry — the authoritative owner of each title token."""

from __future__ import annotations

from title_exchange.domain.exceptions import NotTitleHolderError, TitleNotFoundError
from title_exchange.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryTitleRegistry:
    """TitleRegistry implementation backed by a dict.

    Transfers made directly on the registry (outside the marketplace) are how
    a title changes hands out of band, leaving any listing stale.
    """

    def __init__(self) -> None:
        self._owners: dict[str, str] = {}

    def mint(self, title_id: str, owner: str) -> None:
        self._owners[title_id] = owner
        logger.info("registry.title_minted", title_id=title_id, owner=owner)

    def owner_of(self, title_id: str) -> str:
        try:
            return self._owners[title_id]
        except KeyError:
            raise TitleNotFoundError(title_id) from None

    def transfer(self, title_id: str, sender: str, recipient: str) -> None:
        if self.owner_of(title_id) != sender:
            raise NotTitleHolderError(title_id, sender)
        self._owners[title_id] = recipient
        logger.info(
            "registry.title_transferred",
            title_id=title_id,
            sender=sender,
            recipient=recipient,
        )
