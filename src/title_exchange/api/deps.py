"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the marketplace,
the database session, repositories, and configuration.

The marketplace runs in process: one Marketplace (with its in-memory
registry and payment rail) per application, built lazily from settings.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002 - resolved by FastAPI at runtime

from title_exchange.config import Settings, get_settings
from title_exchange.infrastructure.database.engine import get_async_session
from title_exchange.infrastructure.database.repositories import EventRepository
from title_exchange.services.access_policy import StaticAccessPolicy
from title_exchange.services.marketplace_service import Marketplace
from title_exchange.services.payment_service import InMemoryPaymentRail
from title_exchange.services.title_registry import InMemoryTitleRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@dataclass
class MarketRuntime:
    """The marketplace and the in-process collaborators it was built with."""

    marketplace: Marketplace
    policy: StaticAccessPolicy
    registry: InMemoryTitleRegistry
    rail: InMemoryPaymentRail


@lru_cache(maxsize=1)
def get_runtime() -> MarketRuntime:
    """Return the application's marketplace runtime (lazy singleton)."""
    settings = get_settings()
    policy = StaticAccessPolicy.from_settings(settings)
    registry = InMemoryTitleRegistry()
    rail = InMemoryPaymentRail()
    marketplace = Marketplace.from_settings(
        settings, policy=policy, registry=registry, rail=rail
    )
    return MarketRuntime(marketplace=marketplace, policy=policy, registry=registry, rail=rail)


def get_marketplace(runtime: MarketRuntime = Depends(get_runtime)) -> Marketplace:
    """Provide the marketplace orchestrator."""
    return runtime.marketplace


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


async def get_event_repo(
    session: AsyncSession = Depends(get_db_session),
) -> EventRepository:
    """Provide an EventRepository bound to the current session."""
    return EventRepository(session)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
