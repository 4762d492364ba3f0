"""Database infrastructure — engine, ORM models, and repositories."""

from title_exchange.infrastructure.database.engine import (
    close_db,
    get_async_session,
    init_db,
)
from title_exchange.infrastructure.database.orm_models import (
    Base,
    MarketEventRecord,
)
from title_exchange.infrastructure.database.repositories import EventRepository

__all__ = [
    "Base",
    "MarketEventRecord",
    "EventRepository",
    "get_async_session",
    "init_db",
    "close_db",
]
