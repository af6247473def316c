from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.database import async_session
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.services.notification_service import Notifier, LoggingNotifier
from marketsync.core.counter_store import CounterStore, InMemoryCounterStore


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_notifier(request: Request) -> Notifier:
    """Notifier wired in the lifespan; falls back to logging only."""
    notifier = getattr(request.app.state, "notifier", None)
    return notifier or LoggingNotifier()


def get_client_registry(request: Request) -> MarketplaceClientRegistry:
    registry = getattr(request.app.state, "client_registry", None)
    if registry is None:
        registry = MarketplaceClientRegistry()
        request.app.state.client_registry = registry
    return registry


def get_counter_store(request: Request) -> CounterStore:
    store = getattr(request.app.state, "counter_store", None)
    if store is None:
        store = InMemoryCounterStore()
        request.app.state.counter_store = store
    return store
