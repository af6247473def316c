# marketsync/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketsync.core.config import get_settings
from marketsync.core.counter_store import DatabaseCounterStore
from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.scheduler import PollScheduler
from marketsync.services.notification_service import build_notifier

from marketsync import models  # noqa: F401  registers all tables

from marketsync.routes import health, orders, products, scheduler, sync, webhooks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()

    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
        if result.returncode == 0:
            logger.info("Migrations completed successfully")
        else:
            logger.error(f"Migration failed: {result.stderr}")

    app.state.notifier = build_notifier(settings)
    app.state.client_registry = MarketplaceClientRegistry()
    app.state.counter_store = DatabaseCounterStore(async_session)
    app.state.scheduler = PollScheduler(
        async_session,
        registry=app.state.client_registry,
        notifier=app.state.notifier,
        settings=settings,
    )
    await app.state.scheduler.start()
    try:
        yield
    finally:
        await app.state.scheduler.stop()


app = FastAPI(
    title="Marketplace Order Sync",
    lifespan=lifespan
)

app.include_router(webhooks.router)  # Marketplaces call these without auth
app.include_router(sync.router)
app.include_router(orders.router)
app.include_router(products.router)
app.include_router(scheduler.router)
app.include_router(health.router)
