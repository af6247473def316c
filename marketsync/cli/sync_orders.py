# marketsync/cli/sync_orders.py
import asyncio
from typing import Optional

import click
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models.marketplace import Marketplace
from marketsync.services.poll_ingestion import PollIngestionService, SyncSummary


async def run_sync(
    session_factory: async_sessionmaker,
    marketplace_name: str,
    status: Optional[str] = None,
    registry: Optional[MarketplaceClientRegistry] = None,
) -> SyncSummary:
    async with session_factory() as session:
        result = await session.execute(select(Marketplace).where(Marketplace.name == marketplace_name))
        marketplace = result.scalars().first()
        if marketplace is None:
            raise click.ClickException(f"Marketplace {marketplace_name} not found")

        service = PollIngestionService(session, registry=registry)
        if status:
            return await service.sync_by_status(marketplace.id, status)
        return await service.sync_all_statuses(marketplace.id)


@click.command("sync-orders")
@click.option('--marketplace', 'marketplace_name', required=True, help='Marketplace name, e.g. Trendyol')
@click.option('--status', default=None, help='Single remote status to pull (default: all pollable statuses)')
def sync_orders(marketplace_name, status):
    """Pull orders from a marketplace and ingest them"""
    configure_logging()
    summary = asyncio.run(run_sync(async_session, marketplace_name, status))

    click.echo(f"\nSync {'completed' if summary.success else 'finished with errors'}")
    click.echo(f"Processed: {summary.processed}")
    click.echo(f"Skipped:   {summary.skipped}")
    click.echo(f"Failed:    {summary.failed}")
    click.echo(f"Total:     {summary.total}")
    for error in summary.errors:
        click.echo(f"  - {error}")

if __name__ == "__main__":
    sync_orders()
