# marketsync/cli/low_stock.py
import asyncio

import click

from marketsync.core.config import get_settings
from marketsync.database import async_session
from marketsync.services.notification_service import check_low_stock, build_notifier


@click.command("low-stock")
@click.option('--threshold', type=int, default=None, help='Override LOW_STOCK_THRESHOLD')
@click.option('--notify', is_flag=True, help='Send LOW_STOCK notifications')
def low_stock(threshold, notify):
    """List products below the low-stock threshold"""
    threshold = threshold if threshold is not None else get_settings().LOW_STOCK_THRESHOLD

    async def _check():
        async with async_session() as session:
            notifier = build_notifier() if notify else None
            return await check_low_stock(session, notifier, threshold)

    products = asyncio.run(_check())
    if not products:
        click.echo(f"No products below {threshold}")
        return
    click.echo(f"{len(products)} products below {threshold}:")
    for product in products:
        click.echo(f"  {product.sku:<30} {product.stock_quantity:>5}  {product.name}")

if __name__ == "__main__":
    low_stock()
