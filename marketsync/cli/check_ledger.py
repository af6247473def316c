# marketsync/cli/check_ledger.py
import asyncio
import sys
from typing import List, Optional

import click
from sqlalchemy.ext.asyncio import async_sessionmaker

from marketsync.database import async_session
from marketsync.services.stock_ledger import StockLedger, LedgerAudit


async def run_audit(session_factory: async_sessionmaker, product_id: Optional[int] = None) -> List[LedgerAudit]:
    async with session_factory() as session:
        ledger = StockLedger(session)
        if product_id is not None:
            return [await ledger.verify(product_id)]
        return await ledger.verify_all()


@click.command("check-ledger")
@click.option('--product-id', type=int, default=None, help='Check a single product')
@click.option('--show-all', is_flag=True, help='Also list consistent products')
def check_ledger(product_id, show_all):
    """Verify initial stock + stock log sum == current stock"""
    audits = asyncio.run(run_audit(async_session, product_id))

    mismatches = [a for a in audits if not a.consistent]
    for audit in audits:
        if audit.consistent and not show_all:
            continue
        marker = "OK " if audit.consistent else "BAD"
        click.echo(
            f"{marker} {audit.sku}: initial {audit.initial} + ledger {audit.ledger_sum:+d} "
            f"= {audit.expected}, current {audit.current}"
        )

    click.echo(f"\n{len(audits)} products checked, {len(mismatches)} mismatches")
    if mismatches:
        sys.exit(1)

if __name__ == "__main__":
    check_ledger()
