# marketsync/cli/replay_webhooks.py
import asyncio
from typing import List, Optional

import click
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from marketsync.core.enums import WebhookStatus
from marketsync.core.logging_config import configure_logging
from marketsync.database import async_session
from marketsync.models.webhook import WebhookLog
from marketsync.services.webhook_processor import WebhookProcessor, ProcessResult


async def run_replay(
    session_factory: async_sessionmaker,
    log_id: Optional[int] = None,
    limit: int = 50,
) -> List[ProcessResult]:
    """Replay one log, or up to ``limit`` FAILED logs oldest first."""
    async with session_factory() as session:
        if log_id is not None:
            ids = [log_id]
        else:
            result = await session.execute(
                select(WebhookLog.id)
                .where(WebhookLog.status == WebhookStatus.FAILED)
                .order_by(WebhookLog.id)
                .limit(limit)
            )
            ids = list(result.scalars().all())

        processor = WebhookProcessor(session)
        return [await processor.replay(i) for i in ids]


@click.command("replay-webhooks")
@click.option('--id', 'log_id', type=int, default=None, help='Replay a single webhook log')
@click.option('--limit', type=int, default=50, show_default=True, help='Max FAILED logs to replay')
def replay_webhooks(log_id, limit):
    """Replay FAILED webhook logs"""
    configure_logging()
    results = asyncio.run(run_replay(async_session, log_id, limit))

    if not results:
        click.echo("No failed webhooks to replay")
        return
    for result in results:
        click.echo(f"#{result.log_id}: {result.status.value} - {result.message}" + (f" ({result.error})" if result.error else ""))
    succeeded = sum(1 for r in results if r.success)
    click.echo(f"\n{succeeded}/{len(results)} replayed successfully")

if __name__ == "__main__":
    replay_webhooks()
