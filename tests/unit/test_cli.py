# tests/unit/test_cli.py
import click
import pytest
from click.testing import CliRunner

from marketsync.cli import cli
from marketsync.cli.check_ledger import run_audit
from marketsync.cli.replay_webhooks import run_replay
from marketsync.cli.sync_orders import run_sync
from marketsync.core.enums import WebhookStatus
from marketsync.models.product import Product
from marketsync.models.webhook import WebhookLog


def test_cli_lists_commands():
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    for command in ("sync-orders", "replay-webhooks", "check-ledger", "low-stock", "create-tables"):
        assert command in result.output


@pytest.mark.asyncio
async def test_run_sync(session_factory, registry, mock_client, marketplace, product, package_factory):
    mock_client.set_packages("Created", [package_factory("TY-1")])

    summary = await run_sync(session_factory, "Trendyol", status="Created", registry=registry)

    assert summary.processed == 1
    async with session_factory() as session:
        assert (await session.get(Product, product.id)).stock_quantity == 8


@pytest.mark.asyncio
async def test_run_sync_unknown_marketplace(session_factory, registry):
    with pytest.raises(click.ClickException):
        await run_sync(session_factory, "Nowhere", registry=registry)


@pytest.mark.asyncio
async def test_run_replay_picks_failed_logs(session_factory, marketplace, product, package_factory):
    async with session_factory() as session:
        session.add_all([
            WebhookLog(
                marketplace_id=marketplace.id,
                event_type="order.created",
                payload={"eventType": "order.created", "data": package_factory("TY-1")},
                status=WebhookStatus.FAILED,
            ),
            WebhookLog(
                marketplace_id=marketplace.id,
                event_type="order.created",
                payload={"eventType": "order.created", "data": package_factory("TY-2")},
                status=WebhookStatus.SUCCESS,
            ),
        ])
        await session.commit()

    results = await run_replay(session_factory)

    assert len(results) == 1
    assert results[0].status == WebhookStatus.SUCCESS
    assert await run_replay(session_factory) == []


@pytest.mark.asyncio
async def test_run_audit(session_factory, db_session, product):
    audits = await run_audit(session_factory)
    assert [a.consistent for a in audits] == [True]

    product.stock_quantity = 4
    await db_session.commit()

    audits = await run_audit(session_factory, product_id=product.id)
    assert audits[0].consistent is False
