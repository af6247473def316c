# tests/unit/services/test_poll_ingestion.py
import httpx
import pytest
from sqlalchemy import select

from marketsync.core.enums import OrderStatus, NotificationType
from marketsync.integrations.base import PackagePage
from marketsync.integrations.platforms.trendyol import TrendyolClient
from marketsync.integrations.registry import MarketplaceClientRegistry
from marketsync.models.activity_log import ActivityLog
from marketsync.models.marketplace import Marketplace
from marketsync.models.order import Order
from marketsync.services.order_service import OrderService
from marketsync.services.poll_ingestion import PollIngestionService, SyncSummary, is_last_page, poll_marketplace
from marketsync.services.webhook_processor import WebhookProcessor


@pytest.fixture
def service(db_session, registry, notifier):
    return PollIngestionService(db_session, registry=registry, notifier=notifier, page_size=2)


@pytest.mark.asyncio
async def test_poll_creates_orders(db_session, service, mock_client, marketplace, product, package_factory, notifier):
    mock_client.set_packages("Created", [
        package_factory("TY-1"),
        package_factory("TY-2", lines=[{"id": 7, "barcode": "B123", "quantity": 3}]),
    ])

    summary = await service.sync_by_status(marketplace.id, "Created")

    assert summary.success
    assert (summary.processed, summary.skipped, summary.failed, summary.total) == (2, 0, 0, 2)
    assert product.stock_quantity == 5
    assert mock_client.fetch_calls == [{"status": "Created", "page": 0, "size": 2}]
    assert len(notifier.of_type(NotificationType.NEW_ORDER)) == 2


@pytest.mark.asyncio
async def test_second_poll_skips_known_orders(db_session, service, mock_client, marketplace, product, package_factory):
    mock_client.set_packages("Created", [package_factory("TY-1")])

    await service.sync_by_status(marketplace.id, "Created")
    summary = await service.sync_by_status(marketplace.id, "Created")

    assert summary.processed == 0
    assert summary.skipped == 1
    assert product.stock_quantity == 8


@pytest.mark.asyncio
async def test_poll_applies_status_change(db_session, service, mock_client, marketplace, product, package_factory):
    mock_client.set_packages("Created", [package_factory("TY-1")])
    await service.sync_by_status(marketplace.id, "Created")

    mock_client.set_packages("Cancelled", [package_factory("TY-1", status="Cancelled")])
    summary = await service.sync_by_status(marketplace.id, "Cancelled")

    assert summary.processed == 1
    assert product.stock_quantity == 10
    order = await OrderService(db_session).get_by_marketplace_order_id("TY-1")
    assert order.status == OrderStatus.CANCELLED
    assert order.shipment_package_status == "Cancelled"


@pytest.mark.asyncio
async def test_client_error_is_reported(service, mock_client, marketplace):
    mock_client.should_fail = True

    summary = await service.sync_by_status(marketplace.id, "Created")

    assert not summary.success
    assert summary.errors == ["Created: Service unavailable"]
    assert summary.total == 0


@pytest.mark.asyncio
async def test_marketplace_without_client(db_session, service):
    other = Marketplace(name="Hepsiburada", is_active=True)
    db_session.add(other)
    await db_session.commit()

    summary = await service.sync_by_status(other.id, "Created")
    assert not summary.success
    assert "Hepsiburada" in summary.errors[0]


@pytest.mark.asyncio
async def test_bad_package_does_not_stop_the_page(db_session, service, mock_client, marketplace, product, package_factory):
    bad = package_factory("TY-1")
    del bad["orderNumber"]
    mock_client.set_packages("Created", [package_factory("TY-2"), bad])

    summary = await service.sync_by_status(marketplace.id, "Created")

    assert summary.processed == 1
    assert summary.failed == 1
    assert summary.errors == ["?: Payload has no order number"]
    await db_session.refresh(product)
    assert product.stock_quantity == 8
    orders = (await db_session.execute(select(Order))).scalars().all()
    assert [o.marketplace_order_id for o in orders] == ["TY-2"]


@pytest.mark.asyncio
async def test_webhook_then_poll_takes_stock_once(db_session, service, mock_client, marketplace, product, package_factory):
    await WebhookProcessor(db_session).process(marketplace, {"eventType": "order.created", "data": package_factory("TY-1")})
    assert product.stock_quantity == 8

    mock_client.set_packages("Created", [package_factory("TY-1")])
    summary = await service.sync_by_status(marketplace.id, "Created")

    assert summary.skipped == 1
    assert product.stock_quantity == 8


@pytest.mark.asyncio
async def test_sync_all_statuses_follows_pages(service, mock_client, marketplace, product, package_factory):
    mock_client.set_packages("Created", [
        package_factory("TY-1", lines=[]),
        package_factory("TY-2", lines=[]),
        package_factory("TY-3", lines=[]),
    ])

    summary = await service.sync_all_statuses(marketplace.id, statuses=["Created", "Shipped"])

    assert summary.success
    assert summary.processed == 3
    assert [(c["status"], c["page"]) for c in mock_client.fetch_calls] == [
        ("Created", 0), ("Created", 1), ("Shipped", 0),
    ]


@pytest.mark.asyncio
async def test_sync_active_marketplaces_logs_activity(db_session, service, mock_client, marketplace, package_factory):
    mock_client.set_packages("Created", [package_factory("TY-1", lines=[])])

    summaries = await service.sync_active_marketplaces()

    assert list(summaries) == ["Trendyol"]
    assert summaries["Trendyol"].processed == 1
    activity = (await db_session.execute(select(ActivityLog))).scalars().one()
    assert activity.action == "poll"
    assert activity.platform == "Trendyol"
    assert activity.details["processed"] == 1


@pytest.mark.asyncio
async def test_poll_marketplace_uses_own_session(session_factory, registry, mock_client, marketplace, product, package_factory):
    mock_client.set_packages("Created", [package_factory("TY-1")])

    summary = await poll_marketplace(session_factory, marketplace.id, registry)

    assert isinstance(summary, SyncSummary)
    assert summary.processed == 1
    async with session_factory() as session:
        orders = (await session.execute(select(Order))).scalars().all()
        assert len(orders) == 1


def test_summary_merge():
    total = SyncSummary(processed=1, total=1)
    total.merge(SyncSummary(success=False, failed=2, total=2, errors=["x"]))

    assert total.to_dict() == {
        "success": False, "processed": 1, "skipped": 0, "failed": 2, "total": 3, "errors": ["x"],
    }


@pytest.mark.asyncio
async def test_malformed_listing_is_reported(db_session, notifier, marketplace):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"orderNumber": "X"}]))
    registry = MarketplaceClientRegistry()
    registry.register("trendyol", TrendyolClient(
        {"api_key": "key", "api_secret": "secret", "supplier_id": "12345"},
        base_url="https://api.test",
        transport=transport,
    ))
    service = PollIngestionService(db_session, registry=registry, notifier=notifier)

    summary = await service.sync_by_status(marketplace.id, "Created")

    assert not summary.success
    assert summary.total == 0
    assert summary.errors[0].startswith("Created: Unexpected package listing")


@pytest.mark.asyncio
async def test_sync_all_statuses_follows_pages_past_server_size_cap(db_session, registry, notifier, mock_client, marketplace, package_factory):
    mock_client.max_page_size = 2
    mock_client.set_packages("Created", [package_factory(f"TY-{i}", lines=[]) for i in range(5)])
    service = PollIngestionService(db_session, registry=registry, notifier=notifier, page_size=500)

    summary = await service.sync_all_statuses(marketplace.id, statuses=["Created"])

    assert summary.processed == 5
    assert [(c["page"], c["size"]) for c in mock_client.fetch_calls] == [(0, 2), (1, 2), (2, 2)]


def test_is_last_page():
    assert is_last_page(PackagePage(content=[{}], size=2, total_pages=3), 1) is False
    assert is_last_page(PackagePage(content=[{}], size=2, total_pages=3), 2) is True
    # No totals reported: a short or empty page is the last one
    assert is_last_page(PackagePage(content=[{}, {}], size=2), 0) is False
    assert is_last_page(PackagePage(content=[{}], size=2), 0) is True
    assert is_last_page(PackagePage(content=[]), 0) is True
