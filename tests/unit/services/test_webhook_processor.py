# tests/unit/services/test_webhook_processor.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import WebhookStatus, NotificationType, OrderStatus
from marketsync.core.exceptions import WebhookLogNotFoundError
from marketsync.models.order import Order
from marketsync.models.webhook import WebhookLog
from marketsync.services.order_service import OrderService
from marketsync.services.webhook_processor import WebhookProcessor, infer_event_type, order_payload


def event(event_type, **data):
    return {"eventType": event_type, "data": data}


@pytest.fixture
def processor(db_session, notifier):
    return WebhookProcessor(db_session, notifier=notifier, low_stock_threshold=5)


def test_infer_event_type():
    assert infer_event_type({"eventType": "Order.Created"}) == "order.created"
    assert infer_event_type({"type": "order.cancelled"}) == "order.cancelled"
    assert infer_event_type({"orderNumber": "TY-1"}) == "order.created"
    assert infer_event_type({"foo": "bar"}) == "unknown"


def test_order_payload_prefers_data():
    assert order_payload({"eventType": "x", "data": {"orderNumber": "1"}}) == {"orderNumber": "1"}
    flat = {"orderNumber": "1"}
    assert order_payload(flat) is flat


@pytest.mark.asyncio
async def test_order_lifecycle_through_webhooks(db_session, processor, marketplace, product, package_factory):
    created = await processor.process(marketplace, event("order.created", **package_factory()))
    assert created.success
    assert created.status == WebhookStatus.SUCCESS
    assert created.message == "Order TY-1001 created"
    assert product.stock_quantity == 8

    redelivered = await processor.process(marketplace, event("order.created", **package_factory()))
    assert redelivered.success
    assert redelivered.message == "Order TY-1001 already exists"
    assert product.stock_quantity == 8

    cancelled = await processor.process(marketplace, event("order.cancelled", orderNumber="TY-1001", status="Cancelled"))
    assert cancelled.success
    assert product.stock_quantity == 10

    again = await processor.process(marketplace, event("order.cancelled", orderNumber="TY-1001"))
    assert again.success
    assert "already CANCELLED" in again.message
    assert product.stock_quantity == 10

    logs = (await db_session.execute(select(WebhookLog).order_by(WebhookLog.id))).scalars().all()
    assert len(logs) == 4
    assert all(log.status == WebhookStatus.SUCCESS for log in logs)
    assert all(log.processed_at is not None for log in logs)
    assert [log.event_type for log in logs] == ["order.created", "order.created", "order.cancelled", "order.cancelled"]


@pytest.mark.asyncio
async def test_notifications_sent_after_commit(processor, marketplace, product, package_factory, notifier):
    await processor.process(marketplace, event("order.created", **package_factory()))

    assert len(notifier.of_type(NotificationType.NEW_ORDER)) == 1
    assert notifier.of_type(NotificationType.ORDER_STATUS_CHANGE) == []


@pytest.mark.asyncio
async def test_flat_body_without_event_type_creates_order(processor, marketplace, product, package_factory):
    result = await processor.process(marketplace, package_factory())
    assert result.success
    assert product.stock_quantity == 8


@pytest.mark.asyncio
async def test_status_update(db_session, processor, marketplace, product, package_factory, notifier):
    await processor.process(marketplace, event("order.created", **package_factory()))

    result = await processor.process(
        marketplace,
        event("order.status_changed", orderNumber="TY-1001", status="Shipped", cargoTrackingNumber="TRK-1"),
    )
    assert result.success
    assert result.outcome.action == "status_changed"

    order = await OrderService(db_session).get_by_marketplace_order_id("TY-1001")
    assert order.status == OrderStatus.SHIPPED
    assert order.cargo_tracking_number == "TRK-1"
    assert len(notifier.of_type(NotificationType.ORDER_STATUS_CHANGE)) == 1


@pytest.mark.asyncio
async def test_cancel_via_update_event_restores_stock(processor, marketplace, product, package_factory):
    await processor.process(marketplace, event("order.created", **package_factory()))
    result = await processor.process(marketplace, event("order.updated", orderNumber="TY-1001", status="Cancelled"))

    assert result.outcome.action == "cancelled"
    assert product.stock_quantity == 10


@pytest.mark.asyncio
async def test_update_for_unknown_order(db_session, processor, marketplace, product, package_factory):
    ignored = await processor.process(marketplace, event("order.updated", orderNumber="TY-404", status="Shipped"))
    assert ignored.success
    assert ignored.message == "Order TY-404 not found, update ignored"

    created = await processor.process(marketplace, event("order.updated", **package_factory(order_number="TY-405")))
    assert created.success
    assert created.outcome.action == "created"
    assert product.stock_quantity == 8


@pytest.mark.asyncio
async def test_cancel_for_unknown_order(processor, marketplace):
    result = await processor.process(marketplace, event("order.cancelled", orderNumber="TY-404"))
    assert result.success
    assert result.message == "Order TY-404 not found, cancellation ignored"


@pytest.mark.asyncio
async def test_stock_update_is_acknowledged_only(processor, marketplace, product):
    result = await processor.process(marketplace, event("stock.updated", barcode="B123", quantity=99))
    assert result.status == WebhookStatus.SUCCESS
    assert product.stock_quantity == 10


@pytest.mark.asyncio
async def test_unknown_event_is_ignored(db_session, processor, marketplace):
    result = await processor.process(marketplace, {"eventType": "shipment.teleported"})

    assert result.success
    assert result.status == WebhookStatus.IGNORED
    assert result.message == "Unknown event type: shipment.teleported"
    assert result.to_response()["success"] is True
    log = await processor.get_log(result.log_id)
    assert log.status == WebhookStatus.IGNORED
    assert log.error == "Unknown event type: shipment.teleported"
    assert log.processed_at is not None


@pytest.mark.asyncio
async def test_cancellation_reads_package_status_first(db_session, processor, marketplace, product, package_factory):
    await processor.process(marketplace, event("order.created", **package_factory()))

    result = await processor.process(
        marketplace,
        event("order.cancelled", orderNumber="TY-1001", status="CANCELLED", shipmentPackageStatus="UnSupplied"),
    )

    assert result.outcome.action == "cancelled"
    order = await OrderService(db_session).get_by_marketplace_order_id("TY-1001")
    assert order.shipment_package_status == "UnSupplied"
    assert product.stock_quantity == 10


@pytest.mark.asyncio
async def test_bad_payload_is_logged_as_failed(db_session, processor, marketplace):
    result = await processor.process(marketplace, event("order.created", lines=[]))

    assert not result.success
    assert result.status == WebhookStatus.FAILED
    assert result.message == "Processing failed"
    assert "no order number" in result.error
    assert result.to_response() == {"success": False, "message": "Processing failed", "error": result.error}

    log = await processor.get_log(result.log_id)
    assert log.status == WebhookStatus.FAILED
    assert log.payload == {"eventType": "order.created", "data": {"lines": []}}


@pytest.mark.asyncio
async def test_failed_webhook_leaves_no_partial_order(db_session, processor, marketplace, product, package_factory, mocker):
    mocker.patch.object(
        OrderService, "_low_stock_events", side_effect=RuntimeError("database went away")
    )

    result = await processor.process(marketplace, event("order.created", **package_factory()))
    assert result.status == WebhookStatus.FAILED
    assert result.error == "database went away"

    await db_session.refresh(product)
    assert product.stock_quantity == 10
    assert (await db_session.execute(select(Order))).scalars().all() == []


@pytest.mark.asyncio
async def test_replay_failed_webhook(db_session, processor, marketplace, product, package_factory, mocker):
    patcher = mocker.patch.object(OrderService, "_low_stock_events", side_effect=RuntimeError("boom"))
    failed = await processor.process(marketplace, event("order.created", **package_factory()))
    assert failed.status == WebhookStatus.FAILED

    patcher.side_effect = None
    patcher.return_value = []
    replayed = await processor.replay(failed.log_id)

    assert replayed.success
    assert replayed.status == WebhookStatus.SUCCESS
    log = await processor.get_log(failed.log_id)
    assert log.retry_count == 1
    assert log.error is None
    await db_session.refresh(product)
    assert product.stock_quantity == 8


@pytest.mark.asyncio
async def test_replay_unknown_log(processor):
    with pytest.raises(WebhookLogNotFoundError):
        await processor.replay(404)


@pytest.mark.asyncio
async def test_list_logs_stats_and_delete(db_session, processor, marketplace, product, package_factory):
    await processor.process(marketplace, event("order.created", **package_factory()))
    ignored = await processor.process(marketplace, {"eventType": "ping"})
    await processor.process(marketplace, event("order.created", lines=[]))

    everything = await processor.list_logs()
    assert everything["total"] == 3
    assert everything["logs"][0].status == WebhookStatus.FAILED  # newest first

    failed = await processor.list_logs(status=WebhookStatus.FAILED)
    assert failed["total"] == 1

    by_type = await processor.list_logs(event_type="ping")
    assert [log.id for log in by_type["logs"]] == [ignored.log_id]

    stats = await processor.stats()
    assert stats["SUCCESS"] == 1
    assert stats["IGNORED"] == 1
    assert stats["FAILED"] == 1
    assert stats["PENDING"] == 0
    assert stats["total"] == 3

    await processor.delete_log(ignored.log_id)
    with pytest.raises(WebhookLogNotFoundError):
        await processor.get_log(ignored.log_id)
