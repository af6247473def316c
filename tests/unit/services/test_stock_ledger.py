# tests/unit/services/test_stock_ledger.py
import pytest
from sqlalchemy import select

from marketsync.core.enums import StockLogType, OrderStatus
from marketsync.core.exceptions import ProductNotFoundError, ValidationError
from marketsync.models.order import Order
from marketsync.models.product import Product
from marketsync.models.stock_log import StockLog
from marketsync.services.stock_ledger import StockLedger


@pytest.fixture
async def order(db_session, marketplace):
    order = Order(marketplace_order_id="TY-LEDGER", marketplace_id=marketplace.id, status=OrderStatus.PENDING)
    db_session.add(order)
    await db_session.commit()
    return order


@pytest.mark.asyncio
async def test_apply_delta_writes_one_log(db_session, product):
    ledger = StockLedger(db_session)

    result = await ledger.apply_delta(product.id, -3, StockLogType.SALE, reference="TY-1")
    await db_session.commit()

    assert (result.old_stock, result.new_stock, result.applied) == (10, 7, -3)
    assert not result.clamped
    assert product.stock_quantity == 7

    logs = (await db_session.execute(select(StockLog))).scalars().all()
    assert len(logs) == 1
    assert logs[0].quantity == -3
    assert logs[0].requested_quantity == -3
    assert (logs[0].old_stock, logs[0].new_stock) == (10, 7)
    assert logs[0].reference == "TY-1"


@pytest.mark.asyncio
async def test_stock_never_goes_below_zero(db_session, product):
    ledger = StockLedger(db_session)

    result = await ledger.apply_delta(product.id, -15, StockLogType.SALE)
    await db_session.commit()

    assert result.new_stock == 0
    assert result.applied == -10
    assert result.requested == -15
    assert result.clamped

    log = (await db_session.execute(select(StockLog))).scalars().one()
    assert log.quantity == -10
    assert log.requested_quantity == -15
    assert log.was_clamped


@pytest.mark.asyncio
async def test_duplicate_order_entry_is_skipped(db_session, product, order):
    ledger = StockLedger(db_session)

    first = await ledger.apply_delta(product.id, -2, StockLogType.SALE, order_id=order.id)
    second = await ledger.apply_delta(product.id, -2, StockLogType.SALE, order_id=order.id)
    await db_session.commit()

    assert not first.duplicate
    assert second.duplicate
    assert second.applied == 0
    assert second.log_id == first.log_id
    assert product.stock_quantity == 8

    count = len((await db_session.execute(select(StockLog))).scalars().all())
    assert count == 1


@pytest.mark.asyncio
async def test_sale_and_cancel_for_same_order_are_distinct(db_session, product, order):
    ledger = StockLedger(db_session)

    await ledger.apply_delta(product.id, -2, StockLogType.SALE, order_id=order.id)
    cancel = await ledger.apply_delta(product.id, 2, StockLogType.CANCEL, order_id=order.id)
    await db_session.commit()

    assert not cancel.duplicate
    assert product.stock_quantity == 10


@pytest.mark.asyncio
async def test_unknown_product_raises(db_session):
    with pytest.raises(ProductNotFoundError):
        await StockLedger(db_session).apply_delta(999, -1, StockLogType.SALE)


@pytest.mark.asyncio
async def test_adjust_sets_absolute_quantity(db_session, product):
    ledger = StockLedger(db_session)

    result = await ledger.adjust(product.id, 25, reason="Stock count")
    await db_session.commit()

    assert result.applied == 15
    assert product.stock_quantity == 25
    log = (await ledger.history(product.id, limit=1))[0]
    assert log.type == StockLogType.ADJUSTMENT
    assert log.reason == "Stock count"
    assert log.created_by == "operator"


@pytest.mark.asyncio
async def test_entry_and_exit(db_session, product):
    ledger = StockLedger(db_session)

    await ledger.adjust(product.id, 5, type=StockLogType.ENTRY)
    await ledger.adjust(product.id, 3, type=StockLogType.EXIT)
    await db_session.commit()

    assert product.stock_quantity == 12


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity,type", [
    (-1, StockLogType.ADJUSTMENT),
    (0, StockLogType.ENTRY),
    (-4, StockLogType.EXIT),
    (1, StockLogType.SALE),
    (1, StockLogType.CANCEL),
])
async def test_adjust_rejects_invalid_requests(db_session, product, quantity, type):
    with pytest.raises(ValidationError):
        await StockLedger(db_session).adjust(product.id, quantity, type=type)


@pytest.mark.asyncio
async def test_verify_reconciles_with_ledger(db_session, product):
    ledger = StockLedger(db_session)

    await ledger.apply_delta(product.id, -4, StockLogType.SALE)
    await ledger.apply_delta(product.id, -20, StockLogType.SALE)  # clamped
    await ledger.apply_delta(product.id, 6, StockLogType.ENTRY)
    await db_session.commit()

    audit = await ledger.verify(product.id)
    assert audit.initial == 10
    assert audit.ledger_sum == -4
    assert audit.current == 6
    assert audit.consistent


@pytest.mark.asyncio
async def test_verify_flags_out_of_band_changes(db_session, product):
    product.stock_quantity = 3  # bypasses the ledger
    await db_session.commit()

    audit = await StockLedger(db_session).verify(product.id)
    assert not audit.consistent
    assert audit.expected == 10


@pytest.mark.asyncio
async def test_verify_all_and_recent(db_session, product):
    other = Product(sku="C456", name="Other", stock_quantity=1, initial_stock_quantity=1)
    db_session.add(other)
    await db_session.commit()

    ledger = StockLedger(db_session)
    await ledger.apply_delta(product.id, -1, StockLogType.SALE)
    await ledger.apply_delta(other.id, 2, StockLogType.ENTRY)
    await db_session.commit()

    audits = await ledger.verify_all()
    assert [a.sku for a in audits] == ["B123", "C456"]
    assert all(a.consistent for a in audits)

    entries = await ledger.recent(type=StockLogType.ENTRY)
    assert [e.product_id for e in entries] == [other.id]
